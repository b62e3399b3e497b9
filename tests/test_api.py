from datetime import timedelta

from app.db.base import utcnow


def _signup(client, name):
    resp = client.post(
        "/auth/signup",
        data={"email": f"{name}@example.com", "name": name.title(), "password": "password123"},
    )
    assert resp.status_code == 201
    # Keep callers explicit about who they are; the cookie would win over the header
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["name"] == "GoalKeeper"


def test_auth_required(client):
    assert client.get("/goals").status_code == 401
    assert client.get("/goals", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_signup_validation_and_login(client):
    resp = client.post("/auth/signup", data={"email": "bad", "name": "X", "password": "password123"})
    assert resp.status_code == 400
    resp = client.post("/auth/signup", data={"email": "x@example.com", "name": "X", "password": "123"})
    assert resp.status_code == 400

    _signup(client, "alice")
    resp = client.post("/auth/signup", data={"email": "alice@example.com", "name": "A", "password": "password123"})
    assert resp.status_code == 400

    resp = client.post("/auth/login", data={"email": "alice@example.com", "password": "wrong"})
    assert resp.status_code == 401
    resp = client.post("/auth/login", data={"email": "ALICE@example.com", "password": "password123"})
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "Alice"
    assert "access_token" in resp.cookies


def test_goal_flow(client, push):
    alice = _signup(client, "alice")

    resp = client.post(
        "/goals",
        json={"title": "Read more", "milestones": [{"title": "Book 1"}, {"title": "Book 2"}]},
        headers=alice,
    )
    assert resp.status_code == 201
    goal = resp.json()
    assert goal["progress"] == 0
    assert goal["status"] == "in-progress"

    milestone_id = goal["milestones"][0]["id"]
    resp = client.put(
        f"/goals/{goal['id']}/milestones/{milestone_id}", json={"is_completed": True}, headers=alice
    )
    assert resp.status_code == 200
    assert resp.json()["progress"] == 50

    notes = client.get("/notifications", headers=alice).json()
    assert notes[0]["title"] == '50% Progress on "Read more"'
    assert notes[0]["action"] == {"type": "view", "target_type": "goal", "target_id": goal["id"]}

    resp = client.post("/notifications/read", json={"ids": [notes[0]["id"]]}, headers=alice)
    assert resp.json() == {"updated": 1}
    resp = client.post("/notifications/read", json={"ids": [notes[0]["id"]]}, headers=alice)
    assert resp.json() == {"updated": 0}

    resp = client.put(f"/goals/{goal['id']}", json={"priority": "urgent"}, headers=alice)
    assert resp.status_code == 422


def test_goal_access_over_http(client):
    alice = _signup(client, "alice")
    bob = _signup(client, "bob")
    goal = client.post("/goals", json={"title": "Mine"}, headers=alice).json()

    assert client.get(f"/goals/{goal['id']}", headers=bob).status_code == 404

    bob_id = client.get("/api/me", headers=bob).json()["id"]
    resp = client.post(f"/social/goals/{goal['id']}/share", json={"user_ids": [bob_id]}, headers=alice)
    assert resp.status_code == 200
    assert len(resp.json()["notifications"]) == 1

    assert client.get(f"/goals/{goal['id']}", headers=bob).status_code == 200
    assert client.put(f"/goals/{goal['id']}", json={"title": "Ours"}, headers=bob).status_code == 403

    resp = client.post(f"/social/goals/{goal['id']}/comments", json={"content": "Nice"}, headers=bob)
    assert resp.status_code == 201
    comments = client.get(f"/social/goals/{goal['id']}/comments", headers=alice).json()
    assert [c["author"] for c in comments] == ["Bob"]

    feed = client.get("/social/feed", headers=bob).json()
    assert feed[0]["goal"]["id"] == goal["id"]
    assert feed[0]["is_shared"] is True


def test_commitment_flow(client):
    alice = _signup(client, "alice")
    goal = client.post("/goals", json={"title": "Habit"}, headers=alice).json()
    due = (utcnow() + timedelta(hours=6)).isoformat()

    resp = client.post(
        "/commitments",
        json={"goal_id": goal["id"], "title": "Meditate", "due_date": due, "recurrence": {"frequency": "daily"}},
        headers=alice,
    )
    assert resp.status_code == 201
    commitment = resp.json()
    assert commitment["status"] == "in-progress"
    assert commitment["progress"] == 0

    resp = client.post(f"/commitments/{commitment['id']}/complete", headers=alice)
    body = resp.json()
    assert body["commitment"]["is_completed"] is True
    assert body["commitment"]["progress"] == 100
    assert body["next_occurrence"]["title"] == "Meditate"

    listed = client.get("/commitments", params={"goal_id": goal["id"], "status": "completed"}, headers=alice).json()
    assert [c["id"] for c in listed] == [commitment["id"]]

    resp = client.post(
        f"/commitments/{commitment['id']}/reminders",
        json={"type": "carrier-pigeon", "time": due},
        headers=alice,
    )
    assert resp.status_code == 422

    me = client.get("/api/me", headers=alice).json()
    assert me["current_streak"] == 1


def test_profile_devices_and_achievements(client):
    alice = _signup(client, "alice")

    resp = client.put("/api/me", json={"bio": "Runner", "push_notifications": False}, headers=alice)
    assert resp.json()["bio"] == "Runner"
    assert resp.json()["push_notifications"] is False

    resp = client.post("/api/me/devices", json={"token": "abc", "platform": "android"}, headers=alice)
    assert resp.status_code == 201
    resp = client.post("/api/me/devices", json={"token": "abc", "platform": "fridge"}, headers=alice)
    assert resp.status_code == 422

    achievements = client.get("/api/me/achievements", headers=alice).json()
    assert {a["key"] for a in achievements} == {"getting-started", "commitment-master", "team-player"}

    summary = client.get("/api/me/achievements/summary", headers=alice).json()
    assert summary["total_achievements"] == 3
    assert summary["points_to_next_level"] == 1000

    stats = client.get("/notifications/stats", headers=alice).json()
    assert stats["total"] == 0
