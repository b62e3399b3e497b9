import pytest

from app.achievements.models import Achievement
from app.achievements.service import level_for_points, requirements_met
from app.core.errors import NotFound
from app.notifications.models import Notification


def _titles(db, user_id):
    return [
        n.title
        for n in db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.type == "achievement")
        .order_by(Notification.id)
    ]


def test_requirements_met():
    reqs = [{"type": "goals", "value": 1, "comparison": "gte"}, {"type": "streak", "value": 3, "comparison": "gt"}]
    assert requirements_met(reqs, {"goals": 1, "streak": 4})
    assert not requirements_met(reqs, {"goals": 1, "streak": 3})
    # Unknown stat fails closed
    assert not requirements_met(reqs, {"goals": 5})
    assert requirements_met([{"type": "x", "value": 2, "comparison": "eq"}], {"x": 2})
    assert requirements_met([{"type": "x", "value": 2, "comparison": "lte"}], {"x": 1})
    assert not requirements_met([{"type": "x", "value": 2, "comparison": "lt"}], {"x": 2})
    assert requirements_met([], {})


def test_level_for_points():
    assert level_for_points(0) == 1
    assert level_for_points(999) == 1
    assert level_for_points(1000) == 2


def test_streak_unlocks_every_reached_tier_once(db, services, make_user):
    user = make_user()
    unlocked = services.achievements.check_streak_achievements(user.id, 35)
    assert [a.key for a in unlocked] == ["streak-7", "streak-30"]
    assert unlocked[1].points == 300

    assert services.achievements.check_streak_achievements(user.id, 35) == []
    assert db.query(Achievement).filter_by(user_id=user.id, type="streak").count() == 2
    assert _titles(db, user.id) == [
        "Achievement Unlocked: 7 Day Streak",
        "Achievement Unlocked: 30 Day Streak",
    ]


def test_unlock_happens_exactly_once(db, services, make_user):
    user = make_user()
    achievement = services.achievements._get_or_create(
        user.id, "custom", type="special", title="Custom", description="Do the thing", points=10, max_progress=3
    )
    assert services.achievements.update_progress(achievement, 2) is False
    assert achievement.progress == 2
    assert services.achievements.update_progress(achievement, 3) is True
    assert services.achievements.update_progress(achievement, 3) is False
    assert services.achievements.update_progress(achievement, 0) is False

    db.refresh(achievement)
    assert achievement.is_completed
    assert achievement.progress == 3
    assert _titles(db, user.id) == ["Achievement Unlocked: Custom"]


def test_concurrent_unlock_notifies_once(db, services, other_services, make_user):
    user = make_user()
    achievement = services.achievements._get_or_create(
        user.id, "first-step", type="special", title="First Step", description="Start", points=10, max_progress=1
    )
    stale = other_services.db.get(Achievement, achievement.id)
    assert not stale.is_completed

    assert services.achievements.update_progress(achievement, 1) is True
    # The second session still sees it open and loses the conditional update
    assert other_services.achievements.update_progress(stale, 1) is False
    assert stale.is_completed

    assert _titles(db, user.id) == ["Achievement Unlocked: First Step"]
    db.refresh(user)
    assert user.total_points == 10


def test_level_up_and_level_never_drops(db, services, make_user):
    user = make_user()
    # 70 + 300 + 600 + 900 points
    services.achievements.check_streak_achievements(user.id, 100)
    db.refresh(user)
    assert user.total_points == 1870
    assert user.level == 2

    level_ups = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.title == "Level Up!")
        .all()
    )
    assert len(level_ups) == 1
    assert level_ups[0].priority == "high"

    # Losing points afterwards never takes the level or total back
    db.query(Achievement).filter_by(user_id=user.id, key="streak-90").update({"is_completed": False})
    db.commit()
    assert services.achievements.update_user_level(user.id) is None
    db.refresh(user)
    assert user.level == 2
    assert user.total_points == 1870


def test_milestone_achievements(services, make_user):
    user = make_user()
    goal = services.goals.create_goal(
        user.id, "Big project", milestones=[{"title": f"M{i}", "is_completed": True} for i in range(5)]
    )
    keys = [a.key for a in services.achievements.list_for_user(user.id)]
    assert f"milestone-{goal.id}-5" in keys

    other = make_user("bob")
    with pytest.raises(NotFound):
        services.achievements.check_milestone_achievements(other.id, goal.id)


def test_initial_achievements_and_summary(services, make_user):
    user = make_user()
    seeded = services.achievements.create_initial_achievements(user.id)
    assert {a.key for a in seeded} == {"getting-started", "commitment-master", "team-player"}
    # Seeding twice does not duplicate
    services.achievements.create_initial_achievements(user.id)

    summary = services.achievements.summary(user.id)
    assert summary["total_achievements"] == 3
    assert summary["completed_achievements"] == 0
    assert summary["in_progress_achievements"] == 3
    assert summary["level"] == 1
    assert summary["next_level_points"] == 1000
    assert summary["points_to_next_level"] == 1000
    assert summary["recent_achievements"] == []
