from datetime import timedelta

import pytest

from app.auth.models import DeviceToken
from app.core.errors import NotFound, ValidationError
from app.db.base import utcnow
from app.notifications.models import Notification, notification_to_dict


def _register_device(db, user, token="device-1"):
    db.add(DeviceToken(user_id=user.id, token=token, platform="ios"))
    db.commit()


def test_emit_persists_and_pushes(db, services, push, make_user):
    user = make_user()
    _register_device(db, user)
    n = services.notifications.emit(
        user.id,
        "system",
        "Welcome",
        "Glad you're here",
        action={"type": "view", "target_type": "goal", "target_id": 7},
        metadata={"source": "test"},
    )
    data = notification_to_dict(n)
    assert data["read"] is False
    assert data["action"] == {"type": "view", "target_type": "goal", "target_id": 7}
    assert data["metadata"] == {"source": "test"}

    assert len(push.sent) == 1
    tokens, payload = push.sent[0]
    assert tokens == ["device-1"]
    assert payload["title"] == "Welcome"
    assert payload["data"]["target_id"] == "7"


def test_push_failure_never_breaks_emit(db, services, push, make_user):
    user = make_user()
    _register_device(db, user)
    push.fail = True
    n = services.notifications.emit(user.id, "system", "Still saved", "Push is down")
    assert db.get(Notification, n.id) is not None
    assert push.sent == []


def test_push_respects_preferences(db, services, push, make_user):
    user = make_user()
    _register_device(db, user)
    user.push_notifications = False
    db.commit()
    services.notifications.emit(user.id, "system", "Quiet", "No push please")
    assert push.sent == []


def test_emit_validates_input(services, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        services.notifications.emit(user.id, "gossip", "Hi", "there")
    with pytest.raises(ValidationError):
        services.notifications.emit(user.id, "system", "Hi", "there", priority="urgent")
    with pytest.raises(ValidationError):
        services.notifications.emit(user.id, "system", "  ", "there")


def test_mark_read_is_idempotent_and_scoped(services, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    a1 = services.notifications.emit(alice.id, "system", "One", "first")
    a2 = services.notifications.emit(alice.id, "system", "Two", "second")
    b1 = services.notifications.emit(bob.id, "system", "Bob's", "private")

    assert services.notifications.mark_read(alice.id, [a1.id, a2.id, b1.id]) == 2
    assert services.notifications.mark_read(alice.id, [a1.id, a2.id]) == 0
    assert services.notifications.list_unread(alice.id) == []
    assert [n.id for n in services.notifications.list_unread(bob.id)] == [b1.id]

    with pytest.raises(NotFound):
        services.notifications.mark_one_read(alice.id, b1.id)


def test_stats_and_delete(services, make_user):
    user = make_user()
    services.notifications.emit(user.id, "system", "Low", "low", priority="low")
    urgent = services.notifications.emit(user.id, "system", "High", "high", priority="high")
    stats = services.notifications.stats(user.id)
    assert stats == {"total": 2, "unread": 2, "high_priority": 1, "has_urgent_notifications": True}

    services.notifications.delete(user.id, urgent.id)
    stats = services.notifications.stats(user.id)
    assert stats["total"] == 1
    assert stats["has_urgent_notifications"] is False


def test_list_recent_is_newest_first_and_limited(services, make_user):
    user = make_user()
    for i in range(25):
        services.notifications.emit(user.id, "system", f"N{i}", "body")
    recent = services.notifications.list_recent(user.id)
    assert len(recent) == 20
    assert recent[0].title == "N24"


def test_purge_older_than(db, services, make_user):
    user = make_user()
    old = services.notifications.emit(user.id, "system", "Old", "stale")
    services.notifications.emit(user.id, "system", "New", "fresh")
    old.created_at = utcnow() - timedelta(days=40)
    db.commit()

    assert services.notifications.purge_older_than(user.id, 30) == 1
    assert [n.title for n in services.notifications.list_recent(user.id)] == ["New"]
    with pytest.raises(ValidationError):
        services.notifications.purge_older_than(user.id, -1)
