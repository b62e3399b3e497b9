from datetime import timedelta

import pytest

from app.auth.models import User
from app.commitments.models import Commitment
from app.core.errors import NotFound, ValidationError
from app.db.base import utcnow
from app.notifications.models import Notification


@pytest.fixture
def goal(services, make_user):
    user = make_user()
    return services.goals.create_goal(user.id, "Learn Spanish")


def _notifications(db, user_id, type):
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.type == type)
        .order_by(Notification.id)
        .all()
    )


def test_status_is_derived_on_write(db, services, goal):
    now = utcnow()
    later = services.commitments.create(
        goal.user_id, goal.id, "Later", now + timedelta(days=3), start_date=now + timedelta(days=1)
    )
    assert later.status == "pending"

    current = services.commitments.create(goal.user_id, goal.id, "Now", now + timedelta(days=3))
    assert current.status == "in-progress"

    done, _ = services.commitments.complete(goal.user_id, current.id)
    assert done.status == "completed"


def test_due_before_start_rejected(services, goal):
    now = utcnow()
    with pytest.raises(ValidationError):
        services.commitments.create(
            goal.user_id, goal.id, "Backwards", now + timedelta(days=1), start_date=now + timedelta(days=2)
        )


def test_other_users_commitment_is_not_found(services, goal, make_user):
    commitment = services.commitments.create(goal.user_id, goal.id, "Mine", utcnow() + timedelta(days=1))
    other = make_user("bob")
    with pytest.raises(NotFound):
        services.commitments.get(other.id, commitment.id)


def test_complete_is_idempotent(db, services, goal):
    commitment = services.commitments.create(goal.user_id, goal.id, "Once", utcnow() + timedelta(days=1))
    services.commitments.complete(goal.user_id, commitment.id)
    again, upcoming = services.commitments.complete(goal.user_id, commitment.id)
    assert again.is_completed
    assert upcoming is None
    assert len(_notifications(db, goal.user_id, "goal")) == 1  # the 100% threshold


def test_recurring_completion_spawns_next_occurrence(db, services, goal):
    due = utcnow() + timedelta(hours=6)
    commitment = services.commitments.create(
        goal.user_id,
        goal.id,
        "Practice",
        due,
        recurrence={"frequency": "daily", "interval": 1, "count": 3},
        reminders=[{"type": "push", "time": due - timedelta(hours=1)}],
    )
    _, upcoming = services.commitments.complete(goal.user_id, commitment.id)

    assert upcoming is not None
    assert upcoming.due_date == due + timedelta(days=1)
    assert upcoming.recurrence_count == 2
    assert not upcoming.is_completed
    assert [r.time for r in upcoming.reminders] == [due + timedelta(days=1) - timedelta(hours=1)]

    # One done out of two
    db.refresh(goal)
    assert goal.progress == 50


def test_last_occurrence_does_not_spawn(db, services, goal):
    commitment = services.commitments.create(
        goal.user_id, goal.id, "Final", utcnow() + timedelta(hours=6), recurrence={"frequency": "weekly", "count": 1}
    )
    _, upcoming = services.commitments.complete(goal.user_id, commitment.id)
    assert upcoming is None
    assert db.query(Commitment).count() == 1


def test_invalid_recurrence_rejected(services, goal):
    with pytest.raises(ValidationError):
        services.commitments.create(
            goal.user_id, goal.id, "Bad", utcnow() + timedelta(days=1), recurrence={"frequency": "hourly"}
        )
    with pytest.raises(ValidationError):
        services.commitments.create(
            goal.user_id, goal.id, "Bad", utcnow() + timedelta(days=1), recurrence={"frequency": "custom"}
        )


def test_sub_commitment_progress(services, goal):
    parent = services.commitments.create(goal.user_id, goal.id, "Parent", utcnow() + timedelta(days=2))
    first = services.commitments.create(
        goal.user_id, goal.id, "Sub 1", utcnow() + timedelta(days=1), parent_commitment_id=parent.id
    )
    services.commitments.create(
        goal.user_id, goal.id, "Sub 2", utcnow() + timedelta(days=1), parent_commitment_id=parent.id
    )
    services.commitments.complete(goal.user_id, first.id)
    assert services.commitments.progress_of(parent) == 50


def test_completing_updates_streak(db, services, goal):
    commitment = services.commitments.create(goal.user_id, goal.id, "Today", utcnow() + timedelta(days=1))
    services.commitments.complete(goal.user_id, commitment.id)
    user = db.get(User, goal.user_id)
    assert user.current_streak == 1
    assert user.longest_streak == 1
    assert user.last_activity_date == utcnow().date()


def test_due_soon_thresholds_fire_once_each(db, services, goal):
    now = utcnow()
    services.commitments.create(goal.user_id, goal.id, "Report", now + timedelta(hours=20))

    assert services.commitments.run_reminder_sweep(now)["due_soon"] == 1
    assert services.commitments.run_reminder_sweep(now + timedelta(hours=1))["due_soon"] == 0
    assert services.commitments.run_reminder_sweep(now + timedelta(hours=9))["due_soon"] == 1
    assert services.commitments.run_reminder_sweep(now + timedelta(hours=19, minutes=30))["due_soon"] == 1
    assert services.commitments.run_reminder_sweep(now + timedelta(hours=19, minutes=45))["due_soon"] == 0

    notes = _notifications(db, goal.user_id, "commitment")
    assert [n.message for n in notes] == [
        "Your commitment is due in 24 hours!",
        "Your commitment is due in 12 hours!",
        "Your commitment is due in 1 hour!",
    ]
    assert notes[-1].priority == "high"


def test_sweep_skips_commitments_outside_the_due_soon_window(db, services, goal):
    now = utcnow()
    commitment = services.commitments.create(goal.user_id, goal.id, "Quarterly review", now + timedelta(days=3))

    assert services.commitments.run_reminder_sweep(now)["due_soon"] == 0
    db.refresh(commitment)
    assert commitment.last_due_notification is None

    assert services.commitments.run_reminder_sweep(now + timedelta(days=2, hours=1))["due_soon"] == 1
    db.refresh(commitment)
    assert commitment.last_due_notification == 24


def test_due_date_change_resets_due_soon(db, services, goal):
    now = utcnow()
    commitment = services.commitments.create(goal.user_id, goal.id, "Report", now + timedelta(minutes=30))
    services.commitments.run_reminder_sweep(now)
    db.refresh(commitment)
    assert commitment.last_due_notification == 1

    services.commitments.update(goal.user_id, commitment.id, {"due_date": now + timedelta(days=3)})
    db.refresh(commitment)
    assert commitment.last_due_notification is None


def test_scheduled_reminders_delivered_once(db, services, goal):
    now = utcnow()
    commitment = services.commitments.create(
        goal.user_id,
        goal.id,
        "Call mom",
        now + timedelta(days=3),
        reminders=[{"type": "in-app", "time": now - timedelta(minutes=5)}],
    )
    assert services.commitments.run_reminder_sweep(now)["reminders"] == 1
    assert services.commitments.run_reminder_sweep(now)["reminders"] == 0

    db.refresh(commitment)
    assert commitment.reminders[0].sent
    reminders = _notifications(db, goal.user_id, "reminder")
    assert len(reminders) == 1
    assert reminders[0].action_target_id == commitment.id
