from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import backref, relationship

from app.db.base import Base, utcnow
from app.commitments.schedule import derive_status

FREQUENCIES = ("daily", "weekly", "monthly", "custom")
REMINDER_TYPES = ("push", "email", "in-app")


class Commitment(Base):
    __tablename__ = "commitments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, default="")

    start_date = Column(DateTime, nullable=False, default=utcnow)
    due_date = Column(DateTime, nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)

    # pending | in-progress | completed | overdue
    # Persisted for querying only; rewritten from the dates on every flush.
    status = Column(String(16), nullable=False, default="pending")

    priority = Column(String(16), nullable=False, default="medium")
    time_estimate = Column(Integer, nullable=True)  # minutes
    time_spent = Column(Integer, nullable=True)  # minutes
    notes = Column(Text, default="")
    tags = Column(JSON, default=list)

    # Recurrence rule; frequency NULL means one-off
    recurrence_frequency = Column(String(16), nullable=True)
    recurrence_interval = Column(Integer, nullable=True)
    recurrence_days_of_week = Column(JSON, nullable=True)  # 0-6, Sunday = 0
    recurrence_end_date = Column(DateTime, nullable=True)
    recurrence_count = Column(Integer, nullable=True)

    parent_commitment_id = Column(
        Integer, ForeignKey("commitments.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Smallest due-soon threshold (hours) already notified
    last_due_notification = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    reminders = relationship(
        "Reminder",
        back_populates="commitment",
        cascade="all, delete-orphan",
        order_by="Reminder.time",
    )
    sub_commitments = relationship("Commitment", backref=backref("parent_commitment", remote_side=[id]))

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_frequency)


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, index=True)
    commitment_id = Column(Integer, ForeignKey("commitments.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(16), nullable=False)  # push | email | in-app
    time = Column(DateTime, nullable=False)
    sent = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime, nullable=True)

    commitment = relationship("Commitment", back_populates="reminders")


@event.listens_for(Commitment, "before_insert")
@event.listens_for(Commitment, "before_update")
def _sync_status(mapper, connection, target):
    if target.start_date is None:
        target.start_date = utcnow()
    target.status = derive_status(target.is_completed, target.start_date, target.due_date, utcnow())


def _iso(value):
    return value.isoformat() if value else None


def reminder_to_dict(r: Reminder) -> dict:
    return {"id": r.id, "type": r.type, "time": _iso(r.time), "sent": r.sent, "sent_at": _iso(r.sent_at)}


def commitment_to_dict(c: Commitment) -> dict:
    recurrence = None
    if c.recurrence_frequency:
        recurrence = {
            "frequency": c.recurrence_frequency,
            "interval": c.recurrence_interval or 1,
            "days_of_week": c.recurrence_days_of_week or [],
            "end_date": _iso(c.recurrence_end_date),
            "count": c.recurrence_count,
        }
    return {
        "id": c.id,
        "user_id": c.user_id,
        "goal_id": c.goal_id,
        "title": c.title,
        "description": c.description or "",
        "start_date": _iso(c.start_date),
        "due_date": _iso(c.due_date),
        "is_completed": c.is_completed,
        "completed_at": _iso(c.completed_at),
        "status": derive_status(c.is_completed, c.start_date, c.due_date, utcnow()),
        "priority": c.priority,
        "time_estimate": c.time_estimate,
        "time_spent": c.time_spent,
        "notes": c.notes or "",
        "tags": c.tags or [],
        "recurrence": recurrence,
        "reminders": [reminder_to_dict(r) for r in c.reminders],
        "parent_commitment_id": c.parent_commitment_id,
        "sub_commitments": [s.id for s in c.sub_commitments],
        "created_at": _iso(c.created_at),
        "updated_at": _iso(c.updated_at),
    }
