from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from app.db.base import Base, utcnow

NOTIFICATION_TYPES = ("reminder", "achievement", "goal", "commitment", "social", "system")
NOTIFICATION_PRIORITIES = ("low", "medium", "high")


class Notification(Base):
    """
    Immutable once created; the only allowed transition is unread -> read.
    """

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    type = Column(String(16), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(16), nullable=False, default="medium")
    action_required = Column(Boolean, nullable=False, default=False)

    # Optional deep link: e.g. ("view", "goal", 12)
    action_type = Column(String(16), nullable=True)
    action_target_type = Column(String(16), nullable=True)
    action_target_id = Column(Integer, nullable=True)

    extra = Column(JSON, nullable=True)

    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_read", "user_id", "read"),
    )


def notification_to_dict(n: Notification) -> dict:
    action = None
    if n.action_type:
        action = {
            "type": n.action_type,
            "target_type": n.action_target_type,
            "target_id": n.action_target_id,
        }
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "priority": n.priority,
        "action_required": n.action_required,
        "action": action,
        "metadata": n.extra or {},
        "read": n.read,
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }
