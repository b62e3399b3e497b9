from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from app.db.base import Base, utcnow

ACHIEVEMENT_TYPES = ("streak", "milestone", "completion", "social", "special")
COMPARATORS = ("gt", "gte", "lt", "lte", "eq")


class Achievement(Base):
    """
    One row per (user, key). ``is_completed`` goes false -> true once and is
    never reset; the flip is done with a conditional UPDATE so only one caller
    wins when two requests evaluate the same achievement.
    """

    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Stable identity, e.g. "streak-30", "milestone-12-5", "getting-started"
    key = Column(String(64), nullable=False)
    type = Column(String(16), nullable=False)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String(16), nullable=False, default="🏆")
    level = Column(Integer, nullable=False, default=1)
    points = Column(Integer, nullable=False, default=0)

    progress = Column(Integer, nullable=False, default=0)
    max_progress = Column(Integer, nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)

    # [{"type": "commitments", "value": 50, "comparison": "gte"}, ...]
    requirements = Column(JSON, nullable=False, default=list)
    # [{"type": "points", "value": 300}, {"type": "badge", "value": "streak-30"}]
    rewards = Column(JSON, nullable=True)

    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="SET NULL"), nullable=True)
    streak_days = Column(Integer, nullable=True)
    milestone_count = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "key", name="uq_user_achievement"),
    )


def achievement_to_dict(a: Achievement) -> dict:
    return {
        "id": a.id,
        "key": a.key,
        "type": a.type,
        "title": a.title,
        "description": a.description,
        "icon": a.icon,
        "points": a.points,
        "progress": a.progress,
        "max_progress": a.max_progress,
        "is_completed": a.is_completed,
        "completed_at": a.completed_at.isoformat() if a.completed_at else None,
        "requirements": a.requirements or [],
        "rewards": a.rewards or [],
    }
