from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import backref, relationship

from app.db.base import Base, utcnow

VISIBILITIES = ("private", "public", "shared")
PRIORITIES = ("low", "medium", "high")


# sharedWith: users (other than the owner) who can see and comment on a goal
goal_shares = Table(
    "goal_shares",
    Base.metadata,
    Column("goal_id", Integer, ForeignKey("goals.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    category = Column(String(100), nullable=False, default="general")
    target_date = Column(DateTime, nullable=True)
    priority = Column(String(16), nullable=False, default="medium")
    tags = Column(JSON, default=list)

    # Derived: always written by the progress aggregator, 0..100
    progress = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)

    # Highest progress threshold (25/50/75/100) already notified; never decreases
    last_progress_notification = Column(Integer, nullable=False, default=0)

    visibility = Column(String(16), nullable=False, default="private")

    # Optional numeric target, e.g. "read 12 books"
    metric_type = Column(String(64), nullable=True)
    metric_target = Column(Float, nullable=True)
    metric_current = Column(Float, nullable=True)
    metric_unit = Column(String(32), nullable=True)

    parent_goal_id = Column(Integer, ForeignKey("goals.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    milestones = relationship(
        "Milestone",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="Milestone.position",
    )
    subgoals = relationship("Goal", backref=backref("parent_goal", remote_side=[id]))
    shared_with = relationship("User", secondary=goal_shares, lazy="selectin")
    comments = relationship(
        "GoalComment",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalComment.created_at",
    )
    reactions = relationship(
        "GoalReaction",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalReaction.created_at",
    )

    @property
    def status(self) -> str:
        if self.is_completed:
            return "completed"
        if self.target_date is None:
            return "in-progress"
        return "overdue" if utcnow() > self.target_date else "on-track"


class Milestone(Base):
    """Checkpoint embedded in a goal; only exists as part of its goal."""

    __tablename__ = "milestones"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    target_date = Column(DateTime, nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)

    goal = relationship("Goal", back_populates="milestones")


class GoalComment(Base):
    __tablename__ = "goal_comments"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    parent_comment_id = Column(Integer, ForeignKey("goal_comments.id", ondelete="SET NULL"), nullable=True)

    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    goal = relationship("Goal", back_populates="comments")
    author = relationship("User")


class GoalReaction(Base):
    __tablename__ = "goal_reactions"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    type = Column(String(32), nullable=False)  # like | celebrate | ...
    created_at = Column(DateTime, default=utcnow)

    goal = relationship("Goal", back_populates="reactions")
    reactor = relationship("User")


def _iso(value):
    return value.isoformat() if value else None


def milestone_to_dict(m: Milestone) -> dict:
    return {
        "id": m.id,
        "title": m.title,
        "description": m.description or "",
        "target_date": _iso(m.target_date),
        "is_completed": m.is_completed,
        "completed_at": _iso(m.completed_at),
    }


def goal_to_dict(goal: Goal) -> dict:
    metrics = None
    if goal.metric_target is not None:
        metrics = {
            "type": goal.metric_type,
            "target": goal.metric_target,
            "current": goal.metric_current or 0,
            "unit": goal.metric_unit,
        }
    return {
        "id": goal.id,
        "user_id": goal.user_id,
        "title": goal.title,
        "description": goal.description or "",
        "category": goal.category,
        "target_date": _iso(goal.target_date),
        "priority": goal.priority,
        "tags": goal.tags or [],
        "progress": goal.progress,
        "is_completed": goal.is_completed,
        "completed_at": _iso(goal.completed_at),
        "status": goal.status,
        "visibility": goal.visibility,
        "shared_with": [u.id for u in goal.shared_with],
        "milestones": [milestone_to_dict(m) for m in goal.milestones],
        "metrics": metrics,
        "parent_goal_id": goal.parent_goal_id,
        "sub_goals": [g.id for g in goal.subgoals],
        "created_at": _iso(goal.created_at),
        "updated_at": _iso(goal.updated_at),
    }


def comment_to_dict(c: GoalComment) -> dict:
    return {
        "id": c.id,
        "goal_id": c.goal_id,
        "user_id": c.user_id,
        "author": c.author.name if c.author else None,
        "content": c.content,
        "parent_comment_id": c.parent_comment_id,
        "created_at": _iso(c.created_at),
    }


def reaction_to_dict(r: GoalReaction) -> dict:
    return {
        "id": r.id,
        "goal_id": r.goal_id,
        "user_id": r.user_id,
        "type": r.type,
        "created_at": _iso(r.created_at),
    }
