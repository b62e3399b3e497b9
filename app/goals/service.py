"""
Goal CRUD. Every change that can move progress (milestones, metric, sub-goal
links) ends with ProgressService.recalculate; progress itself is never written
from user input.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.commitments.models import Commitment
from app.core.errors import NotFound, Unauthorized, ValidationError
from app.db.base import to_naive_utc, utcnow
from app.db.session import commit_or_raise
from app.goals.models import PRIORITIES, VISIBILITIES, Goal, Milestone
from app.goals.progress import ProgressService

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "category", "target_date", "priority", "tags", "visibility")
METRIC_FIELDS = ("metric_type", "metric_target", "metric_current", "metric_unit")


def can_view(goal: Goal, user_id: int) -> bool:
    if goal.user_id == user_id or goal.visibility == "public":
        return True
    return any(u.id == user_id for u in goal.shared_with)


def get_visible_goal(db: Session, user_id: int, goal_id: int) -> Goal:
    goal = db.get(Goal, goal_id)
    if goal is None or not can_view(goal, user_id):
        raise NotFound("Goal not found")
    return goal


def get_owned_goal(db: Session, user_id: int, goal_id: int) -> Goal:
    """Owner only. Share members get Unauthorized, everyone else NotFound."""
    goal = get_visible_goal(db, user_id, goal_id)
    if goal.user_id != user_id:
        raise Unauthorized("Only the goal owner can change this goal")
    return goal


def _validate_choice(value: str, choices: tuple, field: str) -> None:
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")


def _validate_metric(target, current) -> None:
    if target is not None and target < 0:
        raise ValidationError("metric target must be >= 0")
    if current is not None and current < 0:
        raise ValidationError("metric current must be >= 0")


class GoalService:
    def __init__(self, db: Session, progress: ProgressService):
        self.db = db
        self.progress = progress

    def list_goals(self, user_id: int) -> list[Goal]:
        return (
            self.db.query(Goal)
            .filter(Goal.user_id == user_id)
            .order_by(Goal.created_at.desc(), Goal.id.desc())
            .all()
        )

    def get_goal(self, user_id: int, goal_id: int) -> Goal:
        return get_visible_goal(self.db, user_id, goal_id)

    def _check_parent(self, user_id: int, goal: Optional[Goal], parent_id: Optional[int]) -> None:
        if parent_id is None:
            return
        parent = get_owned_goal(self.db, user_id, parent_id)
        # Walk up from the new parent; meeting the goal itself would close a loop
        node = parent
        while node is not None:
            if goal is not None and node.id == goal.id:
                raise ValidationError("A goal cannot be nested under itself")
            node = node.parent_goal

    def create_goal(
        self,
        user_id: int,
        title: str,
        description: str = "",
        category: str = "general",
        target_date=None,
        priority: str = "medium",
        visibility: str = "private",
        tags: Optional[list] = None,
        milestones: Optional[list] = None,
        metrics: Optional[dict] = None,
        parent_goal_id: Optional[int] = None,
    ) -> Goal:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        _validate_choice(priority, PRIORITIES, "priority")
        _validate_choice(visibility, VISIBILITIES, "visibility")
        self._check_parent(user_id, None, parent_goal_id)

        goal = Goal(
            user_id=user_id,
            title=title.strip(),
            description=description or "",
            category=(category or "general").strip() or "general",
            target_date=to_naive_utc(target_date),
            priority=priority,
            visibility=visibility,
            tags=list(tags or []),
            parent_goal_id=parent_goal_id,
            progress=0,
        )
        for position, data in enumerate(milestones or []):
            goal.milestones.append(self._build_milestone(data, position))
        if metrics:
            _validate_metric(metrics.get("target"), metrics.get("current"))
            goal.metric_type = metrics.get("type")
            goal.metric_target = metrics.get("target")
            goal.metric_current = metrics.get("current") or 0
            goal.metric_unit = metrics.get("unit")

        self.db.add(goal)
        commit_or_raise(self.db)
        logger.info("[GOAL] created goal=%s user=%s", goal.id, user_id)
        goal = self.progress.recalculate(goal.id)
        if parent_goal_id:
            # A new child joins the parent's average even at 0%
            self.progress.recalculate(parent_goal_id)
            self.db.refresh(goal)
        return goal

    @staticmethod
    def _build_milestone(data: dict, position: int) -> Milestone:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("Milestone title is required")
        completed = bool(data.get("is_completed"))
        return Milestone(
            title=title,
            description=data.get("description") or "",
            target_date=to_naive_utc(data.get("target_date")),
            is_completed=completed,
            completed_at=utcnow() if completed else None,
            position=position,
        )

    def update_goal(self, user_id: int, goal_id: int, changes: dict) -> Goal:
        goal = get_owned_goal(self.db, user_id, goal_id)
        needs_recalc = False
        old_parent_id = goal.parent_goal_id

        for field in EDITABLE_FIELDS:
            if field not in changes:
                continue
            value = changes[field]
            if field == "title":
                if not value or not value.strip():
                    raise ValidationError("Title is required")
                value = value.strip()
            elif field == "priority":
                _validate_choice(value, PRIORITIES, "priority")
            elif field == "visibility":
                _validate_choice(value, VISIBILITIES, "visibility")
            elif field == "target_date":
                value = to_naive_utc(value)
            elif field == "tags":
                value = list(value or [])
            setattr(goal, field, value)

        if "metrics" in changes:
            metrics = changes["metrics"]
            if metrics is None:
                goal.metric_type = goal.metric_target = goal.metric_current = goal.metric_unit = None
            else:
                _validate_metric(metrics.get("target"), metrics.get("current"))
                for key in ("type", "target", "current", "unit"):
                    if key in metrics:
                        setattr(goal, f"metric_{key}", metrics[key])
            needs_recalc = True

        if "parent_goal_id" in changes and changes["parent_goal_id"] != old_parent_id:
            self._check_parent(user_id, goal, changes["parent_goal_id"])
            goal.parent_goal_id = changes["parent_goal_id"]
            needs_recalc = True

        commit_or_raise(self.db)

        if needs_recalc:
            self.progress.recalculate(goal.id)
            if old_parent_id and old_parent_id != goal.parent_goal_id:
                self.progress.recalculate(old_parent_id)
            if goal.parent_goal_id:
                # Parent average changes even when this goal's own progress did not
                self.progress.recalculate(goal.parent_goal_id)
        self.db.refresh(goal)
        return goal

    def update_metric(self, user_id: int, goal_id: int, current: float) -> Goal:
        goal = get_owned_goal(self.db, user_id, goal_id)
        if goal.metric_target is None:
            raise ValidationError("Goal has no metric")
        _validate_metric(None, current)
        goal.metric_current = current
        commit_or_raise(self.db)
        return self.progress.recalculate(goal.id)

    def delete_goal(self, user_id: int, goal_id: int) -> None:
        goal = get_owned_goal(self.db, user_id, goal_id)
        parent_id = goal.parent_goal_id
        commitments = self.db.query(Commitment).filter(Commitment.goal_id == goal.id).all()
        # ORM deletes so reminders go with their commitment on SQLite too
        for commitment in commitments:
            self.db.delete(commitment)
        for child in list(goal.subgoals):
            child.parent_goal_id = None
        self.db.delete(goal)
        commit_or_raise(self.db)
        logger.info("[GOAL] deleted goal=%s user=%s commitments=%d", goal_id, user_id, len(commitments))
        if parent_id:
            self.progress.recalculate(parent_id)

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    def _owned_milestone(self, goal: Goal, milestone_id: int) -> Milestone:
        for m in goal.milestones:
            if m.id == milestone_id:
                return m
        raise NotFound("Milestone not found")

    def add_milestone(self, user_id: int, goal_id: int, data: dict) -> Goal:
        goal = get_owned_goal(self.db, user_id, goal_id)
        position = max((m.position for m in goal.milestones), default=-1) + 1
        goal.milestones.append(self._build_milestone(data, position))
        commit_or_raise(self.db)
        return self.progress.recalculate(goal.id)

    def set_milestone_completed(self, user_id: int, goal_id: int, milestone_id: int, completed: bool) -> Goal:
        goal = get_owned_goal(self.db, user_id, goal_id)
        milestone = self._owned_milestone(goal, milestone_id)
        if milestone.is_completed == completed:
            return goal
        milestone.is_completed = completed
        milestone.completed_at = utcnow() if completed else None
        commit_or_raise(self.db)
        return self.progress.recalculate(goal.id)

    def delete_milestone(self, user_id: int, goal_id: int, milestone_id: int) -> Goal:
        goal = get_owned_goal(self.db, user_id, goal_id)
        milestone = self._owned_milestone(goal, milestone_id)
        goal.milestones.remove(milestone)
        commit_or_raise(self.db)
        return self.progress.recalculate(goal.id)
