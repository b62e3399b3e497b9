"""
Progress aggregator.

One canonical computation feeds Goal.progress:

  checkpoint  completed / total over milestones AND commitments of the goal,
              each item weighing the same (omitted when the goal has neither)
  sub-goal    mean progress of direct sub-goals (omitted when none)
  metric      100 * current / target clamped to 0..100 (omitted unless target > 0)

Present components are folded pairwise in that fixed order, i.e.
avg(avg(checkpoint, subgoal), metric); the result is rounded half-up and
clamped to 0..100. A goal with no component at all sits at 0.
"""
import logging
import math
from typing import Iterable, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.achievements.service import AchievementService
from app.commitments.models import Commitment
from app.core.errors import NotFound
from app.db.base import utcnow
from app.db.session import commit_or_raise
from app.goals.models import Goal
from app.notifications.service import NotificationService

logger = logging.getLogger(__name__)


def round_percent(value: float) -> int:
    return max(0, min(100, math.floor(value + 0.5)))


def checkpoint_component(
    milestones_done: int, milestones_total: int, commitments_done: int = 0, commitments_total: int = 0
) -> Optional[float]:
    total = milestones_total + commitments_total
    if total <= 0:
        return None
    return 100.0 * (milestones_done + commitments_done) / total


def subgoal_component(progresses: Iterable[int]) -> Optional[float]:
    values = [p or 0 for p in progresses]
    if not values:
        return None
    return sum(values) / len(values)


def metric_component(current: Optional[float], target: Optional[float]) -> Optional[float]:
    if target is None or target <= 0:
        return None
    return max(0.0, min(100.0, 100.0 * (current or 0) / target))


def blend_progress(
    checkpoint: Optional[float], subgoal: Optional[float], metric: Optional[float]
) -> int:
    progress = None
    for component in (checkpoint, subgoal, metric):
        if component is None:
            continue
        progress = component if progress is None else (progress + component) / 2
    if progress is None:
        return 0
    return round_percent(progress)


class ProgressService:
    def __init__(self, db: Session, notifications: NotificationService, achievements: AchievementService):
        self.db = db
        self.notifications = notifications
        self.achievements = achievements

    def _commitment_counts(self, goal_id: int) -> tuple[int, int]:
        done, total = (
            self.db.query(
                func.coalesce(func.sum(case((Commitment.is_completed.is_(True), 1), else_=0)), 0),
                func.count(Commitment.id),
            )
            .filter(Commitment.goal_id == goal_id)
            .one()
        )
        return int(done or 0), int(total or 0)

    def compute(self, goal: Goal) -> int:
        milestones_done = sum(1 for m in goal.milestones if m.is_completed)
        commitments_done, commitments_total = self._commitment_counts(goal.id)
        return blend_progress(
            checkpoint_component(milestones_done, len(goal.milestones), commitments_done, commitments_total),
            subgoal_component(g.progress for g in goal.subgoals),
            metric_component(goal.metric_current, goal.metric_target),
        )

    def recalculate(self, goal_id: int) -> Goal:
        """
        Recompute and store a goal's progress, then run the side effects:
        threshold notification, milestone/completion achievements, and the
        same recomputation for the parent goal.
        """
        return self._recalculate(goal_id, visited=set())

    def _recalculate(self, goal_id: int, visited: set) -> Goal:
        goal = self.db.get(Goal, goal_id)
        if goal is None:
            raise NotFound("Goal not found")
        visited.add(goal_id)

        old_progress = goal.progress or 0
        was_completed = bool(goal.is_completed)
        new_progress = self.compute(goal)

        goal.progress = new_progress
        if new_progress >= 100 and not was_completed:
            goal.is_completed = True
            goal.completed_at = utcnow()
        elif new_progress < 100 and was_completed:
            goal.is_completed = False
            goal.completed_at = None
        commit_or_raise(self.db)

        if new_progress != old_progress:
            logger.info("[PROGRESS] goal=%s %d -> %d", goal.id, old_progress, new_progress)

        self.notifications.notify_goal_progress(goal)

        if goal.milestones:
            self.achievements.check_milestone_achievements(goal.user_id, goal.id)
        if goal.is_completed != was_completed:
            self.achievements.check_completion_achievements(goal.user_id)

        parent_id = goal.parent_goal_id
        if parent_id and parent_id not in visited and new_progress != old_progress:
            self._recalculate(parent_id, visited)

        return goal
