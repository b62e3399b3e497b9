"""
Achievement evaluator.

Awards:
  streak      7/30/60/90/180/365 consecutive days   (points = days * 10)
  milestone   5/10/25/50/100 milestones in one goal  (points = count * 20)
  completion  seeded at signup, satisfied from live counts
  social      seeded at signup ("Team Player")
Each (user, key) exists at most once (UNIQUE user_id+key) and unlocks at most once.
"""
import logging
from typing import Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from app.achievements.models import Achievement
from app.auth.models import User
from app.commitments.models import Commitment
from app.core.config import POINTS_PER_LEVEL
from app.core.errors import NotFound
from app.db.base import utcnow
from app.db.session import commit_or_raise
from app.goals.models import Goal, Milestone, goal_shares
from app.notifications.service import NotificationService

logger = logging.getLogger(__name__)

STREAK_DAYS = (7, 30, 60, 90, 180, 365)
MILESTONE_COUNTS = (5, 10, 25, 50, 100)

# Seeded for every new user
INITIAL_ACHIEVEMENTS = [
    {
        "key": "getting-started",
        "type": "completion",
        "title": "Getting Started",
        "description": "Complete your first goal",
        "icon": "🎯",
        "points": 100,
        "max_progress": 1,
        "requirements": [{"type": "goals", "value": 1, "comparison": "gte"}],
    },
    {
        "key": "commitment-master",
        "type": "completion",
        "title": "Commitment Master",
        "description": "Complete 50 commitments",
        "icon": "✅",
        "points": 500,
        "max_progress": 50,
        "requirements": [{"type": "commitments", "value": 50, "comparison": "gte"}],
    },
    {
        "key": "team-player",
        "type": "social",
        "title": "Team Player",
        "description": "Share a goal with another user",
        "icon": "👥",
        "points": 200,
        "max_progress": 1,
        "requirements": [{"type": "shared_goals", "value": 1, "comparison": "gte"}],
    },
]


def _compare(actual: float, comparison: str, expected: float) -> bool:
    if comparison == "gt":
        return actual > expected
    if comparison == "gte":
        return actual >= expected
    if comparison == "lt":
        return actual < expected
    if comparison == "lte":
        return actual <= expected
    if comparison == "eq":
        return actual == expected
    return False


def requirements_met(requirements: list, stats: Mapping[str, float]) -> bool:
    """AND over all requirements; a stat missing from ``stats`` fails the check."""
    for req in requirements or []:
        actual = stats.get(req.get("type"))
        if actual is None:
            return False
        if not _compare(actual, req.get("comparison"), req.get("value")):
            return False
    return True


def level_for_points(points: int) -> int:
    return points // POINTS_PER_LEVEL + 1


class AchievementService:
    def __init__(self, db: Session, notifications: NotificationService):
        self.db = db
        self.notifications = notifications

    # ------------------------------------------------------------------
    # Single achievement state machine
    # ------------------------------------------------------------------

    def update_progress(self, achievement: Achievement, value: int) -> bool:
        """
        Move an in-progress achievement forward. Returns True only for the call
        that completes it; completed achievements ignore further updates.
        """
        if achievement.is_completed:
            return False

        progress = max(0, min(int(value), achievement.max_progress))
        if progress < achievement.max_progress:
            if progress != achievement.progress:
                achievement.progress = progress
                commit_or_raise(self.db)
            return False

        now = utcnow()
        claimed = (
            self.db.query(Achievement)
            .filter(Achievement.id == achievement.id, Achievement.is_completed.is_(False))
            .update(
                {
                    Achievement.is_completed: True,
                    Achievement.completed_at: now,
                    Achievement.progress: achievement.max_progress,
                },
                synchronize_session=False,
            )
        )
        commit_or_raise(self.db)
        if not claimed:
            # Someone else completed it first
            self.db.refresh(achievement)
            return False

        set_committed_value(achievement, "is_completed", True)
        set_committed_value(achievement, "completed_at", now)
        set_committed_value(achievement, "progress", achievement.max_progress)
        logger.info("[ACHIEVEMENT] user=%s earned '%s' (+%d pts)", achievement.user_id, achievement.key, achievement.points)

        self.notifications.emit(
            achievement.user_id,
            "achievement",
            f"Achievement Unlocked: {achievement.title}",
            achievement.description,
            priority="medium",
            action={"type": "view", "target_type": "achievement", "target_id": achievement.id},
            metadata={"achievement_id": achievement.id, "points": achievement.points},
        )
        self.update_user_level(achievement.user_id)
        return True

    def _get_or_create(self, user_id: int, key: str, **fields) -> Achievement:
        existing = self.db.query(Achievement).filter_by(user_id=user_id, key=key).first()
        if existing:
            return existing
        achievement = Achievement(user_id=user_id, key=key, progress=0, is_completed=False, **fields)
        self.db.add(achievement)
        try:
            self.db.commit()
        except IntegrityError:
            # Created concurrently by another request
            self.db.rollback()
            return self.db.query(Achievement).filter_by(user_id=user_id, key=key).one()
        self.db.refresh(achievement)
        return achievement

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def check_streak_achievements(self, user_id: int, current_streak: int) -> list[Achievement]:
        unlocked = []
        for days in STREAK_DAYS:
            if current_streak < days:
                break
            points = days * 10
            achievement = self._get_or_create(
                user_id,
                f"streak-{days}",
                type="streak",
                title=f"{days} Day Streak",
                description=f"Maintain a streak of {days} days",
                icon="🔥",
                points=points,
                max_progress=days,
                requirements=[{"type": "streak", "value": days, "comparison": "gte"}],
                rewards=[{"type": "points", "value": points}, {"type": "badge", "value": f"streak-{days}"}],
                streak_days=days,
            )
            if self.update_progress(achievement, days):
                unlocked.append(achievement)
        return unlocked

    def check_milestone_achievements(self, user_id: int, goal_id: int) -> list[Achievement]:
        goal = self.db.get(Goal, goal_id)
        if goal is None or goal.user_id != user_id:
            raise NotFound("Goal not found")

        completed = sum(1 for m in goal.milestones if m.is_completed)
        unlocked = []
        for count in MILESTONE_COUNTS:
            if completed < count:
                break
            points = count * 20
            achievement = self._get_or_create(
                user_id,
                f"milestone-{goal_id}-{count}",
                type="milestone",
                title=f"{count} Milestones Completed",
                description=f"Complete {count} milestones",
                icon="🎯",
                points=points,
                max_progress=count,
                requirements=[{"type": "milestones", "value": count, "comparison": "gte"}],
                rewards=[{"type": "points", "value": points}, {"type": "badge", "value": f"milestone-master-{count}"}],
                goal_id=goal_id,
                milestone_count=count,
            )
            if self.update_progress(achievement, count):
                unlocked.append(achievement)
        return unlocked

    def user_stats(self, user_id: int) -> dict:
        """Live counters the seeded achievements are evaluated against."""
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")

        goals = self.db.query(Goal).filter(Goal.user_id == user_id, Goal.is_completed.is_(True)).count()
        commitments = (
            self.db.query(Commitment)
            .filter(Commitment.user_id == user_id, Commitment.is_completed.is_(True))
            .count()
        )
        shared_goals = (
            self.db.query(func.count(func.distinct(goal_shares.c.goal_id)))
            .join(Goal, Goal.id == goal_shares.c.goal_id)
            .filter(Goal.user_id == user_id)
            .scalar()
        ) or 0
        milestones = (
            self.db.query(Milestone)
            .join(Goal, Goal.id == Milestone.goal_id)
            .filter(Goal.user_id == user_id, Milestone.is_completed.is_(True))
            .count()
        )
        return {
            "goals": goals,
            "commitments": commitments,
            "shared_goals": shared_goals,
            "milestones": milestones,
            "streak": user.current_streak or 0,
        }

    def check_completion_achievements(self, user_id: int, stats: Optional[Mapping[str, float]] = None) -> list[Achievement]:
        """Evaluate every open completion/social achievement against live stats."""
        stats = stats if stats is not None else self.user_stats(user_id)
        pending = (
            self.db.query(Achievement)
            .filter(
                Achievement.user_id == user_id,
                Achievement.type.in_(("completion", "social")),
                Achievement.is_completed.is_(False),
            )
            .all()
        )
        unlocked = []
        for achievement in pending:
            if requirements_met(achievement.requirements, stats):
                if self.update_progress(achievement, achievement.max_progress):
                    unlocked.append(achievement)
                continue
            # Move the progress bar for simple "at least N" achievements
            reqs = achievement.requirements or []
            if len(reqs) == 1 and reqs[0].get("comparison") == "gte" and reqs[0].get("type") in stats:
                value = min(int(stats[reqs[0]["type"]]), achievement.max_progress - 1)
                self.update_progress(achievement, value)
        return unlocked

    def create_initial_achievements(self, user_id: int) -> list[Achievement]:
        created = [self._get_or_create(user_id, **dict(seed)) for seed in INITIAL_ACHIEVEMENTS]
        logger.info("[ACHIEVEMENT] seeded %d achievements for user=%s", len(created), user_id)
        return created

    # ------------------------------------------------------------------
    # Levels
    # ------------------------------------------------------------------

    def completed_points(self, user_id: int) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(Achievement.points), 0))
            .filter(Achievement.user_id == user_id, Achievement.is_completed.is_(True))
            .scalar()
        )
        return int(total or 0)

    def update_user_level(self, user_id: int) -> Optional[int]:
        """
        level = floor(points / POINTS_PER_LEVEL) + 1. Level and total points only
        ever go up. Returns the new level when the user levelled up.
        """
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")

        total_points = self.completed_points(user_id)
        new_level = level_for_points(total_points)

        if total_points > (user.total_points or 0):
            self.db.query(User).filter(User.id == user_id, User.total_points < total_points).update(
                {User.total_points: total_points}, synchronize_session=False
            )

        claimed = (
            self.db.query(User)
            .filter(User.id == user_id, User.level < new_level)
            .update({User.level: new_level}, synchronize_session=False)
        )
        commit_or_raise(self.db)
        self.db.refresh(user)
        if not claimed:
            return None

        logger.info("[LEVEL-UP] user=%s -> level %d (%d pts)", user_id, new_level, total_points)
        self.notifications.emit(
            user_id,
            "achievement",
            "Level Up!",
            f"Congratulations! You've reached level {new_level}!",
            priority="high",
            metadata={"level": new_level, "total_points": total_points},
        )
        return new_level

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def list_for_user(self, user_id: int) -> list[Achievement]:
        return (
            self.db.query(Achievement)
            .filter(Achievement.user_id == user_id)
            .order_by(Achievement.is_completed.desc(), Achievement.completed_at.desc(), Achievement.id)
            .all()
        )

    def summary(self, user_id: int) -> dict:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")

        achievements = self.db.query(Achievement).filter(Achievement.user_id == user_id).all()
        completed = sorted(
            (a for a in achievements if a.is_completed),
            key=lambda a: a.completed_at or a.created_at,
            reverse=True,
        )
        total_points = sum(a.points for a in completed)
        level = user.level or 1
        next_level_points = level * POINTS_PER_LEVEL
        return {
            "total_achievements": len(achievements),
            "completed_achievements": len(completed),
            "in_progress_achievements": len(achievements) - len(completed),
            "total_points": total_points,
            "level": level,
            "next_level_points": next_level_points,
            "points_to_next_level": max(next_level_points - total_points, 0),
            "recent_achievements": completed[:5],
        }
