"""
Sharing, comments and reactions on goals.

Access rules:
  share    owner, or a user the goal is already shared with
  comment  anyone who can see the goal (private goals: owner only)
  react    same as comment
Every social action notifies the other people involved, never the actor.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.achievements.service import AchievementService
from app.auth.models import User
from app.core.errors import NotFound, Unauthorized, ValidationError
from app.db.session import commit_or_raise
from app.goals.models import Goal, GoalComment, GoalReaction, goal_shares
from app.notifications.models import Notification
from app.notifications.service import NotificationService

logger = logging.getLogger(__name__)

REACTIONS = ("like", "celebrate", "support", "insightful", "fire")


class SocialService:
    def __init__(self, db: Session, notifications: NotificationService, achievements: AchievementService):
        self.db = db
        self.notifications = notifications
        self.achievements = achievements

    def _goal(self, goal_id: int) -> Goal:
        goal = self.db.get(Goal, goal_id)
        if goal is None:
            raise NotFound("Goal not found")
        return goal

    @staticmethod
    def _is_member(goal: Goal, user_id: int) -> bool:
        return goal.user_id == user_id or any(u.id == user_id for u in goal.shared_with)

    def _check_can_interact(self, goal: Goal, user_id: int, action: str) -> None:
        if goal.visibility == "private" and goal.user_id != user_id:
            raise Unauthorized(f"Not authorized to {action} this goal")
        if goal.visibility == "shared" and not self._is_member(goal, user_id):
            raise Unauthorized(f"Not authorized to {action} this goal")

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    def share_goal(
        self,
        goal_id: int,
        shared_by_user_id: int,
        shared_with_user_ids: Iterable[int],
        message: Optional[str] = None,
    ) -> tuple[Goal, list[Notification]]:
        goal = self._goal(goal_id)
        if not self._is_member(goal, shared_by_user_id):
            raise Unauthorized("Not authorized to share this goal")

        sharer = self.db.get(User, shared_by_user_id)
        if sharer is None:
            raise NotFound("Sharing user not found")

        recipient_ids = [uid for uid in dict.fromkeys(shared_with_user_ids) if uid not in (goal.user_id, shared_by_user_id)]
        if not recipient_ids:
            raise ValidationError("Pick at least one other user to share with")
        recipients = self.db.query(User).filter(User.id.in_(recipient_ids)).all()
        if len(recipients) != len(recipient_ids):
            raise NotFound("User not found")

        already = {u.id for u in goal.shared_with}
        added = [u for u in recipients if u.id not in already]
        goal.shared_with.extend(added)
        goal.visibility = "shared"
        commit_or_raise(self.db)
        logger.info("[SOCIAL] goal=%s shared by user=%s with %s", goal.id, shared_by_user_id, [u.id for u in added])

        notifications = [
            self.notifications.emit(
                u.id,
                "social",
                "Goal Shared with You",
                message or f"{sharer.name} shared a goal with you: {goal.title}",
                priority="medium",
                action={"type": "view", "target_type": "goal", "target_id": goal.id},
                metadata={"goal_id": goal.id, "shared_by": shared_by_user_id},
                action_required=True,
            )
            for u in added
        ]

        # "Team Player" counts goals the owner has shared
        self.achievements.check_completion_achievements(goal.user_id)
        return goal, notifications

    @staticmethod
    def _shared_goal_ids(user_id: int):
        return select(goal_shares.c.goal_id).where(goal_shares.c.user_id == user_id)

    def get_shared_goals(self, user_id: int) -> list[Goal]:
        return (
            self.db.query(Goal)
            .filter(
                Goal.visibility == "shared",
                or_(Goal.user_id == user_id, Goal.id.in_(self._shared_goal_ids(user_id))),
            )
            .order_by(Goal.updated_at.desc(), Goal.id.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Comments / reactions
    # ------------------------------------------------------------------

    def add_comment(
        self, goal_id: int, user_id: int, content: str, parent_comment_id: Optional[int] = None
    ) -> GoalComment:
        goal = self._goal(goal_id)
        self._check_can_interact(goal, user_id, "comment on")
        if not content or not content.strip():
            raise ValidationError("Comment cannot be empty")
        if parent_comment_id is not None:
            parent = self.db.get(GoalComment, parent_comment_id)
            if parent is None or parent.goal_id != goal.id:
                raise NotFound("Parent comment not found")

        comment = GoalComment(
            goal_id=goal.id, user_id=user_id, content=content.strip(), parent_comment_id=parent_comment_id
        )
        self.db.add(comment)
        commit_or_raise(self.db)
        self.db.refresh(comment)

        action = {"type": "view", "target_type": "goal", "target_id": goal.id}
        if goal.user_id != user_id:
            self.notifications.emit(
                goal.user_id,
                "social",
                "New Comment on Your Goal",
                f"Someone commented on your goal: {goal.title}",
                priority="low",
                action=action,
                metadata={"goal_id": goal.id, "comment_id": comment.id},
            )
        for participant in goal.shared_with:
            if participant.id in (user_id, goal.user_id):
                continue
            self.notifications.emit(
                participant.id,
                "social",
                "New Comment on Shared Goal",
                f"New comment on a shared goal: {goal.title}",
                priority="low",
                action=action,
                metadata={"goal_id": goal.id, "comment_id": comment.id},
            )
        return comment

    def get_comments(self, goal_id: int, user_id: int) -> list[GoalComment]:
        goal = self._goal(goal_id)
        self._check_can_interact(goal, user_id, "view comments on")
        return list(goal.comments)

    def react_to_goal(self, goal_id: int, user_id: int, reaction: str) -> GoalReaction:
        goal = self._goal(goal_id)
        self._check_can_interact(goal, user_id, "react to")
        if reaction not in REACTIONS:
            raise ValidationError(f"reaction must be one of: {', '.join(REACTIONS)}")

        entry = GoalReaction(goal_id=goal.id, user_id=user_id, type=reaction)
        self.db.add(entry)
        commit_or_raise(self.db)
        self.db.refresh(entry)

        if goal.user_id != user_id:
            reactor = self.db.get(User, user_id)
            self.notifications.emit(
                goal.user_id,
                "social",
                "New Reaction on Your Goal",
                f"{reactor.name if reactor else 'Someone'} reacted to your goal: {goal.title}",
                priority="low",
                action={"type": "view", "target_type": "goal", "target_id": goal.id},
                metadata={"goal_id": goal.id, "reaction": reaction},
            )
        return entry

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    def get_social_feed(self, user_id: int) -> list[dict]:
        goals = (
            self.db.query(Goal)
            .filter(
                or_(
                    Goal.user_id == user_id,
                    Goal.id.in_(self._shared_goal_ids(user_id)),
                    Goal.visibility == "public",
                )
            )
            .order_by(Goal.updated_at.desc(), Goal.id.desc())
            .all()
        )
        return [
            {
                "goal": goal,
                "is_owner": goal.user_id == user_id,
                "is_shared": any(u.id == user_id for u in goal.shared_with),
            }
            for goal in goals
        ]
