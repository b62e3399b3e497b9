"""
Notification emitter.

Turns domain events into persisted Notification rows and hands a copy to the
push side channel. Threshold notifications (goal progress 25/50/75/100,
commitment due in 24h/12h/1h) fire at most once per entity: the threshold is
claimed with a conditional UPDATE on the source row before anything is emitted.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from app.auth.models import User
from app.commitments.models import Commitment
from app.core.config import NOTIFICATION_RETENTION_DAYS
from app.core.errors import NotFound, ValidationError
from app.db.base import utcnow
from app.db.session import commit_or_raise
from app.goals.models import Goal
from app.notifications.models import NOTIFICATION_PRIORITIES, NOTIFICATION_TYPES, Notification
from app.notifications.push import NullPushChannel, PushChannel

logger = logging.getLogger(__name__)

PROGRESS_THRESHOLDS = (25, 50, 75, 100)
DUE_SOON_THRESHOLDS = (24, 12, 1)  # hours before due


class NotificationService:
    def __init__(self, db: Session, push: Optional[PushChannel] = None):
        self.db = db
        self.push = push or NullPushChannel()

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def emit(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        priority: str = "medium",
        action: Optional[dict] = None,
        metadata: Optional[dict] = None,
        action_required: bool = False,
    ) -> Notification:
        """Persist a notification, then try push delivery (best-effort)."""
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type: {type}")
        if priority not in NOTIFICATION_PRIORITIES:
            raise ValidationError(f"Unknown notification priority: {priority}")
        if not title or not title.strip() or not message or not message.strip():
            raise ValidationError("Notification title and message are required")

        action = action or {}
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title.strip(),
            message=message.strip(),
            priority=priority,
            action_required=action_required,
            action_type=action.get("type"),
            action_target_type=action.get("target_type"),
            action_target_id=action.get("target_id"),
            extra=metadata,
            read=False,
        )
        self.db.add(notification)
        commit_or_raise(self.db)
        self.db.refresh(notification)
        logger.info("[NOTIFY] user=%s type=%s title=%r", user_id, type, notification.title)

        self._push(notification)
        return notification

    def _push(self, notification: Notification) -> None:
        user = self.db.get(User, notification.user_id)
        if user is None or not user.push_notifications or not user.device_tokens:
            return
        data = {"type": notification.type, "notification_id": str(notification.id)}
        if notification.action_target_type:
            data["target_type"] = notification.action_target_type
            data["target_id"] = str(notification.action_target_id)
        self.push.deliver(
            [t.token for t in user.device_tokens],
            notification.title,
            notification.message,
            data,
        )

    # ------------------------------------------------------------------
    # Threshold notifications
    # ------------------------------------------------------------------

    def notify_goal_progress(self, goal: Goal) -> Optional[Notification]:
        """
        Emit one notification for the highest newly crossed progress threshold.
        Jumping from 10% to 80% reports 75% once; 25 and 50 are skipped.
        """
        high_water = goal.last_progress_notification or 0
        crossed = [t for t in PROGRESS_THRESHOLDS if goal.progress >= t > high_water]
        if not crossed:
            return None
        threshold = max(crossed)

        claimed = (
            self.db.query(Goal)
            .filter(Goal.id == goal.id, Goal.last_progress_notification < threshold)
            .update({Goal.last_progress_notification: threshold}, synchronize_session=False)
        )
        if not claimed:
            return None
        set_committed_value(goal, "last_progress_notification", threshold)

        return self.emit(
            goal.user_id,
            "goal",
            f'{threshold}% Progress on "{goal.title}"',
            f"You've reached {threshold}% completion of your goal!",
            priority="medium",
            action={"type": "view", "target_type": "goal", "target_id": goal.id},
            metadata={"goal_id": goal.id, "progress": goal.progress, "threshold": threshold},
        )

    def notify_commitment_due(self, commitment: Commitment, now: Optional[datetime] = None) -> Optional[Notification]:
        """
        Due-soon reminder at 24h, 12h and 1h before ``due_date``. Each threshold
        fires once; when several are pending only the tightest one is sent.
        """
        if commitment.is_completed:
            return None
        now = now or utcnow()
        hours_until_due = (commitment.due_date - now).total_seconds() / 3600
        if hours_until_due < 0:
            return None

        last = commitment.last_due_notification
        pending = [t for t in DUE_SOON_THRESHOLDS if hours_until_due <= t and (last is None or last > t)]
        if not pending:
            return None
        threshold = min(pending)

        claimed = (
            self.db.query(Commitment)
            .filter(
                Commitment.id == commitment.id,
                or_(Commitment.last_due_notification.is_(None), Commitment.last_due_notification > threshold),
            )
            .update({Commitment.last_due_notification: threshold}, synchronize_session=False)
        )
        if not claimed:
            return None
        set_committed_value(commitment, "last_due_notification", threshold)

        return self.emit(
            commitment.user_id,
            "commitment",
            f'Commitment Due Soon: "{commitment.title}"',
            f"Your commitment is due in {threshold} hour{'' if threshold == 1 else 's'}!",
            priority="high" if threshold == 1 else "medium",
            action={"type": "complete", "target_type": "commitment", "target_id": commitment.id},
            metadata={"commitment_id": commitment.id, "due_date": commitment.due_date.isoformat()},
            action_required=True,
        )

    def create_reminder(
        self,
        user_id: int,
        target_type: str,
        target_id: int,
        title: str,
        message: str,
        due_date: Optional[datetime] = None,
    ) -> Notification:
        metadata = {f"{target_type}_id": target_id}
        if due_date is not None:
            metadata["due_date"] = due_date.isoformat()
        return self.emit(
            user_id,
            "reminder",
            title,
            message,
            priority="medium",
            action={"type": "view", "target_type": target_type, "target_id": target_id},
            metadata=metadata,
            action_required=True,
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def list_unread(self, user_id: int) -> list[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read.is_(False))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )

    def list_recent(self, user_id: int, limit: int = 20) -> list[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    def get(self, user_id: int, notification_id: int) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )
        if notification is None:
            raise NotFound("Notification not found")
        return notification

    def mark_read(self, user_id: int, notification_ids: Iterable[int]) -> int:
        """
        Mark the caller's notifications as read. Already-read ids and ids owned
        by someone else are skipped silently. Returns how many changed.
        """
        ids = list({int(i) for i in notification_ids})
        if not ids:
            return 0
        changed = (
            self.db.query(Notification)
            .filter(
                Notification.id.in_(ids),
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
            .update({Notification.read: True, Notification.read_at: utcnow()}, synchronize_session=False)
        )
        commit_or_raise(self.db)
        return changed

    def mark_one_read(self, user_id: int, notification_id: int) -> Notification:
        notification = self.get(user_id, notification_id)
        self.mark_read(user_id, [notification_id])
        self.db.refresh(notification)
        return notification

    def delete(self, user_id: int, notification_id: int) -> None:
        notification = self.get(user_id, notification_id)
        self.db.delete(notification)
        commit_or_raise(self.db)

    def purge_older_than(self, user_id: int, days: int = NOTIFICATION_RETENTION_DAYS) -> int:
        if days < 0:
            raise ValidationError("days must be >= 0")
        cutoff = utcnow() - timedelta(days=days)
        removed = (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        commit_or_raise(self.db)
        if removed:
            logger.info("[NOTIFY] purged %d notification(s) older than %d days for user=%s", removed, days, user_id)
        return removed

    def stats(self, user_id: int) -> dict:
        base = self.db.query(Notification).filter(Notification.user_id == user_id)
        total = base.count()
        unread = base.filter(Notification.read.is_(False)).count()
        high_priority = base.filter(Notification.read.is_(False), Notification.priority == "high").count()
        return {
            "total": total,
            "unread": unread,
            "high_priority": high_priority,
            "has_urgent_notifications": high_priority > 0,
        }
