"""
Commitment lifecycle: create / update / complete / delete, reminders and the
due-soon sweep. Completion is the main activity signal of the app: it feeds the
goal's progress, the user's streak and the completion achievements.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.achievements.service import AchievementService
from app.achievements.streaks import advance_streak
from app.auth.models import User
from app.commitments.models import FREQUENCIES, REMINDER_TYPES, Commitment, Reminder
from app.commitments.schedule import commitment_progress, derive_status, next_occurrence
from app.core.errors import NotFound, ValidationError
from app.db.base import to_naive_utc, utcnow
from app.db.session import commit_or_raise
from app.goals.models import PRIORITIES
from app.goals.progress import ProgressService
from app.goals.service import get_owned_goal
from app.notifications.service import DUE_SOON_THRESHOLDS, NotificationService

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title",
    "description",
    "start_date",
    "due_date",
    "priority",
    "time_estimate",
    "time_spent",
    "notes",
    "tags",
)


def _validate_recurrence(recurrence: Optional[dict]) -> dict:
    if not recurrence:
        return {}
    frequency = recurrence.get("frequency")
    if frequency not in FREQUENCIES:
        raise ValidationError(f"recurrence frequency must be one of: {', '.join(FREQUENCIES)}")
    interval = recurrence.get("interval") or 1
    if interval < 1:
        raise ValidationError("recurrence interval must be >= 1")
    days = recurrence.get("days_of_week") or []
    if any(d < 0 or d > 6 for d in days):
        raise ValidationError("days_of_week entries must be 0 (Sunday) to 6 (Saturday)")
    if frequency == "custom" and not days:
        raise ValidationError("custom recurrence needs days_of_week")
    count = recurrence.get("count")
    if count is not None and count < 1:
        raise ValidationError("recurrence count must be >= 1")
    return {
        "recurrence_frequency": frequency,
        "recurrence_interval": interval,
        "recurrence_days_of_week": sorted(set(days)) or None,
        "recurrence_end_date": to_naive_utc(recurrence.get("end_date")),
        "recurrence_count": count,
    }


class CommitmentService:
    def __init__(
        self,
        db: Session,
        progress: ProgressService,
        achievements: AchievementService,
        notifications: NotificationService,
    ):
        self.db = db
        self.progress = progress
        self.achievements = achievements
        self.notifications = notifications

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, user_id: int, commitment_id: int) -> Commitment:
        commitment = self.db.get(Commitment, commitment_id)
        if commitment is None or commitment.user_id != user_id:
            raise NotFound("Commitment not found")
        return commitment

    def list_for_user(self, user_id: int, goal_id: Optional[int] = None, status: Optional[str] = None) -> list[Commitment]:
        query = self.db.query(Commitment).filter(Commitment.user_id == user_id)
        if goal_id is not None:
            query = query.filter(Commitment.goal_id == goal_id)
        commitments = query.order_by(Commitment.due_date.asc(), Commitment.id.asc()).all()
        if status:
            # Stored status can lag behind the clock; filter on the derived one
            now = utcnow()
            commitments = [
                c for c in commitments if derive_status(c.is_completed, c.start_date, c.due_date, now) == status
            ]
        return commitments

    def progress_of(self, commitment: Commitment) -> int:
        return commitment_progress(commitment.is_completed, (s.is_completed for s in commitment.sub_commitments))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        user_id: int,
        goal_id: int,
        title: str,
        due_date: datetime,
        description: str = "",
        start_date: Optional[datetime] = None,
        priority: str = "medium",
        time_estimate: Optional[int] = None,
        notes: str = "",
        tags: Optional[list] = None,
        recurrence: Optional[dict] = None,
        reminders: Optional[list] = None,
        parent_commitment_id: Optional[int] = None,
    ) -> Commitment:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        if due_date is None:
            raise ValidationError("Due date is required")
        if priority not in PRIORITIES:
            raise ValidationError(f"priority must be one of: {', '.join(PRIORITIES)}")
        goal = get_owned_goal(self.db, user_id, goal_id)

        start = to_naive_utc(start_date) or utcnow()
        due = to_naive_utc(due_date)
        if due < start:
            raise ValidationError("Due date must not be before start date")

        if parent_commitment_id is not None:
            parent = self.get(user_id, parent_commitment_id)
            if parent.goal_id != goal.id:
                raise ValidationError("Sub-commitment must belong to the same goal")

        commitment = Commitment(
            user_id=user_id,
            goal_id=goal.id,
            title=title.strip(),
            description=description or "",
            start_date=start,
            due_date=due,
            priority=priority,
            time_estimate=time_estimate,
            notes=notes or "",
            tags=list(tags or []),
            parent_commitment_id=parent_commitment_id,
            **_validate_recurrence(recurrence),
        )
        for data in reminders or []:
            commitment.reminders.append(self._build_reminder(data.get("type"), data.get("time")))

        self.db.add(commitment)
        commit_or_raise(self.db)
        logger.info("[COMMITMENT] created commitment=%s goal=%s user=%s", commitment.id, goal.id, user_id)
        self.progress.recalculate(goal.id)
        self.db.refresh(commitment)
        return commitment

    def update(self, user_id: int, commitment_id: int, changes: dict) -> Commitment:
        commitment = self.get(user_id, commitment_id)

        for field in EDITABLE_FIELDS:
            if field not in changes:
                continue
            value = changes[field]
            if field == "title" and (not value or not value.strip()):
                raise ValidationError("Title is required")
            if field == "priority" and value not in PRIORITIES:
                raise ValidationError(f"priority must be one of: {', '.join(PRIORITIES)}")
            if field in ("start_date", "due_date"):
                if value is None:
                    raise ValidationError(f"{field} cannot be empty")
                value = to_naive_utc(value)
            if field == "tags":
                value = list(value or [])
            setattr(commitment, field, value)

        if commitment.due_date < commitment.start_date:
            raise ValidationError("Due date must not be before start date")
        if "recurrence" in changes:
            fields = _validate_recurrence(changes["recurrence"])
            for column in (
                "recurrence_frequency",
                "recurrence_interval",
                "recurrence_days_of_week",
                "recurrence_end_date",
                "recurrence_count",
            ):
                setattr(commitment, column, fields.get(column))
        if "due_date" in changes:
            # New deadline, new round of due-soon reminders
            commitment.last_due_notification = None

        completion_changed = "is_completed" in changes and bool(changes["is_completed"]) != commitment.is_completed
        if completion_changed and changes["is_completed"]:
            commit_or_raise(self.db)
            commitment, _ = self.complete(user_id, commitment_id)
            return commitment
        if completion_changed:
            commitment.is_completed = False
            commitment.completed_at = None

        commit_or_raise(self.db)
        if completion_changed:
            self.progress.recalculate(commitment.goal_id)
            self.achievements.check_completion_achievements(user_id)
        self.db.refresh(commitment)
        return commitment

    def complete(self, user_id: int, commitment_id: int) -> tuple[Commitment, Optional[Commitment]]:
        """
        Mark done. Returns (commitment, next occurrence or None). Completing an
        already completed commitment changes nothing.
        """
        commitment = self.get(user_id, commitment_id)
        if commitment.is_completed:
            return commitment, None

        now = utcnow()
        commitment.is_completed = True
        commitment.completed_at = now

        user = self.db.get(User, user_id)
        user.current_streak, user.longest_streak, user.last_activity_date = advance_streak(
            user.current_streak or 0, user.longest_streak or 0, user.last_activity_date, now.date()
        )

        upcoming = self._spawn_next_occurrence(commitment)
        commit_or_raise(self.db)
        logger.info(
            "[COMMITMENT] completed commitment=%s goal=%s user=%s streak=%d",
            commitment.id,
            commitment.goal_id,
            user_id,
            user.current_streak,
        )

        self.progress.recalculate(commitment.goal_id)
        self.achievements.check_streak_achievements(user_id, user.current_streak)
        self.achievements.check_completion_achievements(user_id)
        self.db.refresh(commitment)
        return commitment, upcoming

    def _spawn_next_occurrence(self, commitment: Commitment) -> Optional[Commitment]:
        if not commitment.is_recurring:
            return None
        next_due = next_occurrence(
            commitment.due_date,
            commitment.recurrence_frequency,
            commitment.recurrence_interval,
            commitment.recurrence_days_of_week,
            commitment.recurrence_end_date,
            commitment.recurrence_count,
        )
        if next_due is None:
            return None
        shift = next_due - commitment.due_date
        upcoming = Commitment(
            user_id=commitment.user_id,
            goal_id=commitment.goal_id,
            title=commitment.title,
            description=commitment.description,
            start_date=commitment.start_date + shift,
            due_date=next_due,
            priority=commitment.priority,
            time_estimate=commitment.time_estimate,
            notes=commitment.notes,
            tags=list(commitment.tags or []),
            recurrence_frequency=commitment.recurrence_frequency,
            recurrence_interval=commitment.recurrence_interval,
            recurrence_days_of_week=commitment.recurrence_days_of_week,
            recurrence_end_date=commitment.recurrence_end_date,
            recurrence_count=(commitment.recurrence_count - 1) if commitment.recurrence_count else None,
        )
        for r in commitment.reminders:
            upcoming.reminders.append(Reminder(type=r.type, time=r.time + shift, sent=False))
        self.db.add(upcoming)
        return upcoming

    def delete(self, user_id: int, commitment_id: int) -> None:
        commitment = self.get(user_id, commitment_id)
        goal_id = commitment.goal_id
        for sub in list(commitment.sub_commitments):
            sub.parent_commitment_id = None
        self.db.delete(commitment)
        commit_or_raise(self.db)
        logger.info("[COMMITMENT] deleted commitment=%s goal=%s user=%s", commitment_id, goal_id, user_id)
        self.progress.recalculate(goal_id)

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    @staticmethod
    def _build_reminder(type: Optional[str], time: Optional[datetime]) -> Reminder:
        if type not in REMINDER_TYPES:
            raise ValidationError(f"reminder type must be one of: {', '.join(REMINDER_TYPES)}")
        if time is None:
            raise ValidationError("reminder time is required")
        return Reminder(type=type, time=to_naive_utc(time), sent=False)

    def add_reminder(self, user_id: int, commitment_id: int, type: str, time: datetime) -> Reminder:
        commitment = self.get(user_id, commitment_id)
        reminder = self._build_reminder(type, time)
        commitment.reminders.append(reminder)
        commit_or_raise(self.db)
        self.db.refresh(reminder)
        return reminder

    def mark_reminder_sent(self, user_id: int, commitment_id: int, reminder_id: int) -> Reminder:
        commitment = self.get(user_id, commitment_id)
        reminder = next((r for r in commitment.reminders if r.id == reminder_id), None)
        if reminder is None:
            raise NotFound("Reminder not found")
        if not reminder.sent:
            reminder.sent = True
            reminder.sent_at = utcnow()
            commit_or_raise(self.db)
        return reminder

    def run_reminder_sweep(self, now: Optional[datetime] = None) -> dict:
        """
        Deliver scheduled reminders whose time has come and the 24h/12h/1h
        due-soon notifications. Safe to run repeatedly; nothing fires twice.
        """
        now = now or utcnow()
        reminders_sent = 0
        due_soon_sent = 0

        scheduled = (
            self.db.query(Reminder)
            .join(Commitment, Commitment.id == Reminder.commitment_id)
            .filter(Reminder.sent.is_(False), Reminder.time <= now, Commitment.is_completed.is_(False))
            .all()
        )
        for reminder in scheduled:
            claimed = (
                self.db.query(Reminder)
                .filter(Reminder.id == reminder.id, Reminder.sent.is_(False))
                .update({Reminder.sent: True, Reminder.sent_at: now}, synchronize_session=False)
            )
            commit_or_raise(self.db)
            if not claimed:
                continue
            commitment = reminder.commitment
            self.notifications.create_reminder(
                commitment.user_id,
                "commitment",
                commitment.id,
                f'Reminder: "{commitment.title}"',
                f"Don't forget your commitment, due {commitment.due_date:%Y-%m-%d %H:%M} UTC.",
                commitment.due_date,
            )
            reminders_sent += 1

        upcoming = (
            self.db.query(Commitment)
            .filter(
                Commitment.is_completed.is_(False),
                Commitment.due_date >= now,
                Commitment.due_date <= now + timedelta(hours=max(DUE_SOON_THRESHOLDS)),
            )
            .all()
        )
        for commitment in upcoming:
            if self.notifications.notify_commitment_due(commitment, now) is not None:
                due_soon_sent += 1

        if reminders_sent or due_soon_sent:
            logger.info("[REMINDERS] sweep sent reminders=%d due_soon=%d", reminders_sent, due_soon_sent)
        return {"reminders": reminders_sent, "due_soon": due_soon_sent}
