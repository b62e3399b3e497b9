"""
Reminder sweep: run from cron every few minutes.

1. Delivers scheduled reminders whose time has passed (once each)
2. Sends the 24h / 12h / 1h due-soon notifications for open commitments

Usage: python scripts/send_due_reminders.py
"""
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from app.db.session import SessionLocal
from app.achievements.service import AchievementService
from app.commitments.service import CommitmentService
from app.goals.progress import ProgressService
from app.notifications.push import build_push_channel
from app.notifications.service import NotificationService


def send_due_reminders() -> dict:
    db = SessionLocal()
    try:
        notifications = NotificationService(db, build_push_channel())
        achievements = AchievementService(db, notifications)
        progress = ProgressService(db, notifications, achievements)
        commitments = CommitmentService(db, progress, achievements, notifications)
        result = commitments.run_reminder_sweep()
        print(f"Sent {result['reminders']} reminders, {result['due_soon']} due-soon notifications", flush=True)
        return result
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(name)s %(message)s")
    send_due_reminders()
