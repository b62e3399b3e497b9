"""
Delete notifications older than NOTIFICATION_RETENTION_DAYS for every user.

Usage: python scripts/purge_notifications.py [days]
"""
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from app.db.session import SessionLocal
from app.auth.models import User
from app.core.config import NOTIFICATION_RETENTION_DAYS
from app.notifications.service import NotificationService


def purge_notifications(days: int = NOTIFICATION_RETENTION_DAYS) -> int:
    db = SessionLocal()
    try:
        notifications = NotificationService(db)
        total = 0
        for (user_id,) in db.query(User.id).order_by(User.id).all():
            total += notifications.purge_older_than(user_id, days)
        print(f"Deleted {total} notifications older than {days} days", flush=True)
        return total
    finally:
        db.close()


if __name__ == "__main__":
    purge_notifications(int(sys.argv[1]) if len(sys.argv) > 1 else NOTIFICATION_RETENTION_DAYS)
