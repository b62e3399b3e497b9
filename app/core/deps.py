"""
FastAPI dependencies: authenticated user and the service objects.

Services are plain objects built per request around the request's session, so
tests can swap any of them (or the push channel) via ``app.dependency_overrides``.
"""
from fastapi import Request, Depends, HTTPException
from sqlalchemy.orm import Session

from app.achievements.service import AchievementService
from app.auth.models import User
from app.commitments.service import CommitmentService
from app.core.security import user_id_from_token
from app.db.base import utcnow
from app.db.session import get_db
from app.goals.progress import ProgressService
from app.goals.service import GoalService
from app.notifications.push import PushChannel, build_push_channel
from app.notifications.service import NotificationService
from app.social.service import SocialService

_push_channel = build_push_channel()


def _extract_token(request: Request):
    token = request.cookies.get("access_token")
    if not token:
        header = request.headers.get("authorization") or ""
        if header.lower().startswith("bearer "):
            token = header[7:].strip()
    # Support both "Bearer <token>" and raw token values in the cookie.
    if isinstance(token, str) and token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token


def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
) -> User:
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = user_id_from_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.get(User, user_id)
    if not user:
        print(f"[AUTH] reject reason=user_not_found user_id={user_id} path={request.url.path}", flush=True)
        raise HTTPException(status_code=401, detail="User not found")

    # Update last_active timestamp
    try:
        user.last_active = utcnow()
        db.commit()
    except Exception:
        db.rollback()

    return user


def get_push_channel() -> PushChannel:
    return _push_channel


def get_notification_service(
    db: Session = Depends(get_db),
    push: PushChannel = Depends(get_push_channel),
) -> NotificationService:
    return NotificationService(db, push)


def get_achievement_service(
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> AchievementService:
    return AchievementService(db, notifications)


def get_progress_service(
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
    achievements: AchievementService = Depends(get_achievement_service),
) -> ProgressService:
    return ProgressService(db, notifications, achievements)


def get_goal_service(
    db: Session = Depends(get_db),
    progress: ProgressService = Depends(get_progress_service),
) -> GoalService:
    return GoalService(db, progress)


def get_commitment_service(
    db: Session = Depends(get_db),
    progress: ProgressService = Depends(get_progress_service),
    achievements: AchievementService = Depends(get_achievement_service),
    notifications: NotificationService = Depends(get_notification_service),
) -> CommitmentService:
    return CommitmentService(db, progress, achievements, notifications)


def get_social_service(
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
    achievements: AchievementService = Depends(get_achievement_service),
) -> SocialService:
    return SocialService(db, notifications, achievements)
