"""
API routes for the signed-in user's profile, devices and achievements.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.achievements.models import achievement_to_dict
from app.achievements.service import AchievementService
from app.achievements.streaks import effective_streak
from app.auth.models import DeviceToken, User
from app.core.deps import get_achievement_service, get_current_user
from app.core.errors import ValidationError
from app.db.base import utcnow
from app.db.session import commit_or_raise, get_db

router = APIRouter(prefix="/api", tags=["api"])

PLATFORMS = ("ios", "android", "web")
PROFILE_FIELDS = ("name", "bio", "timezone", "email_notifications", "push_notifications")


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    bio: Optional[str] = None
    timezone: Optional[str] = None
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None


class DeviceTokenIn(BaseModel):
    token: str = Field(..., min_length=1)
    platform: str = "web"


def _profile(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "bio": user.bio or "",
        "timezone": user.timezone,
        "email_notifications": user.email_notifications,
        "push_notifications": user.push_notifications,
        "level": user.level,
        "total_points": user.total_points,
        "current_streak": effective_streak(user.current_streak, user.last_activity_date, utcnow().date()),
        "longest_streak": user.longest_streak,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return _profile(user)


@router.put("/me")
def update_me(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("Please enter a valid name")
    for field, value in changes.items():
        if field in PROFILE_FIELDS and value is not None:
            setattr(user, field, value.strip() if isinstance(value, str) else value)
    commit_or_raise(db)
    db.refresh(user)
    return _profile(user)


@router.post("/me/devices", status_code=201)
def register_device(
    payload: DeviceTokenIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if payload.platform not in PLATFORMS:
        raise ValidationError(f"platform must be one of: {', '.join(PLATFORMS)}")

    device = (
        db.query(DeviceToken)
        .filter(DeviceToken.user_id == user.id, DeviceToken.token == payload.token)
        .first()
    )
    if device is None:
        device = DeviceToken(user_id=user.id, token=payload.token)
        db.add(device)
    device.platform = payload.platform
    device.last_active = utcnow()
    commit_or_raise(db)
    return {"token": device.token, "platform": device.platform}


# ======================================================
# ACHIEVEMENTS
# ======================================================
@router.get("/me/achievements")
def list_achievements(
    user: User = Depends(get_current_user),
    achievements: AchievementService = Depends(get_achievement_service),
):
    return [achievement_to_dict(a) for a in achievements.list_for_user(user.id)]


@router.get("/me/achievements/summary")
def achievement_summary(
    user: User = Depends(get_current_user),
    achievements: AchievementService = Depends(get_achievement_service),
):
    summary = achievements.summary(user.id)
    summary["recent_achievements"] = [achievement_to_dict(a) for a in summary["recent_achievements"]]
    return summary


@router.post("/me/achievements/check")
def check_achievements(
    user: User = Depends(get_current_user),
    achievements: AchievementService = Depends(get_achievement_service),
):
    """Re-evaluate streak and completion achievements; returns the ones unlocked now."""
    streak = effective_streak(user.current_streak, user.last_activity_date, utcnow().date())
    unlocked = achievements.check_streak_achievements(user.id, streak)
    unlocked += achievements.check_completion_achievements(user.id)
    return [achievement_to_dict(a) for a in unlocked]


@router.post("/me/achievements/milestones/{goal_id}")
def check_milestone_achievements(
    goal_id: int,
    user: User = Depends(get_current_user),
    achievements: AchievementService = Depends(get_achievement_service),
):
    return [achievement_to_dict(a) for a in achievements.check_milestone_achievements(user.id, goal_id)]
