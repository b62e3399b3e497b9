from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.auth.models import User
from app.core.deps import get_current_user, get_social_service
from app.goals.models import comment_to_dict, goal_to_dict, reaction_to_dict
from app.notifications.models import notification_to_dict
from app.social.service import SocialService

router = APIRouter(prefix="/social", tags=["social"])


class ShareRequest(BaseModel):
    user_ids: List[int]
    message: Optional[str] = None


class CommentRequest(BaseModel):
    content: str
    parent_comment_id: Optional[int] = None


class ReactionRequest(BaseModel):
    type: str


@router.post("/goals/{goal_id}/share")
def share_goal(
    goal_id: int,
    payload: ShareRequest,
    user: User = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    goal, sent = social.share_goal(goal_id, user.id, payload.user_ids, payload.message)
    return {"goal": goal_to_dict(goal), "notifications": [notification_to_dict(n) for n in sent]}


@router.get("/goals/shared")
def shared_goals(
    user: User = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    return [goal_to_dict(g) for g in social.get_shared_goals(user.id)]


@router.get("/goals/{goal_id}/comments")
def list_comments(
    goal_id: int,
    user: User = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    return [comment_to_dict(c) for c in social.get_comments(goal_id, user.id)]


@router.post("/goals/{goal_id}/comments", status_code=201)
def add_comment(
    goal_id: int,
    payload: CommentRequest,
    user: User = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    return comment_to_dict(social.add_comment(goal_id, user.id, payload.content, payload.parent_comment_id))


@router.post("/goals/{goal_id}/reactions", status_code=201)
def react(
    goal_id: int,
    payload: ReactionRequest,
    user: User = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    return reaction_to_dict(social.react_to_goal(goal_id, user.id, payload.type))


@router.get("/feed")
def feed(
    user: User = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    return [
        {"goal": goal_to_dict(item["goal"]), "is_owner": item["is_owner"], "is_shared": item["is_shared"]}
        for item in social.get_social_feed(user.id)
    ]
