from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.auth.models import User
from app.core.deps import get_current_user, get_goal_service, get_progress_service
from app.goals.models import goal_to_dict
from app.goals.progress import ProgressService
from app.goals.service import GoalService, get_owned_goal

router = APIRouter(prefix="/goals", tags=["goals"])


class MilestoneIn(BaseModel):
    title: str
    description: str = ""
    target_date: Optional[datetime] = None
    is_completed: bool = False


class MetricIn(BaseModel):
    type: Optional[str] = None
    target: float = Field(..., ge=0)
    current: float = Field(0, ge=0)
    unit: Optional[str] = None


class GoalCreate(BaseModel):
    title: str
    description: str = ""
    category: str = "general"
    target_date: Optional[datetime] = None
    priority: str = "medium"
    visibility: str = "private"
    tags: List[str] = []
    milestones: List[MilestoneIn] = []
    metrics: Optional[MetricIn] = None
    parent_goal_id: Optional[int] = None


class GoalUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    target_date: Optional[datetime] = None
    priority: Optional[str] = None
    visibility: Optional[str] = None
    tags: Optional[List[str]] = None
    metrics: Optional[MetricIn] = None
    parent_goal_id: Optional[int] = None


class MilestoneToggle(BaseModel):
    is_completed: bool


class MetricUpdate(BaseModel):
    current: float = Field(..., ge=0)


@router.get("")
def list_goals(
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    return [goal_to_dict(g) for g in goals.list_goals(user.id)]


@router.post("", status_code=201)
def create_goal(
    payload: GoalCreate,
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    goal = goals.create_goal(
        user.id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        target_date=payload.target_date,
        priority=payload.priority,
        visibility=payload.visibility,
        tags=payload.tags,
        milestones=[m.model_dump() for m in payload.milestones],
        metrics=payload.metrics.model_dump() if payload.metrics else None,
        parent_goal_id=payload.parent_goal_id,
    )
    return goal_to_dict(goal)


@router.get("/{goal_id}")
def get_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    return goal_to_dict(goals.get_goal(user.id, goal_id))


@router.put("/{goal_id}")
def update_goal(
    goal_id: int,
    payload: GoalUpdate,
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    changes = payload.model_dump(exclude_unset=True)
    goal = goals.update_goal(user.id, goal_id, changes)
    return goal_to_dict(goal)


@router.delete("/{goal_id}")
def delete_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    goals.delete_goal(user.id, goal_id)
    return {"success": True}


@router.post("/{goal_id}/recalculate")
def recalculate_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    progress: ProgressService = Depends(get_progress_service),
):
    goal = get_owned_goal(progress.db, user.id, goal_id)
    return goal_to_dict(progress.recalculate(goal.id))


# ======================================================
# MILESTONES / METRIC
# ======================================================
@router.post("/{goal_id}/milestones", status_code=201)
def add_milestone(
    goal_id: int,
    payload: MilestoneIn,
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    return goal_to_dict(goals.add_milestone(user.id, goal_id, payload.model_dump()))


@router.put("/{goal_id}/milestones/{milestone_id}")
def toggle_milestone(
    goal_id: int,
    milestone_id: int,
    payload: MilestoneToggle,
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    goal = goals.set_milestone_completed(user.id, goal_id, milestone_id, payload.is_completed)
    return goal_to_dict(goal)


@router.delete("/{goal_id}/milestones/{milestone_id}")
def delete_milestone(
    goal_id: int,
    milestone_id: int,
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    return goal_to_dict(goals.delete_milestone(user.id, goal_id, milestone_id))


@router.put("/{goal_id}/metric")
def update_metric(
    goal_id: int,
    payload: MetricUpdate,
    user: User = Depends(get_current_user),
    goals: GoalService = Depends(get_goal_service),
):
    return goal_to_dict(goals.update_metric(user.id, goal_id, payload.current))
