from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.auth.models import User
from app.commitments.models import commitment_to_dict, reminder_to_dict
from app.commitments.service import CommitmentService
from app.core.deps import get_commitment_service, get_current_user

router = APIRouter(prefix="/commitments", tags=["commitments"])


class RecurrenceIn(BaseModel):
    frequency: str
    interval: int = Field(1, ge=1)
    days_of_week: List[int] = []
    end_date: Optional[datetime] = None
    count: Optional[int] = Field(None, ge=1)


class ReminderIn(BaseModel):
    type: str
    time: datetime


class CommitmentCreate(BaseModel):
    goal_id: int
    title: str
    description: str = ""
    start_date: Optional[datetime] = None
    due_date: datetime
    priority: str = "medium"
    time_estimate: Optional[int] = Field(None, ge=0)
    notes: str = ""
    tags: List[str] = []
    recurrence: Optional[RecurrenceIn] = None
    reminders: List[ReminderIn] = []
    parent_commitment_id: Optional[int] = None


class CommitmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    priority: Optional[str] = None
    time_estimate: Optional[int] = Field(None, ge=0)
    time_spent: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    recurrence: Optional[RecurrenceIn] = None
    is_completed: Optional[bool] = None


def _with_progress(commitments: CommitmentService, commitment) -> dict:
    data = commitment_to_dict(commitment)
    data["progress"] = commitments.progress_of(commitment)
    return data


@router.get("")
def list_commitments(
    goal_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    commitments: CommitmentService = Depends(get_commitment_service),
):
    return [_with_progress(commitments, c) for c in commitments.list_for_user(user.id, goal_id, status)]


@router.post("", status_code=201)
def create_commitment(
    payload: CommitmentCreate,
    user: User = Depends(get_current_user),
    commitments: CommitmentService = Depends(get_commitment_service),
):
    commitment = commitments.create(
        user.id,
        goal_id=payload.goal_id,
        title=payload.title,
        due_date=payload.due_date,
        description=payload.description,
        start_date=payload.start_date,
        priority=payload.priority,
        time_estimate=payload.time_estimate,
        notes=payload.notes,
        tags=payload.tags,
        recurrence=payload.recurrence.model_dump() if payload.recurrence else None,
        reminders=[r.model_dump() for r in payload.reminders],
        parent_commitment_id=payload.parent_commitment_id,
    )
    return _with_progress(commitments, commitment)


@router.get("/{commitment_id}")
def get_commitment(
    commitment_id: int,
    user: User = Depends(get_current_user),
    commitments: CommitmentService = Depends(get_commitment_service),
):
    return _with_progress(commitments, commitments.get(user.id, commitment_id))


@router.put("/{commitment_id}")
def update_commitment(
    commitment_id: int,
    payload: CommitmentUpdate,
    user: User = Depends(get_current_user),
    commitments: CommitmentService = Depends(get_commitment_service),
):
    changes = payload.model_dump(exclude_unset=True)
    commitment = commitments.update(user.id, commitment_id, changes)
    return _with_progress(commitments, commitment)


@router.post("/{commitment_id}/complete")
def complete_commitment(
    commitment_id: int,
    user: User = Depends(get_current_user),
    commitments: CommitmentService = Depends(get_commitment_service),
):
    commitment, upcoming = commitments.complete(user.id, commitment_id)
    return {
        "commitment": _with_progress(commitments, commitment),
        "next_occurrence": commitment_to_dict(upcoming) if upcoming else None,
    }


@router.delete("/{commitment_id}")
def delete_commitment(
    commitment_id: int,
    user: User = Depends(get_current_user),
    commitments: CommitmentService = Depends(get_commitment_service),
):
    commitments.delete(user.id, commitment_id)
    return {"success": True}


# ======================================================
# REMINDERS
# ======================================================
@router.post("/{commitment_id}/reminders", status_code=201)
def add_reminder(
    commitment_id: int,
    payload: ReminderIn,
    user: User = Depends(get_current_user),
    commitments: CommitmentService = Depends(get_commitment_service),
):
    return reminder_to_dict(commitments.add_reminder(user.id, commitment_id, payload.type, payload.time))


@router.post("/{commitment_id}/reminders/{reminder_id}/sent")
def mark_reminder_sent(
    commitment_id: int,
    reminder_id: int,
    user: User = Depends(get_current_user),
    commitments: CommitmentService = Depends(get_commitment_service),
):
    return reminder_to_dict(commitments.mark_reminder_sent(user.id, commitment_id, reminder_id))
