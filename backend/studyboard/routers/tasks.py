from __future__ import annotations
import logging
from datetime import datetime, tzinfo
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_local_tz, get_now, get_store
from ..identity import Identity
from ..planning import day_start, plan_subtasks
from ..schemas import (
    CompleteTaskRequest,
    CreateSubtaskRequest,
    CreateTaskRequest,
    OkResponse,
    SplitTaskRequest,
    SplitTaskResponse,
    StatusResponse,
)
from ..stats import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_NOT_STARTED,
    TASK_TYPE_PARENT,
    TASK_TYPE_SINGLE,
    TASK_TYPE_SUBTASK,
)
from ..store import RecordStore
from .auth import get_current_identity, require_teacher


router = APIRouter(prefix="/api/tasks", tags=["tasks"])

logger = logging.getLogger(__name__)

# not_started -> in_progress -> completed, and completed starts over
NEXT_STATUS = {
    STATUS_NOT_STARTED: STATUS_IN_PROGRESS,
    STATUS_IN_PROGRESS: STATUS_COMPLETED,
    STATUS_COMPLETED: STATUS_NOT_STARTED,
}


def _check_assignment(store: RecordStore, assigned_to: str, period_id: str) -> None:
    student = store.get_profile(assigned_to)
    period = store.get_period(period_id)
    if not student or not period:
        raise HTTPException(status_code=404, detail="User or period not found")
    if student["grade_id"] and period["grade_id"] and student["grade_id"] != period["grade_id"]:
        raise HTTPException(status_code=400, detail="Grade mismatch between user and test period")


def _assigned_task(store: RecordStore, task_id: str, identity: Identity) -> Dict[str, Any]:
    task = store.get_task(task_id)
    # Only the assignee may change a task's progress
    if not task or task["assigned_to"] != identity.user_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return task


@router.post("/create", response_model=OkResponse)
def create_task(
    req: CreateTaskRequest,
    teacher: Identity = Depends(require_teacher),
    store: RecordStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    _check_assignment(store, req.assigned_to, req.test_period_id)
    task_id = store.insert_task(
        title=req.title,
        description=req.description,
        subject=req.subject,
        priority=req.priority,
        status=req.status,
        due_date=req.due_date or now,
        start_date=req.start_date or now,
        estimated_time=req.estimated_time,
        test_period_id=req.test_period_id,
        assigned_to=req.assigned_to,
        created_by=teacher.user_id,
        is_shared=req.is_shared,
        task_type=TASK_TYPE_SINGLE,
        completed_at=now if req.status == STATUS_COMPLETED else None,
    )
    logger.info("task %s created for %s by %s", task_id, req.assigned_to, teacher.user_id)
    return OkResponse(id=task_id)


@router.post("/split", response_model=SplitTaskResponse, status_code=201)
def create_split_task(
    req: SplitTaskRequest,
    teacher: Identity = Depends(require_teacher),
    store: RecordStore = Depends(get_store),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_local_tz),
):
    if req.range_start is not None and req.range_end is not None and req.range_end < req.range_start:
        raise HTTPException(status_code=400, detail="rangeEnd must not be before rangeStart")
    _check_assignment(store, req.assigned_to, req.test_period_id)
    start = req.start_date or now
    try:
        plan = plan_subtasks(
            title=req.title,
            total_units=req.total_units,
            unit_type=req.unit_type,
            daily_units=req.daily_units,
            start=start,
            tz=tz,
            estimated_time=req.estimated_time,
            range_start=req.range_start,
            range_end=req.range_end,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    shared = {
        "subject": req.subject,
        "priority": req.priority,
        "test_period_id": req.test_period_id,
        "assigned_to": req.assigned_to,
        "created_by": teacher.user_id,
        "is_shared": req.is_shared,
    }
    parent = dict(
        shared,
        title=req.title,
        description=req.description,
        status=req.status,
        task_type=TASK_TYPE_PARENT,
        due_date=req.due_date or now,
        start_date=day_start(start, tz),
        estimated_time=req.estimated_time,
        total_units=req.total_units,
        completed_units=0,
        unit_type=req.unit_type,
        completed_at=now if req.status == STATUS_COMPLETED else None,
    )
    subtasks = [dict(shared, status=STATUS_NOT_STARTED, task_type=TASK_TYPE_SUBTASK, **day) for day in plan]
    parent_id, subtask_ids = store.insert_task_tree(parent, subtasks)
    logger.info("split task %s (%d day(s)) created for %s by %s", parent_id, len(subtask_ids), req.assigned_to, teacher.user_id)
    return SplitTaskResponse(id=parent_id, subtask_ids=subtask_ids)


@router.post("/{task_id}/subtasks", response_model=OkResponse, status_code=201)
def add_subtask(
    task_id: str,
    req: CreateSubtaskRequest,
    teacher: Identity = Depends(require_teacher),
    store: RecordStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    parent = store.get_task(task_id)
    if parent is None:
        raise HTTPException(status_code=404, detail="Task not found")
    if parent["task_type"] != TASK_TYPE_PARENT:
        raise HTTPException(status_code=400, detail="Subtasks can only be added to a parent task")
    subtask_id = store.insert_task(
        title=req.title,
        description=req.description,
        subject=parent["subject"],
        priority="medium",
        status=STATUS_NOT_STARTED,
        due_date=req.due_date or now,
        start_date=now,
        estimated_time=req.estimated_time,
        test_period_id=parent["test_period_id"],
        assigned_to=parent["assigned_to"],
        created_by=teacher.user_id,
        is_shared=parent["is_shared"],
        task_type=TASK_TYPE_SUBTASK,
        parent_task_id=task_id,
        total_units=req.total_units,
        completed_units=0,
        unit_type=req.unit_type,
    )
    logger.info("subtask %s added under %s by %s", subtask_id, task_id, teacher.user_id)
    return OkResponse(id=subtask_id)


@router.post("/complete", response_model=OkResponse)
def complete_task(
    req: CompleteTaskRequest,
    identity: Identity = Depends(get_current_identity),
    store: RecordStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    task = _assigned_task(store, req.task_id, identity)
    fields = {"status": STATUS_COMPLETED}
    # completed_at marks the transition; re-completing keeps the first stamp
    if task["status"] != STATUS_COMPLETED or task["completed_at"] is None:
        fields["completed_at"] = now
    if req.actual_time is not None:
        fields["actual_time"] = req.actual_time
    store.update_task(req.task_id, **fields)
    logger.info("task %s completed by %s", req.task_id, identity.user_id)
    return OkResponse(id=req.task_id)


@router.post("/{task_id}/advance", response_model=StatusResponse)
def advance_status(
    task_id: str,
    identity: Identity = Depends(get_current_identity),
    store: RecordStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    task = _assigned_task(store, task_id, identity)
    status = NEXT_STATUS.get(task["status"], STATUS_NOT_STARTED)
    store.update_task(
        task_id,
        status=status,
        completed_at=now if status == STATUS_COMPLETED else None,
    )
    logger.info("task %s moved %s -> %s by %s", task_id, task["status"], status, identity.user_id)
    return StatusResponse(id=task_id, status=status)
