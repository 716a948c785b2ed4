from __future__ import annotations
import logging
from datetime import datetime, tzinfo
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from ..deps import NO_STORE, get_local_tz, get_now, get_store, mark_cacheable
from ..identity import Identity
from ..stats import SubjectSummary, TaskSummary, summarize, summarize_by_subject
from ..store import RecordStore
from .auth import require_teacher


router = APIRouter(prefix="/api/stats", tags=["stats"])

logger = logging.getLogger(__name__)


def parse_period_ids(period_id: Optional[str]) -> List[str]:
    """Split a comma-separated ``period_id`` query value, dropping empty parts."""
    if not period_id:
        return []
    return [p.strip() for p in period_id.split(",") if p.strip()]


def _require_student_id(student_id: Optional[str]) -> str:
    if not student_id:
        raise HTTPException(status_code=400, detail="student_id is required", headers=NO_STORE)
    return student_id


@router.get("/student", response_model=TaskSummary)
def student_summary(
    response: Response,
    student_id: Optional[str] = None,
    period_id: Optional[str] = None,
    teacher: Identity = Depends(require_teacher),
    store: RecordStore = Depends(get_store),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_local_tz),
):
    student_id = _require_student_id(student_id)
    period_ids = parse_period_ids(period_id)
    tasks = store.fetch_tasks(student_id, period_ids)
    summary = summarize(tasks, now, period_filter=set(period_ids), tz=tz)
    logger.debug("stats for %s requested by %s: %s", student_id, teacher.user_id, summary)
    mark_cacheable(response)
    return summary


@router.get("/student/subjects", response_model=List[SubjectSummary])
def student_subjects(
    response: Response,
    student_id: Optional[str] = None,
    period_id: Optional[str] = None,
    teacher: Identity = Depends(require_teacher),
    store: RecordStore = Depends(get_store),
):
    student_id = _require_student_id(student_id)
    period_ids = parse_period_ids(period_id)
    tasks = store.fetch_tasks(student_id, period_ids, exclude_parent=True)
    mark_cacheable(response)
    return summarize_by_subject(tasks, period_filter=set(period_ids))
