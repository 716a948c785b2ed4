from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from ..deps import NO_STORE, get_store, mark_cacheable
from ..identity import Identity
from ..schemas import StudentByGrade, StudentByPeriod
from ..store import RecordStore
from .auth import require_teacher


router = APIRouter(prefix="/api/students", tags=["students"])


@router.get("/by-grade", response_model=List[StudentByGrade])
def by_grade(
    response: Response,
    grade_id: Optional[str] = None,
    period_id: Optional[str] = None,
    teacher: Identity = Depends(require_teacher),
    store: RecordStore = Depends(get_store),
):
    if not grade_id:
        raise HTTPException(status_code=400, detail="grade_id is required", headers=NO_STORE)
    # A teacher sees a grade only through a test period they created for it
    if not store.teacher_has_period(teacher.user_id, grade_id, period_id):
        raise HTTPException(status_code=403, detail="Not authorized for this grade", headers=NO_STORE)
    mark_cacheable(response)
    return [StudentByGrade(**s) for s in store.students_by_grade(grade_id)]


@router.get("/by-period", response_model=List[StudentByPeriod])
def by_period(
    response: Response,
    period_id: Optional[str] = None,
    teacher: Identity = Depends(require_teacher),
    store: RecordStore = Depends(get_store),
):
    if not period_id:
        raise HTTPException(status_code=400, detail="period_id is required", headers=NO_STORE)
    mark_cacheable(response)
    profiles = store.profiles_by_ids(store.student_ids_for_period(period_id))
    grades = store.grade_numbers(sorted({p["grade_id"] for p in profiles if p["grade_id"]}))
    return [
        StudentByPeriod(
            id=p["id"],
            display_name=p["display_name"],
            grade_id=p["grade_id"],
            grade_number=grades.get(p["grade_id"]) if p["grade_id"] else None,
        )
        for p in profiles
    ]
