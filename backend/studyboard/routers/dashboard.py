from __future__ import annotations
from datetime import datetime, tzinfo
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import NO_STORE, get_local_tz, get_now, get_store
from ..identity import Identity
from ..stats import DailyDashboard, daily_dashboard
from ..store import RecordStore
from .auth import get_current_identity


router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/student", response_model=DailyDashboard)
def student_dashboard(
    student_id: Optional[str] = Query(default=None, alias="studentId"),
    period_id: Optional[str] = Query(default=None, alias="periodId"),
    identity: Identity = Depends(get_current_identity),
    store: RecordStore = Depends(get_store),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_local_tz),
):
    if not student_id or not period_id:
        raise HTTPException(status_code=400, detail="studentId and periodId are required", headers=NO_STORE)
    # Students see their own board; teachers may look at anyone's
    if student_id != identity.user_id and not identity.is_teacher:
        raise HTTPException(status_code=403, detail="Forbidden", headers=NO_STORE)
    tasks = store.fetch_tasks(student_id, [period_id])
    return daily_dashboard(tasks, now, tz=tz)
