from __future__ import annotations
import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Grade, Task, TestPeriod, UserProfile
from .stats import TASK_TYPE_PARENT, parse_timestamp

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def to_db_timestamp(value: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Naive UTC datetime for storage; naive input is read in ``tz``."""
    parsed = parse_timestamp(value, tz)
    if parsed is None:
        return None
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def _row(obj: Any) -> Optional[Row]:
    if obj is None:
        return None
    out: Row = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.name)
        # Stored timestamps are naive UTC
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        out[column.name] = value
    return out


def _rows(objs: Iterable[Any]) -> List[Row]:
    return [_row(o) for o in objs]


class RecordStore:
    """Equality-filtered reads and writes over the task tables.

    All reads hand back plain dicts keyed by column name with timestamps as
    aware UTC datetimes.
    """

    def __init__(self, db: Session, *, tz: Optional[tzinfo] = None) -> None:
        self.db = db
        self.tz = tz or timezone.utc

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    # ---- tasks ----

    def fetch_tasks(
        self,
        assigned_to: str,
        period_ids: Optional[List[str]] = None,
        *,
        exclude_parent: bool = False,
    ) -> List[Row]:
        q = self.db.query(Task).filter(Task.assigned_to == assigned_to)
        if period_ids:
            if len(period_ids) == 1:
                q = q.filter(Task.test_period_id == period_ids[0])
            else:
                q = q.filter(Task.test_period_id.in_(period_ids))
        if exclude_parent:
            q = q.filter(Task.task_type != TASK_TYPE_PARENT)
        return _rows(q.order_by(Task.created_at, Task.id).all())

    def get_task(self, task_id: str) -> Optional[Row]:
        return _row(self.db.get(Task, task_id))

    def _task(self, fields: Dict[str, Any]) -> Task:
        fields = dict(fields)
        for key in ("due_date", "start_date", "completed_at"):
            if key in fields:
                fields[key] = to_db_timestamp(fields[key], self.tz)
        return Task(**fields)

    def insert_task(self, **fields: Any) -> str:
        row = self._task(fields)
        self.db.add(row)
        self._commit()
        return row.id

    def insert_task_tree(self, parent: Dict[str, Any], subtasks: List[Dict[str, Any]]) -> Tuple[str, List[str]]:
        """Insert a parent task and its subtasks in one transaction."""
        root = self._task(parent)
        self.db.add(root)
        self.db.flush()
        children = [self._task({**s, "parent_task_id": root.id}) for s in subtasks]
        self.db.add_all(children)
        self._commit()
        return root.id, [c.id for c in children]

    def update_task(self, task_id: str, **fields: Any) -> bool:
        row = self.db.get(Task, task_id)
        if row is None:
            return False
        for key, value in fields.items():
            if key in ("due_date", "start_date", "completed_at"):
                value = to_db_timestamp(value, self.tz)
            setattr(row, key, value)
        self.db.add(row)
        self._commit()
        return True

    def reassign_tasks(self, from_period_id: str, to_period_id: str) -> int:
        res = self.db.execute(
            update(Task)
            .where(Task.test_period_id == from_period_id)
            .values(test_period_id=to_period_id)
        )
        self._commit()
        moved = res.rowcount or 0
        logger.info("moved %d task(s) from test period %s to %s", moved, from_period_id, to_period_id)
        return moved

    def period_ids_for_student(self, user_id: str) -> List[str]:
        rows = (
            self.db.query(Task.test_period_id)
            .filter(Task.assigned_to == user_id, Task.test_period_id.isnot(None))
            .distinct()
            .all()
        )
        return [r[0] for r in rows]

    def student_ids_for_period(self, period_id: str) -> List[str]:
        rows = (
            self.db.query(Task.assigned_to)
            .filter(Task.test_period_id == period_id, Task.assigned_to.isnot(None))
            .distinct()
            .all()
        )
        return [r[0] for r in rows]

    # ---- profiles & grades ----

    def get_profile(self, user_id: str) -> Optional[Row]:
        return _row(self.db.get(UserProfile, user_id))

    def create_profile(
        self,
        *,
        role: str,
        display_name: str = "",
        email: Optional[str] = None,
        grade_id: Optional[str] = None,
        student_number: Optional[int] = None,
        commit: bool = True,
    ) -> str:
        row = UserProfile(
            role=role,
            display_name=display_name,
            email=email,
            grade_id=grade_id,
            student_number=student_number,
        )
        self.db.add(row)
        if commit:
            self._commit()
        else:
            self.db.flush()
        return row.id

    def profiles_by_ids(self, ids: List[str]) -> List[Row]:
        if not ids:
            return []
        return _rows(self.db.query(UserProfile).filter(UserProfile.id.in_(ids)).order_by(UserProfile.id).all())

    def students_by_grade(self, grade_id: str) -> List[Row]:
        q = (
            self.db.query(UserProfile)
            .filter(UserProfile.role == "student", UserProfile.grade_id == grade_id)
            # student_number ascending, students without one last
            .order_by(UserProfile.student_number.is_(None), UserProfile.student_number.asc(), UserProfile.id)
        )
        return _rows(q.all())

    def get_grade(self, grade_id: str) -> Optional[Row]:
        return _row(self.db.get(Grade, grade_id))

    def grade_numbers(self, ids: List[str]) -> Dict[str, int]:
        if not ids:
            return {}
        rows = self.db.query(Grade).filter(Grade.id.in_(ids)).all()
        return {g.id: g.grade_number for g in rows}

    # ---- test periods ----

    def get_period(self, period_id: str) -> Optional[Row]:
        return _row(self.db.get(TestPeriod, period_id))

    def create_period(
        self,
        *,
        title: str,
        start_date: Any,
        end_date: Any,
        grade_id: Optional[str],
        created_by: str,
        subjects: Optional[List[str]] = None,
    ) -> str:
        row = TestPeriod(
            title=title,
            start_date=to_db_timestamp(start_date, self.tz),
            end_date=to_db_timestamp(end_date, self.tz),
            grade_id=grade_id,
            subjects=list(subjects or []),
            created_by=created_by,
        )
        self.db.add(row)
        self._commit()
        return row.id

    def list_periods(self, *, deleted: bool = False, grade_id: Optional[str] = None) -> List[Row]:
        q = self.db.query(TestPeriod)
        if deleted:
            q = q.filter(TestPeriod.deleted_at.isnot(None))
        else:
            q = q.filter(TestPeriod.deleted_at.is_(None))
        if grade_id:
            q = q.filter(TestPeriod.grade_id == grade_id)
        if deleted:
            q = q.order_by(TestPeriod.deleted_at.desc(), TestPeriod.id)
        else:
            q = q.order_by(TestPeriod.start_date.desc(), TestPeriod.id)
        return _rows(q.all())

    def periods_by_ids(self, ids: List[str]) -> List[Row]:
        """Live periods among ``ids``, newest start first."""
        if not ids:
            return []
        q = (
            self.db.query(TestPeriod)
            .filter(TestPeriod.id.in_(ids), TestPeriod.deleted_at.is_(None))
            .order_by(TestPeriod.start_date.desc(), TestPeriod.id)
        )
        return _rows(q.all())

    def teacher_has_period(self, teacher_id: str, grade_id: str, period_id: Optional[str] = None) -> bool:
        q = self.db.query(TestPeriod.id).filter(
            TestPeriod.created_by == teacher_id,
            TestPeriod.grade_id == grade_id,
        )
        if period_id:
            q = q.filter(TestPeriod.id == period_id)
        return q.first() is not None

    def soft_delete_period(self, period_id: str, deleted_by: str, when: datetime) -> bool:
        row = self.db.get(TestPeriod, period_id)
        if row is None:
            return False
        row.deleted_at = to_db_timestamp(when, self.tz)
        row.deleted_by = deleted_by
        self.db.add(row)
        self._commit()
        logger.info("soft-deleted test period %s by %s", period_id, deleted_by)
        return True

    def restore_period(self, period_id: str) -> bool:
        row = self.db.get(TestPeriod, period_id)
        if row is None:
            return False
        row.deleted_at = None
        row.deleted_by = None
        self.db.add(row)
        self._commit()
        logger.info("restored test period %s", period_id)
        return True

    def hard_delete_period(self, period_id: str) -> int:
        # Tasks referencing the period are left untouched
        res = self.db.execute(delete(TestPeriod).where(TestPeriod.id == period_id))
        self._commit()
        removed = res.rowcount or 0
        logger.info("hard-deleted test period %s (%d row)", period_id, removed)
        return removed
