"""Task statistics and completion-state aggregation.

Everything here is a pure function of the task records passed in and the
reference time supplied by the caller. Nothing reads the wall clock, touches
the database or keeps state between calls, so aggregating the same records
with the same ``now`` always gives the same result.

Records are plain mappings as returned by :mod:`studyboard.store` (any object
exposing the fields as attributes works too). Both snake_case and camelCase
field names are accepted.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional

from pydantic import Field

from .schemas import CamelModel


STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUSES = (STATUS_NOT_STARTED, STATUS_IN_PROGRESS, STATUS_COMPLETED)

TASK_TYPE_SINGLE = "single"
TASK_TYPE_PARENT = "parent"
TASK_TYPE_SUBTASK = "subtask"

UNCLASSIFIED = "unclassified"

# Task fields copied out of records that carry no instance dict
RECORD_FIELDS = (
    "id", "title", "description", "subject", "priority", "status",
    "task_type", "taskType", "parent_task_id", "parentTaskId",
    "due_date", "dueDate", "start_date", "startDate",
    "estimated_time", "estimatedTime", "actual_time", "actualTime",
    "test_period_id", "testPeriodId", "assigned_to", "assignedTo",
    "created_by", "createdBy", "is_shared", "isShared",
    "completed_at", "completedAt", "created_at", "createdAt", "updated_at", "updatedAt",
    "total_units", "totalUnits", "completed_units", "completedUnits", "unit_type", "unitType",
)


class TaskSummary(CamelModel):
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    not_started: int = 0
    overdue: int = 0
    completion_rate: int = 0


class SubjectSummary(CamelModel):
    subject: str
    total: int = 0
    completed: int = 0
    completion_rate: int = 0


class DashboardStatistics(CamelModel):
    total: int = 0
    completed: int = 0
    completion_rate: int = 0


class DailyDashboard(CamelModel):
    today_tasks: List[Dict[str, Any]] = Field(default_factory=list)
    incomplete_tasks: List[Dict[str, Any]] = Field(default_factory=list)
    statistics: DashboardStatistics = Field(default_factory=DashboardStatistics)


def completion_rate(completed: int, total: int) -> int:
    """Percentage of ``completed`` over ``total``, rounded half up; 0 for an empty set."""
    if total <= 0:
        return 0
    # Integer form of floor(100 * completed / total + 0.5)
    return (200 * completed + total) // (2 * total)


def _field(record: Any, *names: str) -> Any:
    for name in names:
        if isinstance(record, Mapping):
            if name in record:
                return record[name]
        elif hasattr(record, name):
            return getattr(record, name)
    return None


def _status(record: Any) -> Any:
    return _field(record, "status")


def _task_type(record: Any) -> Any:
    return _field(record, "task_type", "taskType")


def _period_id(record: Any) -> Any:
    return _field(record, "test_period_id", "testPeriodId")


def _subject(record: Any) -> str:
    value = _field(record, "subject")
    if value is None:
        return UNCLASSIFIED
    text = str(value).strip()
    return text or UNCLASSIFIED


def parse_timestamp(value: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Coerce ``value`` to an aware datetime, or None when it cannot be read.

    Naive datetimes and ISO strings without an offset are taken to be in
    ``tz`` (UTC when omitted). A bare date means midnight of that day in
    ``tz``. Numbers are epoch seconds.
    """
    zone = tz or timezone.utc
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=zone)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=zone)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=zone)
    return None


def _due(record: Any, tz: Optional[tzinfo]) -> Optional[datetime]:
    return parse_timestamp(_field(record, "due_date", "dueDate"), tz)


def _zone(now: datetime, tz: Optional[tzinfo]) -> tzinfo:
    return tz or now.tzinfo or timezone.utc


def _reference(now: datetime, tz: Optional[tzinfo]) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=tz or timezone.utc)
    return now


def is_actionable(record: Any) -> bool:
    """Parent tasks are containers and never count toward statistics."""
    return _task_type(record) != TASK_TYPE_PARENT


def _in_scope(record: Any, period_filter: Collection[Any]) -> bool:
    try:
        return _period_id(record) in period_filter
    except TypeError:
        # Unhashable period ids match no filter
        return False


def _scoped(tasks: Iterable[Any], period_filter: Optional[Collection[Any]]) -> List[Any]:
    if not period_filter:
        return list(tasks)
    return [t for t in tasks if _in_scope(t, period_filter)]


def summarize(
    tasks: Iterable[Any],
    now: datetime,
    period_filter: Optional[Collection[Any]] = None,
    tz: Optional[tzinfo] = None,
) -> TaskSummary:
    """Status counts, overdue count and completion rate over actionable tasks.

    A task is overdue when it is not completed and its due date is strictly
    before ``now``. Tasks without a readable due date are never overdue. A
    status outside the known three still counts toward ``total``. Naive
    values are read in ``tz``, defaulting to the zone of ``now``, then UTC.
    """
    zone = _zone(now, tz)
    ref = _reference(now, zone)
    actionable = [t for t in _scoped(tasks, period_filter) if is_actionable(t)]

    completed = in_progress = not_started = overdue = 0
    for task in actionable:
        status = _status(task)
        if status == STATUS_COMPLETED:
            completed += 1
        elif status == STATUS_IN_PROGRESS:
            in_progress += 1
        elif status == STATUS_NOT_STARTED:
            not_started += 1
        if status != STATUS_COMPLETED:
            due = _due(task, zone)
            if due is not None and due < ref:
                overdue += 1

    total = len(actionable)
    return TaskSummary(
        total=total,
        completed=completed,
        in_progress=in_progress,
        not_started=not_started,
        overdue=overdue,
        completion_rate=completion_rate(completed, total),
    )


def summarize_by_subject(
    tasks: Iterable[Any],
    period_filter: Optional[Collection[Any]] = None,
) -> List[SubjectSummary]:
    """Per-subject totals over actionable tasks, in first-seen subject order."""
    groups: Dict[str, List[int]] = {}
    for task in _scoped(tasks, period_filter):
        if not is_actionable(task):
            continue
        counts = groups.setdefault(_subject(task), [0, 0])
        counts[0] += 1
        if _status(task) == STATUS_COMPLETED:
            counts[1] += 1
    return [
        SubjectSummary(
            subject=subject,
            total=total,
            completed=done,
            completion_rate=completion_rate(done, total),
        )
        for subject, (total, done) in groups.items()
    ]


def _as_dict(record: Any) -> Dict[str, Any]:
    if isinstance(record, Mapping):
        return dict(record)
    attrs = getattr(record, "__dict__", None)
    if isinstance(attrs, dict):
        return dict(attrs)
    # namedtuples, __slots__ classes, None
    return {name: getattr(record, name) for name in RECORD_FIELDS if hasattr(record, name)}


def daily_dashboard(
    tasks: Iterable[Any],
    now: datetime,
    tz: Optional[tzinfo] = None,
    period_filter: Optional[Collection[Any]] = None,
) -> DailyDashboard:
    """Tasks due today, tasks still open, and headline statistics.

    "Due today" compares calendar days in ``tz`` (defaulting to the zone of
    ``now``, then UTC); the time of day on either side is ignored. Parent
    tasks appear in both lists but are left out of the statistics.
    """
    zone = _zone(now, tz)
    today = _reference(now, zone).astimezone(zone).date()
    scoped = _scoped(tasks, period_filter)

    today_tasks: List[Dict[str, Any]] = []
    incomplete_tasks: List[Dict[str, Any]] = []
    for task in scoped:
        due = _due(task, zone)
        if due is not None and due.astimezone(zone).date() == today:
            today_tasks.append(_as_dict(task))
        if _status(task) != STATUS_COMPLETED:
            incomplete_tasks.append(_as_dict(task))

    actionable = [t for t in scoped if is_actionable(t)]
    completed = sum(1 for t in actionable if _status(t) == STATUS_COMPLETED)
    return DailyDashboard(
        today_tasks=today_tasks,
        incomplete_tasks=incomplete_tasks,
        statistics=DashboardStatistics(
            total=len(actionable),
            completed=completed,
            completion_rate=completion_rate(completed, len(actionable)),
        ),
    )
