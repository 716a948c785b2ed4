"""Spreading a split task's workload over daily subtasks."""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Dict, List, Optional

# Longest schedule a single split may produce
MAX_SPLIT_DAYS = 366

# Units that carry page or problem numbers
NUMBERED_UNITS = ("pages", "problems")


def day_start(value: datetime, tz: tzinfo) -> datetime:
    """Local midnight of the calendar day ``value`` falls on in ``tz``."""
    local = value.astimezone(tz) if value.tzinfo is not None else value.replace(tzinfo=tz)
    return datetime.combine(local.date(), time.min, tzinfo=tz)


def _on_day(first: date, offset: int, tz: tzinfo) -> datetime:
    return datetime.combine(first + timedelta(days=offset), time.min, tzinfo=tz)


def plan_subtasks(
    *,
    title: str,
    total_units: int,
    unit_type: str,
    daily_units: int,
    start: datetime,
    tz: tzinfo,
    estimated_time: int = 0,
    range_start: Optional[int] = None,
    range_end: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """One subtask per day until ``total_units`` are covered.

    Each day takes ``daily_units`` units, the last day takes what is left.
    Subtasks start and fall due at local midnight, beginning on the day of
    ``start``. For pages and problems, a numbered range is added to each
    title when both ends of ``range_start``/``range_end`` are given. The
    parent's ``estimated_time`` is shared out in proportion to each day's
    units, rounded up.

    Raises ValueError when the numbers cannot make a schedule.
    """
    if total_units < 1 or daily_units < 1:
        raise ValueError("total_units and daily_units must be positive")
    days = math.ceil(total_units / daily_units)
    if days > MAX_SPLIT_DAYS:
        raise ValueError(f"split would need {days} days (at most {MAX_SPLIT_DAYS})")

    first = day_start(start, tz).date()
    numbered = unit_type in NUMBERED_UNITS and range_start is not None and range_end is not None

    plan = []
    for i in range(days):
        units = min(daily_units, total_units - i * daily_units)
        when = _on_day(first, i, tz)
        if numbered:
            chunk_start = range_start + i * daily_units
            chunk_end = min(range_start + total_units - 1, chunk_start + units - 1)
            day_title = f"{title} (day {i + 1}: {unit_type} {chunk_start}-{chunk_end})"
        else:
            day_title = f"{title} (day {i + 1})"
        plan.append({
            "title": day_title,
            "description": f"{units} {unit_type}",
            "due_date": when,
            "start_date": when,
            "estimated_time": math.ceil(estimated_time * units / total_units),
            "total_units": units,
            "completed_units": 0,
            "unit_type": unit_type,
        })
    return plan
