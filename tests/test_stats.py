# tests/test_stats.py

from __future__ import annotations

import itertools
from collections import namedtuple
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from studyboard.stats import (
    UNCLASSIFIED,
    completion_rate,
    daily_dashboard,
    parse_timestamp,
    summarize,
    summarize_by_subject,
)

NOW = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)
TOMORROW = NOW + timedelta(days=1)


def task(subject="math", status="not_started", task_type="single", due=None, period="p1", **extra):
    return {
        "subject": subject,
        "status": status,
        "task_type": task_type,
        "due_date": due,
        "assigned_to": "s1",
        "test_period_id": period,
        **extra,
    }


# ---- completion_rate ----

def test_completion_rate_zero_total_is_zero():
    assert completion_rate(0, 0) == 0


def test_completion_rate_rounds_half_up():
    assert completion_rate(1, 8) == 13  # 12.5
    assert completion_rate(3, 8) == 38  # 37.5
    assert completion_rate(1, 3) == 33
    assert completion_rate(2, 3) == 67
    assert completion_rate(5, 5) == 100


# ---- summary view ----

def test_scenario_a_half_complete():
    tasks = [task(status="completed"), task(status="not_started")]
    summary = summarize(tasks, NOW)
    assert (summary.total, summary.completed, summary.completion_rate) == (2, 1, 50)
    subjects = summarize_by_subject(tasks)
    assert [s.model_dump() for s in subjects] == [
        {"subject": "math", "total": 2, "completed": 1, "completion_rate": 50}
    ]


def test_scenario_b_empty_collection():
    summary = summarize([], NOW)
    assert summary.model_dump(by_alias=True) == {
        "total": 0,
        "completed": 0,
        "inProgress": 0,
        "notStarted": 0,
        "overdue": 0,
        "completionRate": 0,
    }
    assert summarize_by_subject([]) == []


def test_scenario_c_overdue_only_when_not_completed():
    assert summarize([task(status="in_progress", due=YESTERDAY)], NOW).overdue == 1
    assert summarize([task(status="completed", due=YESTERDAY)], NOW).overdue == 0


def test_due_exactly_now_is_not_overdue():
    assert summarize([task(due=NOW)], NOW).overdue == 0


def test_scenario_d_parent_tasks_are_excluded():
    tasks = [task(task_type="parent", status="not_started", due=YESTERDAY), task(task_type="subtask")]
    summary = summarize(tasks, NOW)
    assert summary.total == 1
    assert summary.not_started == 1
    assert summary.overdue == 0


def test_unrecognized_status_counts_in_total_only():
    summary = summarize([task(status="archived"), task(status="completed")], NOW)
    assert summary.total == 2
    assert summary.completed + summary.in_progress + summary.not_started == 1
    assert summary.completion_rate == 50


def test_malformed_due_dates_are_never_overdue():
    tasks = [
        task(due=None),
        task(due="not a date"),
        task(due=""),
        task(due=float("nan")),
        task(due={"when": "yesterday"}),
    ]
    assert summarize(tasks, NOW).overdue == 0
    assert daily_dashboard(tasks, NOW).today_tasks == []


class SlotTask:
    __slots__ = ("title", "status", "task_type", "due_date", "test_period_id")

    def __init__(self, title, status="not_started", due=None):
        self.title = title
        self.status = status
        self.task_type = "single"
        self.due_date = due
        self.test_period_id = "p1"


RowTask = namedtuple("RowTask", "title status task_type due_date test_period_id")


def test_records_without_instance_dict_are_accepted():
    tasks = [
        None,
        RowTask("row", "in_progress", "single", NOW, "p1"),
        SlotTask("slots", due=NOW),
        SlotTask("done", status="completed", due=NOW),
    ]
    board = daily_dashboard(tasks, NOW)
    assert board.incomplete_tasks[0] == {}
    assert [t.get("title") for t in board.incomplete_tasks] == [None, "row", "slots"]
    assert [t["title"] for t in board.today_tasks] == ["row", "slots", "done"]
    assert board.incomplete_tasks[2]["test_period_id"] == "p1"
    assert board.statistics.total == 4
    assert summarize(tasks, NOW).total == 4


def test_unhashable_period_ids_fall_outside_any_filter():
    tasks = [task(status="completed", period=["p1"]), task(period={"id": "p1"}), task(status="completed")]
    assert summarize(tasks, NOW, period_filter={"p1"}).total == 1
    assert [r.total for r in summarize_by_subject(tasks, period_filter={"p1"})] == [1]
    board = daily_dashboard(tasks, NOW, period_filter={"p1"})
    assert board.statistics.total == 1
    assert board.incomplete_tasks == []
    # without a filter they are ordinary tasks
    assert summarize(tasks, NOW).total == 3


def test_naive_due_dates_read_alike_across_views():
    tokyo = ZoneInfo("Asia/Tokyo")
    now = datetime(2026, 10, 18, 10, 0, tzinfo=tokyo)
    # 09:00 Tokyo has passed; read as UTC it would still be hours away
    record = task(due=datetime(2026, 10, 18, 9, 0))
    assert summarize([record], now).overdue == 1
    assert len(daily_dashboard([record], now).today_tasks) == 1
    assert summarize([record], datetime(2026, 10, 18, 8, 0, tzinfo=tokyo)).overdue == 0


def test_due_date_forms_are_understood():
    tasks = [
        task(due=YESTERDAY.isoformat()),
        task(due="2026-10-17T23:00:00Z"),
        task(due=YESTERDAY.timestamp()),
        task(due=date(2026, 10, 1)),
        task(due=datetime(2026, 10, 17, 12, 0)),  # naive, read as UTC
    ]
    assert summarize(tasks, NOW).overdue == 5


def test_camel_case_records_are_accepted():
    tasks = [
        {"subject": "math", "status": "in_progress", "taskType": "single", "dueDate": YESTERDAY.isoformat(), "testPeriodId": "p1"},
        {"subject": "math", "status": "not_started", "taskType": "parent", "dueDate": YESTERDAY.isoformat(), "testPeriodId": "p1"},
    ]
    summary = summarize(tasks, NOW, period_filter={"p1"})
    assert summary.total == 1
    assert summary.overdue == 1


def test_period_filter_limits_the_collection():
    tasks = [task(period="p1", status="completed"), task(period="p2"), task(period="p3")]
    assert summarize(tasks, NOW, period_filter={"p1", "p2"}).total == 2
    assert summarize(tasks, NOW, period_filter=set()).total == 3


def test_naive_now_is_read_in_given_zone():
    tokyo = ZoneInfo("Asia/Tokyo")
    due = datetime(2026, 10, 18, 10, 0, tzinfo=tokyo)
    # 09:00 Tokyo: not yet due
    assert summarize([task(due=due)], datetime(2026, 10, 18, 9, 0), tz=tokyo).overdue == 0
    assert summarize([task(due=due)], datetime(2026, 10, 18, 11, 0), tz=tokyo).overdue == 1


# ---- subject view ----

def test_subjects_keep_first_seen_order_and_unclassified_bucket():
    tasks = [
        task(subject="english", status="completed"),
        task(subject=None),
        task(subject="math", status="completed"),
        task(subject="  "),
        task(subject="english"),
        task(subject="math", task_type="parent"),
    ]
    rows = summarize_by_subject(tasks)
    assert [(r.subject, r.total, r.completed, r.completion_rate) for r in rows] == [
        ("english", 2, 1, 50),
        (UNCLASSIFIED, 2, 0, 0),
        ("math", 1, 1, 100),
    ]
    assert rows[0].model_dump(by_alias=True)["completionRate"] == 50


# ---- daily dashboard ----

def test_scenario_e_due_today_ignores_time_of_day():
    tasks = [
        task(title="early", due=datetime(2026, 10, 18, 0, 0, tzinfo=timezone.utc)),
        task(title="late", due=datetime(2026, 10, 18, 23, 59, tzinfo=timezone.utc), status="completed"),
        task(title="date only", due="2026-10-18"),
        task(title="tomorrow", due=TOMORROW),
        task(title="yesterday", due=YESTERDAY),
    ]
    board = daily_dashboard(tasks, NOW)
    assert [t["title"] for t in board.today_tasks] == ["early", "late", "date only"]
    assert [t["title"] for t in board.incomplete_tasks] == ["early", "date only", "tomorrow", "yesterday"]


def test_due_today_uses_local_calendar_day():
    tokyo = ZoneInfo("Asia/Tokyo")
    now = datetime(2026, 10, 18, 0, 30, tzinfo=tokyo)  # still Oct 17 in UTC
    tasks = [
        task(title="morning", due="2026-10-18T02:00:00Z"),  # 11:00 Tokyo
        task(title="last night", due="2026-10-17T14:00:00Z"),  # 23:00 Tokyo on the 17th
    ]
    board = daily_dashboard(tasks, now, tz=tokyo)
    assert [t["title"] for t in board.today_tasks] == ["morning"]


def test_dashboard_statistics_skip_parent_tasks():
    tasks = [
        task(status="completed"),
        task(status="not_started", due=NOW),
        task(status="not_started", task_type="parent", due=NOW),
    ]
    board = daily_dashboard(tasks, NOW)
    assert len(board.today_tasks) == 2
    assert len(board.incomplete_tasks) == 2
    assert board.statistics.model_dump(by_alias=True) == {"total": 2, "completed": 1, "completionRate": 50}
    assert set(board.model_dump(by_alias=True)) == {"todayTasks", "incompleteTasks", "statistics"}


def test_dashboard_returns_copies_of_records():
    record = task(due=NOW)
    board = daily_dashboard([record], NOW)
    board.today_tasks[0]["status"] = "completed"
    assert record["status"] == "not_started"


# ---- properties ----

def _all_shapes():
    statuses = ["not_started", "in_progress", "completed", "bogus", None]
    types = ["single", "parent", "subtask"]
    dues = [None, YESTERDAY, NOW, TOMORROW, "garbage"]
    subjects = ["math", None, "science"]
    return [
        task(subject=s, status=st, task_type=tt, due=d)
        for st, tt, d, s in itertools.product(statuses, types, dues, subjects)
    ]


def test_bucket_counts_never_exceed_total():
    tasks = _all_shapes()
    for size in (0, 1, 7, 40, len(tasks)):
        summary = summarize(tasks[:size], NOW)
        assert summary.completed + summary.in_progress + summary.not_started <= summary.total
        assert 0 <= summary.completion_rate <= 100
        assert summary.overdue <= summary.total


def test_bucket_counts_equal_total_when_statuses_known():
    tasks = [t for t in _all_shapes() if t["status"] in ("not_started", "in_progress", "completed")]
    summary = summarize(tasks, NOW)
    assert summary.completed + summary.in_progress + summary.not_started == summary.total


def test_subject_totals_match_summary_total():
    tasks = _all_shapes()
    summary = summarize(tasks, NOW, period_filter={"p1"})
    rows = summarize_by_subject(tasks, period_filter={"p1"})
    assert sum(r.total for r in rows) == summary.total
    assert sum(r.completed for r in rows) == summary.completed


def test_aggregation_is_idempotent():
    tasks = _all_shapes()
    assert summarize(tasks, NOW) == summarize(tasks, NOW)
    assert summarize_by_subject(tasks) == summarize_by_subject(tasks)
    assert daily_dashboard(tasks, NOW) == daily_dashboard(tasks, NOW)


# ---- parse_timestamp ----

def test_parse_timestamp_rejects_unreadable_values():
    for value in (None, True, "", "  ", "31/12/2026", float("inf"), 10 ** 20, object()):
        assert parse_timestamp(value) is None


def test_parse_timestamp_attaches_zone_to_naive_values():
    tokyo = ZoneInfo("Asia/Tokyo")
    parsed = parse_timestamp("2026-10-18T08:00:00", tokyo)
    assert parsed == datetime(2026, 10, 17, 23, 0, tzinfo=timezone.utc)
