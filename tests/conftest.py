# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studyboard.db import Base, get_db
from studyboard.deps import get_local_tz, get_now
from studyboard.main import app
from studyboard.models import AuthUser, Grade, Task, TestPeriod, UserProfile
from studyboard.routers.auth import issue_token

# Fixed clock for every request made through the client fixture
NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def _naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@pytest.fixture()
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session) -> TestClient:
    """
    TestClient wired to the in-memory database and the fixed clock.

    Startup hooks are not run (no context manager), so nothing touches the
    configured DATABASE_URL.
    """

    def _get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_now] = lambda: NOW
    app.dependency_overrides[get_local_tz] = lambda: timezone.utc
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session):
    """Create a profile plus login and return it with ready-made auth headers."""

    def _make(username, role="student", *, grade_id=None, student_number=None, display_name=None):
        profile = UserProfile(
            role=role,
            display_name=display_name or username,
            grade_id=grade_id,
            student_number=student_number,
        )
        db_session.add(profile)
        db_session.flush()
        # Logins made here never go through password auth
        db_session.add(AuthUser(username=username, password_hash="!", user_id=profile.id))
        db_session.commit()
        token = issue_token(db_session, username)
        return SimpleNamespace(
            id=profile.id,
            username=username,
            headers={"Authorization": f"Bearer {token}"},
        )

    return _make


@pytest.fixture()
def make_grade(db_session):
    def _make(grade_number=2, grade_id=None):
        grade = Grade(id=grade_id, grade_number=grade_number) if grade_id else Grade(grade_number=grade_number)
        db_session.add(grade)
        db_session.commit()
        return grade.id

    return _make


@pytest.fixture()
def make_period(db_session):
    def _make(created_by, grade_id=None, *, title="Midterm", start=None, days=7, deleted_at=None):
        start = start or NOW
        period = TestPeriod(
            title=title,
            start_date=_naive_utc(start),
            end_date=_naive_utc(start + timedelta(days=days)),
            grade_id=grade_id,
            subjects=["math", "english"],
            created_by=created_by,
            deleted_at=_naive_utc(deleted_at) if deleted_at else None,
            deleted_by=created_by if deleted_at else None,
        )
        db_session.add(period)
        db_session.commit()
        return period.id

    return _make


@pytest.fixture()
def make_task(db_session):
    def _make(assigned_to, period_id=None, *, subject="math", status="not_started",
              task_type="single", due=None, title="Workbook p.1-10"):
        task = Task(
            title=title,
            subject=subject,
            status=status,
            task_type=task_type,
            due_date=_naive_utc(due) if due else None,
            assigned_to=assigned_to,
            test_period_id=period_id,
        )
        db_session.add(task)
        db_session.commit()
        return task.id

    return _make
