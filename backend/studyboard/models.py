from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import JSON, Boolean, Column, String, DateTime, Integer, Text
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	# Profile this login acts as
	user_id = Column(String(64), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# jti claim of the issued token
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserProfile(Base):
	__tablename__ = "user_profiles"
	id = Column(String(64), primary_key=True, default=_new_id)
	role = Column(String(16), nullable=False)  # student | teacher
	display_name = Column(String(128), nullable=False, default="")
	email = Column(String(256), nullable=True)
	grade_id = Column(String(64), nullable=True, index=True)
	student_number = Column(Integer, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Grade(Base):
	__tablename__ = "grades"
	id = Column(String(64), primary_key=True, default=_new_id)
	grade_number = Column(Integer, nullable=False)


class TestPeriod(Base):
	__tablename__ = "test_periods"
	id = Column(String(64), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	start_date = Column(DateTime, nullable=False)
	end_date = Column(DateTime, nullable=False)
	grade_id = Column(String(64), nullable=True, index=True)
	subjects = Column(JSON, nullable=False, default=list)
	created_by = Column(String(64), nullable=False, index=True)
	# Soft-delete marker; NULL means live
	deleted_at = Column(DateTime, nullable=True)
	deleted_by = Column(String(64), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Task(Base):
	__tablename__ = "tasks"
	id = Column(String(64), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	subject = Column(String(128), nullable=True)
	priority = Column(String(16), nullable=False, default="medium")
	status = Column(String(16), nullable=False, default="not_started")
	task_type = Column(String(16), nullable=False, default="single")
	parent_task_id = Column(String(64), nullable=True)
	due_date = Column(DateTime, nullable=True)
	start_date = Column(DateTime, nullable=True)
	estimated_time = Column(Integer, nullable=True)  # minutes
	actual_time = Column(Integer, nullable=True)  # minutes
	# Not a foreign key: removing a period leaves its tasks in place
	test_period_id = Column(String(64), nullable=True, index=True)
	assigned_to = Column(String(64), nullable=False, index=True)
	created_by = Column(String(64), nullable=True)
	is_shared = Column(Boolean, nullable=False, default=True)
	# Split tasks: workload of this task in unit_type units
	total_units = Column(Integer, nullable=True)
	completed_units = Column(Integer, nullable=True)
	unit_type = Column(String(16), nullable=True)  # pages | problems | hours | sections
	completed_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
