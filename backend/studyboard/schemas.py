from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys; snake_case names also populate."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateTaskRequest(CamelModel):
    title: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    test_period_id: str = Field(min_length=1)
    assigned_to: str = Field(min_length=1)
    description: Optional[str] = None
    priority: str = Field(default="medium", pattern="^(low|medium|high)$")
    status: str = Field(default="not_started", pattern="^(not_started|in_progress|completed)$")
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    estimated_time: int = Field(default=30, ge=0)
    is_shared: bool = True


class CompleteTaskRequest(CamelModel):
    task_id: str = Field(min_length=1)
    actual_time: Optional[int] = Field(default=None, ge=0)

UNIT_TYPE_PATTERN = "^(pages|problems|hours|sections)$"


class SplitTaskRequest(CreateTaskRequest):
    """A parent task spread over one subtask per day, starting on ``startDate``."""

    total_units: int = Field(ge=1)
    unit_type: str = Field(pattern=UNIT_TYPE_PATTERN)
    daily_units: int = Field(ge=1)
    range_start: Optional[int] = None
    range_end: Optional[int] = None


class CreateSubtaskRequest(CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    estimated_time: int = Field(default=30, ge=0)
    total_units: Optional[int] = Field(default=None, ge=1)
    unit_type: Optional[str] = Field(default=None, pattern=UNIT_TYPE_PATTERN)


class CreatePeriodRequest(CamelModel):
    title: str = Field(min_length=1)
    start_date: datetime
    end_date: datetime
    class_id: str = Field(min_length=1)
    subjects: List[str] = Field(default_factory=list)


class ReassignTasksRequest(CamelModel):
    target_period_id: str = Field(min_length=1)


class PeriodGroup(CamelModel):
    id: str
    title: str
    start_date: datetime
    class_id: Optional[str] = None


class PeriodOut(PeriodGroup):
    end_date: datetime


class DeletedPeriodOut(PeriodOut):
    subjects: List[str] = Field(default_factory=list)
    created_by: str
    deleted_at: datetime
    deleted_by: Optional[str] = None


class StudentByGrade(CamelModel):
    id: str
    display_name: str
    student_number: Optional[int] = None


class StudentByPeriod(CamelModel):
    id: str
    display_name: str
    grade_id: Optional[str] = None
    grade_number: Optional[int] = None


class OkResponse(BaseModel):
    ok: bool = True
    id: Optional[str] = None


class SplitTaskResponse(OkResponse):
    subtask_ids: List[str] = Field(default_factory=list, serialization_alias="subtaskIds")


class StatusResponse(OkResponse):
    status: str


class ReassignResponse(OkResponse):
    moved: int = 0
