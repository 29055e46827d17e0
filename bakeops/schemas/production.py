from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal
from datetime import date, datetime

from bakeops.models.core import TaskStatus, TaskType, SignoffType

TaskTypeLiteral = Literal["BAKE", "PREP", "COOL", "STACK", "FROST", "FINAL", "PACKAGE", "DELIVERY"]


class GenerateTasksIn(BaseModel):
    scheduled_date: Optional[date] = None  # overrides every new task's date
    include_types: Optional[list[TaskTypeLiteral]] = None


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    task_type: TaskType
    task_name: str
    position: int
    scheduled_date: date
    duration_minutes: int
    status: TaskStatus
    assigned_to: Optional[str] = None
    depends_on_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None


class GenerateTasksOut(BaseModel):
    created: list[TaskOut]
    tasks: list[TaskOut]


class SignoffIn(BaseModel):
    signoff_type: Literal["START", "COMPLETE"]
    signed_by: str = Field(min_length=1)
    notes: Optional[str] = None


class SignoffOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    task_id: str
    signoff_type: SignoffType
    signed_by: str
    notes: Optional[str] = None
    signed_at: datetime


class TemplateOut(BaseModel):
    task_type: TaskType
    name: str
    duration_minutes: int
    days_before: int
    depends_on: list[TaskType]
    delivery_only: bool
