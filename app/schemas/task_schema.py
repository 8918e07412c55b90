from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, StrictInt

from app.schemas.common import Priority, TaskStatus
from app.schemas.report_schema import StatusBreakdown


class TaskIn(BaseModel):
    title: str
    description: str = ""
    company_id: str
    assigned_users: list[str]
    priority: Priority = Priority.medium
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    due_date: Optional[datetime] = None


class StatusHistoryEntry(BaseModel):
    status: TaskStatus
    changed_by: str
    changed_at: datetime
    comment: str = ""


class TaskOut(BaseModel):
    id: str
    title: str
    description: str = ""
    company_id: str
    assigned_users: list[str]
    status: TaskStatus
    priority: Priority
    estimated_hours: Optional[float] = None
    due_date: Optional[datetime] = None
    total_time_spent: int = 0
    total_cost: float = 0.0
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    active: bool = True
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CriticalTaskOut(BaseModel):
    id: str
    title: str
    status: TaskStatus
    priority: Priority
    due_date: Optional[datetime] = None
    company_name: str
    is_overdue: bool


class CompletePayload(BaseModel):
    manual_minutes: Optional[StrictInt] = None


class ActionResult(BaseModel):
    success: bool = True
    message: str


class RecomputeOut(BaseModel):
    task_id: str
    total_time_spent: int
    total_cost: float
    cost_updated: bool


class UserStatsOut(BaseModel):
    total_tasks: int
    status_breakdown: StatusBreakdown
    pending_tasks: int
    overdue_tasks: int
    completed_today: int
    time_worked_today: int
    completion_rate: float
