from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class ReportFilters(BaseModel):
    company_id: Optional[str] = None
    user_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class StatusBreakdown(BaseModel):
    not_started: int = 0
    in_progress: int = 0
    paused: int = 0
    completed: int = 0


# ---------------------- general ----------------------


class GeneralSummary(BaseModel):
    total_tasks: int = 0
    not_started_tasks: int = 0
    in_progress_tasks: int = 0
    paused_tasks: int = 0
    completed_tasks: int = 0
    total_time_spent: int = 0
    total_cost: float = 0.0


class CompanyTotals(BaseModel):
    company_id: str
    company_name: str
    task_count: int = 0
    total_time: int = 0
    total_cost: float = 0.0


class UserTotals(BaseModel):
    user_id: str
    user_name: str
    task_count: int = 0
    total_time: int = 0
    total_cost: float = 0.0


class GeneralReport(BaseModel):
    kind: Literal["general"] = "general"
    summary: GeneralSummary
    by_status: StatusBreakdown
    by_company: list[CompanyTotals]
    by_user: list[UserTotals]


# ---------------------- company ----------------------


class CompanyTaskRow(BaseModel):
    id: str
    title: str
    status: str
    assigned_users: list[str]
    time_spent: int
    created_at: Optional[datetime] = None


class CompanyReportRow(BaseModel):
    company_id: str
    company_name: str
    cost_per_hour: float
    currency: str
    total_tasks: int
    total_time: int
    total_cost: float
    status_breakdown: StatusBreakdown
    tasks: list[CompanyTaskRow]


class CompanyReport(BaseModel):
    kind: Literal["company"] = "company"
    companies: list[CompanyReportRow]


# ---------------------- user ----------------------


class UserTaskRow(BaseModel):
    id: str
    title: str
    status: str
    company_name: str
    time_spent: int


class UserReportRow(BaseModel):
    user_id: str
    user_name: str
    email: str = ""
    total_tasks: int
    total_time: int
    status_breakdown: StatusBreakdown
    productivity_score: float
    recent_tasks: list[UserTaskRow]


class UserReport(BaseModel):
    kind: Literal["user"] = "user"
    users: list[UserReportRow]


# ---------------------- time ----------------------


class TimeTaskRow(BaseModel):
    id: str
    title: str
    time_spent: int
    company_name: str


class TimeReport(BaseModel):
    kind: Literal["time"] = "time"
    total_time: int
    daily_breakdown: dict[str, int]
    weekly_breakdown: dict[str, int]
    monthly_breakdown: dict[str, int]
    average_task_time: float
    most_time_consuming_tasks: list[TimeTaskRow]


# ---------------------- cost ----------------------


class CostTaskRow(BaseModel):
    id: str
    title: str
    cost: float
    company_name: str


class CostReport(BaseModel):
    kind: Literal["cost"] = "cost"
    total_cost: float
    cost_by_company: dict[str, float]
    cost_by_month: dict[str, float]
    most_expensive_tasks: list[CostTaskRow]


Report = Annotated[
    Union[GeneralReport, CompanyReport, UserReport, TimeReport, CostReport],
    Field(discriminator="kind"),
]


class ReportEnvelope(BaseModel):
    success: bool = True
    report: Report
    generated_at: datetime
    filters: ReportFilters
