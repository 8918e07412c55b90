"""
Operational reports over tasks, sessions, companies and users.

Every report is a read-only projection. Time and cost are re-derived from
``time_sessions`` at report time instead of trusting the cached task totals,
and joins that cannot be resolved fall back to "Unknown company" /
"Unknown user" with zero cost rather than failing the report.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.core.rbac import is_admin_like, require_admin
from app.schemas.common import TaskStatus
from app.schemas.report_schema import (
    CompanyReport,
    CompanyReportRow,
    CompanyTaskRow,
    CompanyTotals,
    CostReport,
    CostTaskRow,
    GeneralReport,
    GeneralSummary,
    ReportFilters,
    StatusBreakdown,
    TimeReport,
    TimeTaskRow,
    UserReport,
    UserReportRow,
    UserTaskRow,
    UserTotals,
)
from app.services.company_registry import company_names
from app.services.cost_calculator import calculate_cost, round_money
from app.utils import clock
from app.utils.ids import to_object_id


logger = logging.getLogger(__name__)

UNKNOWN_COMPANY = "Unknown company"
UNKNOWN_USER = "Unknown user"


@dataclass
class _TaskRow:
    id: str
    title: str
    status: str
    assigned_users: list[str]
    created_at: Optional[datetime]
    company_id: str
    company_name: str
    minutes: int = 0
    cost: Decimal = field(default_factory=Decimal)


def _status_breakdown(rows: list[_TaskRow]) -> StatusBreakdown:
    counts = Counter(r.status for r in rows)
    return StatusBreakdown(**{s.value: counts.get(s.value, 0) for s in TaskStatus})


def productivity_score(rows: list[_TaskRow]) -> float:
    """completion_rate * 70 + min(avg completed hours, 8) / 8 * 30."""
    if not rows:
        return 0.0
    completed = [r for r in rows if r.status == TaskStatus.COMPLETED.value]
    completion_rate = Decimal(len(completed)) / Decimal(len(rows))
    avg_hours = Decimal(0)
    if completed:
        avg_hours = Decimal(sum(r.minutes for r in completed)) / Decimal(len(completed)) / Decimal(60)
    score = completion_rate * 70 + min(avg_hours, Decimal(8)) / 8 * 30
    return round_money(score)


async def _load_rows(db: AsyncIOMotorDatabase, filters: ReportFilters) -> list[_TaskRow]:
    q: dict = {"active": True}
    if filters.company_id:
        try:
            q["company_id"] = to_object_id(filters.company_id, "Company")
        except NotFoundError as exc:
            raise ValidationError("Invalid company_id filter") from exc
    if filters.user_id:
        q["assigned_users"] = str(filters.user_id)
    created: dict = {}
    if filters.start_date:
        created["$gte"] = clock.as_datetime(filters.start_date)
    if filters.end_date:
        created["$lte"] = clock.as_datetime(filters.end_date, end_of_day=True)
    if created:
        q["created_at"] = created

    tasks = [t async for t in db["tasks"].find(q).sort([("created_at", 1), ("_id", 1)])]
    companies = await company_names(db, {t["company_id"] for t in tasks if isinstance(t.get("company_id"), ObjectId)})

    minutes: Counter = Counter()
    if tasks:
        cursor = db["time_sessions"].find({"task_id": {"$in": [t["_id"] for t in tasks]}}, {"task_id": 1, "duration_minutes": 1})
        async for s in cursor:
            minutes[s["task_id"]] += int(s.get("duration_minutes") or 0)

    rows: list[_TaskRow] = []
    for t in tasks:
        company = companies.get(str(t.get("company_id")))
        rate = company.get("cost_per_hour") if company else None
        total = minutes.get(t["_id"], 0)
        rows.append(_TaskRow(
            id=str(t["_id"]),
            title=t.get("title", ""),
            status=t.get("status", TaskStatus.NOT_STARTED.value),
            assigned_users=[str(u) for u in t.get("assigned_users", [])],
            created_at=t.get("created_at"),
            company_id=str(t.get("company_id")),
            company_name=company.get("name", UNKNOWN_COMPANY) if company else UNKNOWN_COMPANY,
            minutes=total,
            cost=calculate_cost(total, rate) if rate is not None else Decimal(0),
        ))
    return rows


async def _load_users(db: AsyncIOMotorDatabase, user_ids: Optional[set[str]] = None) -> dict[str, dict]:
    q: dict = {}
    if user_ids is not None:
        oids: list = []
        for uid in user_ids:
            try:
                oids.append(ObjectId(uid))
            except InvalidId:
                oids.append(uid)
        q["_id"] = {"$in": oids}
    return {str(u["_id"]): u async for u in db["users"].find(q)}


# ---------------------- Report kinds ----------------------


async def general_report(db: AsyncIOMotorDatabase, filters: ReportFilters) -> GeneralReport:
    rows = await _load_rows(db, filters)
    breakdown = _status_breakdown(rows)
    summary = GeneralSummary(
        total_tasks=len(rows),
        not_started_tasks=breakdown.not_started,
        in_progress_tasks=breakdown.in_progress,
        paused_tasks=breakdown.paused,
        completed_tasks=breakdown.completed,
        total_time_spent=sum(r.minutes for r in rows),
        total_cost=round_money(sum((r.cost for r in rows), Decimal(0))),
    )

    by_company: dict[str, dict] = {}
    by_user: dict[str, dict] = {}
    for r in rows:
        c = by_company.setdefault(r.company_id, {"name": r.company_name, "count": 0, "time": 0, "cost": Decimal(0)})
        c["count"] += 1
        c["time"] += r.minutes
        c["cost"] += r.cost
        # A shared task counts in full for each assignee
        for uid in r.assigned_users:
            u = by_user.setdefault(uid, {"count": 0, "time": 0, "cost": Decimal(0)})
            u["count"] += 1
            u["time"] += r.minutes
            u["cost"] += r.cost

    users = await _load_users(db, set(by_user))
    return GeneralReport(
        summary=summary,
        by_status=breakdown,
        by_company=[
            CompanyTotals(company_id=cid, company_name=c["name"], task_count=c["count"], total_time=c["time"], total_cost=round_money(c["cost"]))
            for cid, c in by_company.items()
        ],
        by_user=[
            UserTotals(
                user_id=uid,
                user_name=(users.get(uid) or {}).get("name", UNKNOWN_USER),
                task_count=u["count"],
                total_time=u["time"],
                total_cost=round_money(u["cost"]),
            )
            for uid, u in by_user.items()
        ],
    )


async def company_report(db: AsyncIOMotorDatabase, filters: ReportFilters) -> CompanyReport:
    rows = await _load_rows(db, filters)
    q: dict = {"active": True}
    if filters.company_id:
        q["_id"] = to_object_id(filters.company_id, "Company")
    companies = [c async for c in db["companies"].find(q).sort("name", 1)]

    grouped: dict[str, list[_TaskRow]] = {}
    for r in rows:
        grouped.setdefault(r.company_id, []).append(r)

    top_n = settings.REPORT_TOP_N
    out: list[CompanyReportRow] = []

    def _row(cid: str, name: str, rate: float, currency: str, items: list[_TaskRow]) -> CompanyReportRow:
        return CompanyReportRow(
            company_id=cid,
            company_name=name,
            cost_per_hour=rate,
            currency=currency,
            total_tasks=len(items),
            total_time=sum(r.minutes for r in items),
            total_cost=round_money(sum((r.cost for r in items), Decimal(0))),
            status_breakdown=_status_breakdown(items),
            tasks=[
                CompanyTaskRow(id=r.id, title=r.title, status=r.status, assigned_users=r.assigned_users, time_spent=r.minutes, created_at=r.created_at)
                for r in items[:top_n]
            ],
        )

    for c in companies:
        cid = str(c["_id"])
        out.append(_row(cid, c.get("name", ""), float(c.get("cost_per_hour") or 0.0), c.get("currency", ""), grouped.pop(cid, [])))
    # Tasks whose company is gone or deactivated
    for cid, items in grouped.items():
        out.append(_row(cid, UNKNOWN_COMPANY, 0.0, "", items))
    return CompanyReport(companies=out)


async def user_report(db: AsyncIOMotorDatabase, filters: ReportFilters) -> UserReport:
    rows = await _load_rows(db, filters)
    users = await _load_users(db, {filters.user_id} if filters.user_id else None)
    top_n = settings.REPORT_TOP_N
    out: list[UserReportRow] = []
    for uid, user in users.items():
        if is_admin_like(str(user.get("role", ""))):
            continue
        mine = [r for r in rows if uid in r.assigned_users]
        recent = sorted(mine, key=lambda r: r.created_at or datetime.min, reverse=True)[:top_n]
        out.append(UserReportRow(
            user_id=uid,
            user_name=user.get("name", UNKNOWN_USER),
            email=user.get("email", ""),
            total_tasks=len(mine),
            total_time=sum(r.minutes for r in mine),
            status_breakdown=_status_breakdown(mine),
            productivity_score=productivity_score(mine),
            recent_tasks=[
                UserTaskRow(id=r.id, title=r.title, status=r.status, company_name=r.company_name, time_spent=r.minutes)
                for r in recent
            ],
        ))
    return UserReport(users=out)


async def time_report(db: AsyncIOMotorDatabase, filters: ReportFilters) -> TimeReport:
    rows = await _load_rows(db, filters)
    daily: dict[str, int] = {}
    weekly: dict[str, int] = {}
    monthly: dict[str, int] = {}
    for r in rows:
        if r.created_at is None:
            continue
        year, week, _ = r.created_at.isocalendar()
        for bucket, key in (
            (daily, r.created_at.strftime("%Y-%m-%d")),
            (weekly, f"{year}-W{week:02d}"),
            (monthly, r.created_at.strftime("%Y-%m")),
        ):
            bucket[key] = bucket.get(key, 0) + r.minutes
    total = sum(r.minutes for r in rows)
    # sorted() is stable: ties keep their original order
    ranked = sorted(rows, key=lambda r: r.minutes, reverse=True)[:settings.REPORT_TOP_N]
    return TimeReport(
        total_time=total,
        daily_breakdown=daily,
        weekly_breakdown=weekly,
        monthly_breakdown=monthly,
        average_task_time=round_money(Decimal(total) / Decimal(len(rows))) if rows else 0.0,
        most_time_consuming_tasks=[
            TimeTaskRow(id=r.id, title=r.title, time_spent=r.minutes, company_name=r.company_name) for r in ranked
        ],
    )


async def cost_report(db: AsyncIOMotorDatabase, filters: ReportFilters) -> CostReport:
    rows = await _load_rows(db, filters)
    by_company: dict[str, Decimal] = {}
    by_month: dict[str, Decimal] = {}
    for r in rows:
        by_company[r.company_name] = by_company.get(r.company_name, Decimal(0)) + r.cost
        if r.created_at is not None:
            month = r.created_at.strftime("%Y-%m")
            by_month[month] = by_month.get(month, Decimal(0)) + r.cost
    ranked = sorted(rows, key=lambda r: r.cost, reverse=True)[:settings.REPORT_TOP_N]
    return CostReport(
        total_cost=round_money(sum((r.cost for r in rows), Decimal(0))),
        cost_by_company={k: round_money(v) for k, v in by_company.items()},
        cost_by_month={k: round_money(v) for k, v in by_month.items()},
        most_expensive_tasks=[
            CostTaskRow(id=r.id, title=r.title, cost=round_money(r.cost), company_name=r.company_name) for r in ranked
        ],
    )


_GENERATORS = {
    "general": general_report,
    "company": company_report,
    "user": user_report,
    "time": time_report,
    "cost": cost_report,
}


async def generate_report(db: AsyncIOMotorDatabase, kind: str, filters: ReportFilters, actor: dict):
    require_admin(actor)
    generator = _GENERATORS.get(kind)
    if generator is None:
        raise ValidationError(f"Unknown report type: {kind}")
    report = await generator(db, filters)
    logger.info("Report %s generated for %s", kind, actor["id"])
    return report
