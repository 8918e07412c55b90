from datetime import date

import pytest
from bson import ObjectId

from app.core.errors import PermissionDeniedError, ValidationError
from app.schemas.company_schema import CompanyIn
from app.schemas.report_schema import ReportFilters
from app.services import reports, task_engine
from app.services.company_registry import create_company, deactivate_company
from app.services.reports import _TaskRow, productivity_score


def _row(status: str, minutes: int = 0) -> _TaskRow:
    return _TaskRow(
        id=str(ObjectId()),
        title="t",
        status=status,
        assigned_users=[],
        created_at=None,
        company_id="",
        company_name="",
        minutes=minutes,
    )


def test_productivity_score_weighting():
    rows = [_row("completed", 240) for _ in range(7)] + [_row("in_progress") for _ in range(3)]
    assert productivity_score(rows) == 64.0


def test_productivity_score_caps_hours():
    assert productivity_score([_row("completed", 60 * 20)]) == 100.0
    assert productivity_score([_row("paused", 600)]) == 0.0
    assert productivity_score([]) == 0.0


async def test_reports_require_admin(db, alice):
    with pytest.raises(PermissionDeniedError):
        await reports.generate_report(db, "general", ReportFilters(), alice)


async def test_unknown_report_kind(db, admin):
    with pytest.raises(ValidationError):
        await reports.generate_report(db, "weather", ReportFilters(), admin)


async def test_invalid_company_filter(db, admin):
    with pytest.raises(ValidationError):
        await reports.generate_report(db, "general", ReportFilters(company_id="nope"), admin)


async def test_general_report_totals(db, users, task_factory, alice, bob, fake_clock):
    solo = await task_factory([alice], title="Solo")
    shared = await task_factory([alice, bob], title="Shared")
    await task_engine.add_manual_time(db, solo.id, alice, 30)
    await task_engine.add_manual_time(db, shared.id, bob, 90)
    await task_engine.complete_task(db, shared.id, bob)

    report = await reports.generate_report(db, "general", ReportFilters(), users["admin"])
    assert report.kind == "general"
    assert report.summary.total_tasks == 2
    assert report.summary.completed_tasks == 1
    assert report.summary.not_started_tasks == 1
    assert report.summary.total_time_spent == 120
    assert report.summary.total_cost == 40.0
    assert report.by_company[0].company_name == "Acme"

    by_user = {u.user_name: u for u in report.by_user}
    # A shared task counts in full for each assignee
    assert by_user["Alice"].task_count == 2
    assert by_user["Alice"].total_time == 120
    assert by_user["Bob"].task_count == 1
    assert by_user["Bob"].total_cost == 30.0


async def test_reports_use_sessions_not_cached_totals(db, users, task, alice, fake_clock):
    await task_engine.add_manual_time(db, task.id, alice, 60)
    await db["tasks"].update_one({"_id": ObjectId(task.id)}, {"$set": {"total_time_spent": 5, "total_cost": 999.0}})
    before = await db["tasks"].find_one({"_id": ObjectId(task.id)})

    report = await reports.generate_report(db, "general", ReportFilters(), users["admin"])
    assert report.summary.total_time_spent == 60
    assert report.summary.total_cost == 20.0
    # Reports never write back
    assert await db["tasks"].find_one({"_id": ObjectId(task.id)}) == before


async def test_inactive_company_is_unknown_with_zero_cost(db, users, admin, company, task, alice, fake_clock):
    await task_engine.add_manual_time(db, task.id, alice, 60)
    await deactivate_company(db, company.id, admin)

    general = await reports.generate_report(db, "general", ReportFilters(), admin)
    assert general.by_company[0].company_name == "Unknown company"
    assert general.summary.total_cost == 0.0
    assert general.summary.total_time_spent == 60

    by_company = await reports.generate_report(db, "company", ReportFilters(), admin)
    assert [c.company_name for c in by_company.companies] == ["Unknown company"]


async def test_company_report_lists_idle_companies(db, admin, users, task_factory, alice, fake_clock):
    await create_company(db, CompanyIn(name="Zeta", cost_per_hour=10), admin)
    first = await task_factory([alice], title="One")
    await task_engine.add_manual_time(db, first.id, alice, 30)

    report = await reports.generate_report(db, "company", ReportFilters(), admin)
    rows = {c.company_name: c for c in report.companies}
    assert [c.company_name for c in report.companies] == ["Acme", "Zeta"]
    assert rows["Acme"].total_tasks == 1
    assert rows["Acme"].total_cost == 10.0
    assert rows["Acme"].status_breakdown.not_started == 1
    assert rows["Zeta"].total_tasks == 0
    assert rows["Zeta"].tasks == []


async def test_user_report_skips_admins(db, users, task_factory, alice, fake_clock):
    done = await task_factory([alice], title="Done")
    await task_factory([alice], title="Open")
    await task_engine.complete_task(db, done.id, alice, manual_minutes=240)

    report = await reports.generate_report(db, "user", ReportFilters(), users["admin"])
    names = [u.user_name for u in report.users]
    assert "Admin" not in names
    alice_row = next(u for u in report.users if u.user_name == "Alice")
    assert alice_row.total_tasks == 2
    # 0.5 * 70 + (4 / 8) * 30
    assert alice_row.productivity_score == 50.0
    assert alice_row.email == "alice@example.com"
    bob_row = next(u for u in report.users if u.user_name == "Bob")
    assert bob_row.total_tasks == 0
    assert bob_row.productivity_score == 0.0


async def test_time_report_daily_breakdown(db, users, task_factory, alice, fake_clock):
    minutes = [30, 45, 60]
    for day, m in enumerate(minutes):
        t = await task_factory([alice], title=f"Day {day}")
        await task_engine.add_manual_time(db, t.id, alice, m)
        fake_clock.advance(days=1)

    report = await reports.generate_report(db, "time", ReportFilters(), users["admin"])
    assert report.kind == "time"
    assert len(report.daily_breakdown) == 3
    assert sum(report.daily_breakdown.values()) == report.total_time == 135
    assert report.monthly_breakdown == {"2025-03": 135}
    assert report.average_task_time == 45.0
    assert [t.time_spent for t in report.most_time_consuming_tasks] == [60, 45, 30]


async def test_time_report_ties_keep_creation_order(db, users, task_factory, alice, fake_clock):
    titles = ["A", "B", "C"]
    for title in titles:
        t = await task_factory([alice], title=title)
        await task_engine.add_manual_time(db, t.id, alice, 15)
        fake_clock.advance(minutes=1)

    report = await reports.generate_report(db, "time", ReportFilters(), users["admin"])
    assert [t.title for t in report.most_time_consuming_tasks] == titles


async def test_date_range_filter_is_inclusive(db, users, task_factory, alice, fake_clock):
    await task_factory([alice], title="Before")
    fake_clock.advance(days=1, hours=14)
    await task_factory([alice], title="Inside")
    fake_clock.advance(days=1)
    await task_factory([alice], title="After")

    filters = ReportFilters(start_date=date(2025, 3, 4), end_date=date(2025, 3, 4))
    report = await reports.generate_report(db, "time", filters, users["admin"])
    assert [t.title for t in report.most_time_consuming_tasks] == ["Inside"]


async def test_filters_combine_with_and(db, admin, users, task_factory, alice, bob, fake_clock):
    other = await create_company(db, CompanyIn(name="Globex", cost_per_hour=60), admin)
    await task_factory([alice], title="Acme/Alice")
    await task_factory([bob], title="Acme/Bob")
    await task_factory([alice], title="Globex/Alice", company_id=other.id)

    filters = ReportFilters(company_id=other.id, user_id=alice["id"])
    report = await reports.generate_report(db, "general", filters, admin)
    assert report.summary.total_tasks == 1
    assert report.by_company[0].company_name == "Globex"


async def test_cost_report(db, admin, users, task_factory, alice, fake_clock):
    other = await create_company(db, CompanyIn(name="Globex", cost_per_hour=60), admin)
    cheap = await task_factory([alice], title="Cheap")
    fake_clock.advance(minutes=1)
    pricey = await task_factory([alice], title="Pricey", company_id=other.id)
    await task_engine.add_manual_time(db, cheap.id, alice, 90)
    fake_clock.advance(days=31)
    late = await task_factory([alice], title="Next month", company_id=other.id)
    await task_engine.add_manual_time(db, pricey.id, alice, 30)
    await task_engine.add_manual_time(db, late.id, alice, 1)

    report = await reports.generate_report(db, "cost", ReportFilters(), admin)
    assert report.total_cost == 61.0
    assert report.cost_by_company == {"Acme": 30.0, "Globex": 31.0}
    assert report.cost_by_month == {"2025-03": 60.0, "2025-04": 1.0}
    assert [t.title for t in report.most_expensive_tasks] == ["Cheap", "Pricey", "Next month"]


async def test_top_n_is_capped(db, users, task_factory, alice, fake_clock):
    for i in range(12):
        t = await task_factory([alice], title=f"T{i}")
        await task_engine.add_manual_time(db, t.id, alice, i + 1)
        fake_clock.advance(minutes=1)
    report = await reports.generate_report(db, "time", ReportFilters(), users["admin"])
    assert len(report.most_time_consuming_tasks) == 10
    assert report.most_time_consuming_tasks[0].title == "T11"


async def test_report_is_unaffected_by_later_days(db, users, task_factory, alice, fake_clock):
    t = await task_factory([alice])
    await task_engine.add_manual_time(db, t.id, alice, 10)
    first = await reports.generate_report(db, "general", ReportFilters(), users["admin"])
    fake_clock.advance(days=3)
    second = await reports.generate_report(db, "general", ReportFilters(), users["admin"])
    assert first == second


async def test_company_report_keeps_first_ten_tasks(db, users, task_factory, alice, fake_clock):
    for i in range(12):
        await task_factory([alice], title=f"T{i:02d}")
        fake_clock.advance(minutes=1)

    report = await reports.generate_report(db, "company", ReportFilters(), users["admin"])
    acme = report.companies[0]
    assert acme.total_tasks == 12
    assert [t.title for t in acme.tasks] == [f"T{i:02d}" for i in range(10)]


async def test_user_report_keeps_ten_most_recent(db, users, task_factory, alice, fake_clock):
    for i in range(12):
        await task_factory([alice], title=f"T{i:02d}")
        fake_clock.advance(minutes=1)

    report = await reports.generate_report(db, "user", ReportFilters(), users["admin"])
    alice_row = next(u for u in report.users if u.user_name == "Alice")
    assert alice_row.total_tasks == 12
    assert [t.title for t in alice_row.recent_tasks] == [f"T{i:02d}" for i in range(11, 1, -1)]


async def test_cost_report_ties_keep_creation_order(db, users, task_factory, alice, fake_clock):
    minutes = {"A": 30, "B": 60, "C": 30, "D": 60, "E": 30}
    for title, m in minutes.items():
        t = await task_factory([alice], title=title)
        await task_engine.add_manual_time(db, t.id, alice, m)
        fake_clock.advance(minutes=1)
    for i in range(8):
        await task_factory([alice], title=f"Free {i}")
        fake_clock.advance(minutes=1)

    report = await reports.generate_report(db, "cost", ReportFilters(), users["admin"])
    titles = [t.title for t in report.most_expensive_tasks]
    assert len(titles) == 10
    assert titles[:5] == ["B", "D", "A", "C", "E"]
    assert titles[5:] == [f"Free {i}" for i in range(5)]


async def test_company_without_rate_costs_nothing(db, users, task, alice, company, fake_clock):
    await task_engine.add_manual_time(db, task.id, alice, 60)
    await db["companies"].update_one({"_id": ObjectId(company.id)}, {"$unset": {"cost_per_hour": ""}})

    general = await reports.generate_report(db, "general", ReportFilters(), users["admin"])
    assert general.summary.total_cost == 0.0
    assert general.summary.total_time_spent == 60
    assert general.by_company[0].company_name == "Acme"

    by_company = await reports.generate_report(db, "company", ReportFilters(), users["admin"])
    assert by_company.companies[0].cost_per_hour == 0.0
