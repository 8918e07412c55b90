"""
Task lifecycle state machine.

    not_started -> in_progress <-> paused -> completed

``completed`` is terminal. Each transition writes the new status and pushes
its history entry in the same conditional update, so the history can never
disagree with the status field.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import settings
from app.core.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from app.core.rbac import is_admin_like, is_assigned, require_admin
from app.schemas.common import TaskStatus
from app.schemas.report_schema import StatusBreakdown
from app.schemas.task_schema import ActionResult, CriticalTaskOut, RecomputeOut, TaskIn, TaskOut, UserStatsOut
from app.services import time_ledger
from app.services.company_registry import company_names, get_company_by_id
from app.services.cost_calculator import round_money
from app.utils import clock
from app.utils.ids import to_object_id


logger = logging.getLogger(__name__)

OPEN_STATUSES = (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS, TaskStatus.PAUSED)


def task_out(doc: dict) -> TaskOut:
    return TaskOut(
        id=str(doc["_id"]),
        title=doc.get("title", ""),
        description=doc.get("description", ""),
        company_id=str(doc.get("company_id")),
        assigned_users=[str(u) for u in doc.get("assigned_users", [])],
        status=doc.get("status", TaskStatus.NOT_STARTED.value),
        priority=doc.get("priority", "medium"),
        estimated_hours=doc.get("estimated_hours"),
        due_date=doc.get("due_date"),
        total_time_spent=int(doc.get("total_time_spent") or 0),
        total_cost=float(doc.get("total_cost") or 0.0),
        status_history=doc.get("status_history", []),
        active=bool(doc.get("active", True)),
        created_at=doc.get("created_at"),
        completed_at=doc.get("completed_at"),
    )


def _history_entry(status: TaskStatus, actor_id: str, comment: str, now) -> dict:
    return {"status": status.value, "changed_by": str(actor_id), "changed_at": now, "comment": comment}


async def _load_task(db: AsyncIOMotorDatabase, task_id) -> dict:
    oid = to_object_id(task_id, "Task")
    task = await db["tasks"].find_one({"_id": oid, "active": True})
    if not task:
        raise NotFoundError("Task not found")
    return task


async def _transition(
    db: AsyncIOMotorDatabase,
    task_id: ObjectId,
    new_status: TaskStatus,
    actor_id: str,
    comment: str,
    allowed_from: Iterable[TaskStatus],
) -> bool:
    """Compare-and-set the status; returns False when the task was not in ``allowed_from``."""
    now = clock.utcnow()
    fields = {"status": new_status.value, "updated_at": now}
    if new_status is TaskStatus.COMPLETED:
        fields["completed_at"] = now
    res = await db["tasks"].update_one(
        {"_id": task_id, "status": {"$in": [s.value for s in allowed_from]}},
        {"$set": fields, "$push": {"status_history": _history_entry(new_status, actor_id, comment, now)}},
    )
    if res.modified_count:
        logger.info("Task %s -> %s by %s", task_id, new_status.value, actor_id)
    return res.modified_count == 1


# ---------------------- Lifecycle ----------------------


async def create_task(db: AsyncIOMotorDatabase, payload: TaskIn, actor: dict) -> TaskOut:
    require_admin(actor)
    title = (payload.title or "").strip()
    assigned = list(dict.fromkeys(str(u).strip() for u in payload.assigned_users if str(u).strip()))
    if not title or not (payload.company_id or "").strip() or not assigned:
        raise ValidationError("Missing required fields: title, company and assigned users")
    company = await get_company_by_id(db, payload.company_id)
    if not company:
        raise NotFoundError("Company not found")
    now = clock.utcnow()
    doc = {
        "title": title,
        "description": payload.description or "",
        "company_id": company["_id"],
        "assigned_users": assigned,
        "status": TaskStatus.NOT_STARTED.value,
        "priority": payload.priority.value,
        "estimated_hours": payload.estimated_hours,
        "due_date": clock.as_datetime(payload.due_date),
        "created_by": actor["id"],
        "created_at": now,
        "updated_at": now,
        "completed_at": None,
        "status_history": [_history_entry(TaskStatus.NOT_STARTED, actor["id"], "Task created", now)],
        "total_time_spent": 0,
        "total_cost": 0.0,
        "active": True,
    }
    res = await db["tasks"].insert_one(doc)
    doc["_id"] = res.inserted_id
    logger.info("Task %s created for company %s by %s", res.inserted_id, company["_id"], actor["id"])
    return task_out(doc)


async def _start(db: AsyncIOMotorDatabase, task: dict, actor: dict, comment: str) -> None:
    user_id = actor["id"]
    if not is_assigned(task, user_id):
        raise PermissionDeniedError("You are not assigned to this task")
    if task.get("status") == TaskStatus.COMPLETED.value:
        raise InvalidStateError("Cannot start a completed task")
    await time_ledger.start_session(db, task["_id"], user_id)
    if task.get("status") == TaskStatus.IN_PROGRESS.value:
        return
    moved = await _transition(
        db, task["_id"], TaskStatus.IN_PROGRESS, user_id, comment,
        allowed_from=(TaskStatus.NOT_STARTED, TaskStatus.PAUSED),
    )
    if not moved:
        current = await db["tasks"].find_one({"_id": task["_id"]}, {"status": 1})
        if current and current.get("status") == TaskStatus.COMPLETED.value:
            # Completed by someone else in the meantime; do not leave the session open
            await time_ledger.stop_session(db, task["_id"], user_id)
            raise InvalidStateError("Cannot start a completed task")


async def start_task(db: AsyncIOMotorDatabase, task_id: str, actor: dict) -> ActionResult:
    task = await _load_task(db, task_id)
    await _start(db, task, actor, "Task started")
    return ActionResult(message="Task started")


async def pause_task(db: AsyncIOMotorDatabase, task_id: str, actor: dict) -> ActionResult:
    task = await _load_task(db, task_id)
    await time_ledger.stop_session(db, task["_id"], actor["id"])
    moved = await _transition(
        db, task["_id"], TaskStatus.PAUSED, actor["id"], "Task paused",
        allowed_from=(TaskStatus.IN_PROGRESS, TaskStatus.PAUSED),
    )
    if not moved:
        return ActionResult(message="Session stopped")
    return ActionResult(message="Task paused")


async def resume_task(db: AsyncIOMotorDatabase, task_id: str, actor: dict) -> ActionResult:
    task = await _load_task(db, task_id)
    if task.get("status") != TaskStatus.PAUSED.value:
        raise InvalidStateError("Only paused tasks can be resumed")
    await _start(db, task, actor, "Task resumed")
    return ActionResult(message="Task resumed")


async def complete_task(
    db: AsyncIOMotorDatabase,
    task_id: str,
    actor: dict,
    manual_minutes: Optional[int] = None,
) -> ActionResult:
    task = await _load_task(db, task_id)
    user_id = actor["id"]
    _require_visible(task, actor)
    if task.get("status") == TaskStatus.COMPLETED.value:
        raise InvalidStateError("Task is already completed")
    if manual_minutes is not None and (isinstance(manual_minutes, bool) or not isinstance(manual_minutes, int) or manual_minutes <= 0):
        raise ValidationError("Manual time must be a positive whole number of minutes")

    # Claim the completion first; only the caller that wins records time
    moved = await _transition(
        db, task["_id"], TaskStatus.COMPLETED, user_id, "Task completed",
        allowed_from=OPEN_STATUSES,
    )
    if not moved:
        raise InvalidStateError("Task is already completed")

    if await time_ledger.get_active_session(db, task["_id"], user_id):
        await time_ledger.stop_session(db, task["_id"], user_id)
    if manual_minutes:
        current = await db["tasks"].find_one({"_id": task["_id"]}, {"total_time_spent": 1})
        if int((current or {}).get("total_time_spent") or 0) == 0:
            await time_ledger.add_manual_session(db, task["_id"], user_id, manual_minutes)
    await time_ledger.recompute_task_time(db, task["_id"])
    return ActionResult(message="Task completed")


async def add_manual_time(db: AsyncIOMotorDatabase, task_id: str, actor: dict, minutes: int) -> dict:
    task = await _load_task(db, task_id)
    if not is_assigned(task, actor["id"]):
        raise PermissionDeniedError("You are not assigned to this task")
    if task.get("status") == TaskStatus.COMPLETED.value:
        raise InvalidStateError("Cannot add time to a completed task")
    return await time_ledger.add_manual_session(db, task["_id"], actor["id"], minutes)


async def deactivate_task(db: AsyncIOMotorDatabase, task_id: str, actor: dict) -> None:
    require_admin(actor)
    task = await _load_task(db, task_id)
    await db["tasks"].update_one({"_id": task["_id"]}, {"$set": {"active": False, "updated_at": clock.utcnow()}})
    logger.info("Task %s deactivated by %s", task["_id"], actor["id"])


# ---------------------- Reads ----------------------


def _require_visible(task: dict, actor: dict) -> None:
    if not is_admin_like(str(actor.get("role", ""))) and not is_assigned(task, actor["id"]):
        raise PermissionDeniedError("You are not assigned to this task")


async def get_task(db: AsyncIOMotorDatabase, task_id: str, actor: dict) -> TaskOut:
    task = await _load_task(db, task_id)
    _require_visible(task, actor)
    return task_out(task)


async def get_task_sessions(db: AsyncIOMotorDatabase, task_id: str, actor: dict) -> list[dict]:
    task = await _load_task(db, task_id)
    _require_visible(task, actor)
    if is_admin_like(str(actor.get("role", ""))):
        return await time_ledger.list_sessions(db, task["_id"])
    return await time_ledger.list_sessions(db, task["_id"], actor["id"])


async def _find_tasks(db: AsyncIOMotorDatabase, q: dict, sort: tuple[str, int] = ("created_at", -1)) -> list[TaskOut]:
    return [task_out(t) async for t in db["tasks"].find(q).sort(*sort)]


async def get_tasks_by_user(db: AsyncIOMotorDatabase, user_id: str, status: Optional[TaskStatus] = None) -> list[TaskOut]:
    q: dict = {"assigned_users": str(user_id), "active": True}
    if status:
        q["status"] = TaskStatus(status).value
    return await _find_tasks(db, q)


async def get_tasks_by_company(db: AsyncIOMotorDatabase, company_id: str, status: Optional[TaskStatus] = None) -> list[TaskOut]:
    q: dict = {"company_id": to_object_id(company_id, "Company"), "active": True}
    if status:
        q["status"] = TaskStatus(status).value
    return await _find_tasks(db, q)


async def get_tasks_near_deadline(db: AsyncIOMotorDatabase, user_id: str, days: Optional[int] = None) -> list[TaskOut]:
    now = clock.utcnow()
    horizon = now + timedelta(days=settings.NEAR_DEADLINE_DAYS if days is None else days)
    return await _find_tasks(db, {
        "assigned_users": str(user_id),
        "active": True,
        "status": {"$ne": TaskStatus.COMPLETED.value},
        "due_date": {"$gte": now, "$lte": horizon},
    }, sort=("due_date", 1))


async def get_overdue_tasks(db: AsyncIOMotorDatabase, user_id: str) -> list[TaskOut]:
    return await _find_tasks(db, {
        "assigned_users": str(user_id),
        "active": True,
        "status": {"$ne": TaskStatus.COMPLETED.value},
        "due_date": {"$lt": clock.utcnow()},
    }, sort=("due_date", 1))


async def get_user_stats(db: AsyncIOMotorDatabase, user_id: str) -> UserStatsOut:
    """Counts over the user's active tasks plus the time they closed out today."""
    now = clock.utcnow()
    today = clock.start_of_day(now)
    tomorrow = today + timedelta(days=1)
    tasks = [
        t async for t in db["tasks"].find(
            {"assigned_users": str(user_id), "active": True},
            {"status": 1, "due_date": 1, "completed_at": 1},
        )
    ]
    done = TaskStatus.COMPLETED.value
    counts = Counter(t.get("status", TaskStatus.NOT_STARTED.value) for t in tasks)
    overdue = sum(1 for t in tasks if t.get("status") != done and t.get("due_date") is not None and t["due_date"] < now)
    completed_today = sum(
        1 for t in tasks
        if t.get("status") == done and t.get("completed_at") is not None and today <= t["completed_at"] < tomorrow
    )
    # Active sessions have no end yet and contribute nothing
    minutes_today = 0
    cursor = db["time_sessions"].find(
        {"user_id": str(user_id), "end_time": {"$gte": today, "$lt": tomorrow}},
        {"duration_minutes": 1},
    )
    async for s in cursor:
        minutes_today += int(s.get("duration_minutes") or 0)
    rate = round_money(Decimal(counts.get(done, 0) * 100) / Decimal(len(tasks))) if tasks else 0.0
    return UserStatsOut(
        total_tasks=len(tasks),
        status_breakdown=StatusBreakdown(**{s.value: counts.get(s.value, 0) for s in TaskStatus}),
        pending_tasks=len(tasks) - counts.get(done, 0),
        overdue_tasks=overdue,
        completed_today=completed_today,
        time_worked_today=minutes_today,
        completion_rate=rate,
    )


async def get_critical_tasks(db: AsyncIOMotorDatabase, actor: dict, limit: int = 15) -> list[CriticalTaskOut]:
    """Overdue, due within a day, or high priority and in progress; overdue first."""
    require_admin(actor)
    now = clock.utcnow()
    open_q = {"$ne": TaskStatus.COMPLETED.value}
    cursor = db["tasks"].find({
        "active": True,
        "$or": [
            {"due_date": {"$lt": now}, "status": open_q},
            {"due_date": {"$gte": now, "$lte": now + timedelta(days=1)}, "status": open_q},
            {"priority": "high", "status": TaskStatus.IN_PROGRESS.value},
        ],
    })
    docs = [t async for t in cursor]
    companies = await company_names(db, {t["company_id"] for t in docs if isinstance(t.get("company_id"), ObjectId)})
    docs.sort(key=lambda t: (
        not (t.get("due_date") is not None and t["due_date"] < now),
        t.get("due_date") is None,
        t.get("due_date") or now,
    ))
    out: list[CriticalTaskOut] = []
    for t in docs[:limit]:
        due = t.get("due_date")
        out.append(CriticalTaskOut(
            id=str(t["_id"]),
            title=t.get("title", ""),
            status=t.get("status", TaskStatus.NOT_STARTED.value),
            priority=t.get("priority", "medium"),
            due_date=due,
            company_name=companies.get(str(t.get("company_id")), {}).get("name", "Unknown company"),
            is_overdue=bool(due is not None and due < now),
        ))
    return out


# ---------------------- Repair ----------------------


async def recompute_task(db: AsyncIOMotorDatabase, task_id: str, actor: dict) -> RecomputeOut:
    require_admin(actor)
    task = await _load_task(db, task_id)
    return RecomputeOut(**await time_ledger.recompute_task_time(db, task["_id"]))


async def recompute_all(db: AsyncIOMotorDatabase) -> list[RecomputeOut]:
    """Re-derive the cached totals of every task from its sessions."""
    out: list[RecomputeOut] = []
    async for t in db["tasks"].find({}, {"_id": 1}):
        out.append(RecomputeOut(**await time_ledger.recompute_task_time(db, t["_id"])))
    stale = sum(1 for r in out if not r.cost_updated)
    logger.info("Recomputed %d tasks (%d with unresolvable rates)", len(out), stale)
    return out
