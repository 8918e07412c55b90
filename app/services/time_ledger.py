"""
Time session ledger.

Sessions are the source of truth for tracked time. Task totals are always
re-derived from the full session set, so re-running a recomputation (or
retrying a request that already went through) never double counts.
"""
from __future__ import annotations

import logging
from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.errors import ConflictError, DependencyMissingError, NotFoundError, ValidationError
from app.schemas.common import SessionStatus
from app.schemas.time_session_schema import TimeSessionOut
from app.services.cost_calculator import price_minutes, round_minutes
from app.utils import clock


logger = logging.getLogger(__name__)


def session_out(doc: dict) -> TimeSessionOut:
    return TimeSessionOut(
        id=str(doc["_id"]),
        task_id=str(doc.get("task_id")),
        user_id=str(doc.get("user_id")),
        start_time=doc.get("start_time"),
        end_time=doc.get("end_time"),
        duration_minutes=int(doc.get("duration_minutes") or 0),
        status=doc.get("status", SessionStatus.completed.value),
        cost=doc.get("cost"),
    )


async def get_active_session(db: AsyncIOMotorDatabase, task_id: ObjectId, user_id: str) -> Optional[dict]:
    return await db["time_sessions"].find_one({
        "task_id": task_id,
        "user_id": str(user_id),
        "status": SessionStatus.active.value,
    })


async def list_sessions(db: AsyncIOMotorDatabase, task_id: ObjectId, user_id: Optional[str] = None) -> list[dict]:
    q: dict = {"task_id": task_id}
    if user_id:
        q["user_id"] = str(user_id)
    return [s async for s in db["time_sessions"].find(q).sort("start_time", 1)]


async def start_session(db: AsyncIOMotorDatabase, task_id: ObjectId, user_id: str) -> dict:
    """Open an active session for (task, user).

    The unique partial index on active sessions makes the insert itself the
    check, so two concurrent starts cannot both succeed.

    Raises:
        ConflictError: If the user already has an active session on the task
    """
    now = clock.utcnow()
    doc = {
        "task_id": task_id,
        "user_id": str(user_id),
        "start_time": now,
        "end_time": None,
        "duration_minutes": 0,
        "status": SessionStatus.active.value,
        "cost": 0.0,
        "created_at": now,
    }
    try:
        await db["time_sessions"].insert_one(doc)
    except DuplicateKeyError as exc:
        logger.info("Rejected second active session for task %s user %s", task_id, user_id)
        raise ConflictError("You already have an active session on this task") from exc
    return doc


async def stop_session(db: AsyncIOMotorDatabase, task_id: ObjectId, user_id: str) -> dict:
    """Close the caller's active session and re-derive the task totals.

    Raises:
        NotFoundError: If there is no active session to stop
    """
    active = await get_active_session(db, task_id, user_id)
    if not active:
        raise NotFoundError("No active session to stop")
    now = clock.utcnow()
    duration = max(0, round_minutes((now - active["start_time"]).total_seconds()))
    # Conditional on still being active: a retried stop must not close twice
    res = await db["time_sessions"].update_one(
        {"_id": active["_id"], "status": SessionStatus.active.value},
        {"$set": {"end_time": now, "duration_minutes": duration, "status": SessionStatus.completed.value}},
    )
    if res.modified_count == 0:
        raise NotFoundError("No active session to stop")
    await _price_session(db, task_id, active["_id"], duration)
    await recompute_task_time(db, task_id)
    return await db["time_sessions"].find_one({"_id": active["_id"]})


async def add_manual_session(db: AsyncIOMotorDatabase, task_id: ObjectId, user_id: str, minutes) -> dict:
    """Record retroactive time as a closed ``manual`` session.

    Raises:
        ValidationError: If minutes is not a positive integer
    """
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
        raise ValidationError("Manual time must be a positive whole number of minutes")
    now = clock.utcnow()
    doc = {
        "task_id": task_id,
        "user_id": str(user_id),
        "start_time": now,
        "end_time": now,
        "duration_minutes": minutes,
        "status": SessionStatus.manual.value,
        "cost": 0.0,
        "created_at": now,
    }
    await db["time_sessions"].insert_one(doc)
    logger.info("Manual session of %d min recorded on task %s by %s", minutes, task_id, user_id)
    await _price_session(db, task_id, doc["_id"], minutes)
    await recompute_task_time(db, task_id)
    return await db["time_sessions"].find_one({"_id": doc["_id"]})


async def recompute_task_time(db: AsyncIOMotorDatabase, task_id: ObjectId) -> dict:
    """Re-aggregate every session of the task into its cached totals.

    A missing company rate leaves the previous ``total_cost`` in place and is
    only logged; the time total is always written.
    """
    task = await db["tasks"].find_one({"_id": task_id})
    if not task:
        raise NotFoundError("Task not found")
    total = 0
    async for s in db["time_sessions"].find({"task_id": task_id}, {"duration_minutes": 1}):
        total += int(s.get("duration_minutes") or 0)
    now = clock.utcnow()
    await db["tasks"].update_one({"_id": task_id}, {"$set": {"total_time_spent": total, "updated_at": now}})

    total_cost = float(task.get("total_cost") or 0.0)
    cost_updated = False
    try:
        total_cost = await price_minutes(db, task.get("company_id"), total)
        await db["tasks"].update_one({"_id": task_id}, {"$set": {"total_cost": total_cost}})
        cost_updated = True
    except DependencyMissingError as exc:
        logger.warning("Cost for task %s left unchanged: %s", task_id, exc.message)
    return {
        "task_id": str(task_id),
        "total_time_spent": total,
        "total_cost": total_cost,
        "cost_updated": cost_updated,
    }


async def _price_session(db: AsyncIOMotorDatabase, task_id: ObjectId, session_id: ObjectId, minutes: int) -> None:
    task = await db["tasks"].find_one({"_id": task_id}, {"company_id": 1})
    if not task:
        return
    try:
        cost = await price_minutes(db, task.get("company_id"), minutes)
    except DependencyMissingError as exc:
        logger.warning("Session %s left unpriced: %s", session_id, exc.message)
        return
    await db["time_sessions"].update_one({"_id": session_id}, {"$set": {"cost": cost}})
