from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.rbac import require_admin
from app.core.security import get_current_user
from app.db.mongo import get_mongo_db
from app.schemas.common import TaskStatus
from app.schemas.task_schema import ActionResult, CompletePayload, CriticalTaskOut, RecomputeOut, TaskIn, TaskOut, UserStatsOut
from app.schemas.time_session_schema import ManualSessionIn, TimeSessionOut
from app.services import task_engine
from app.services.time_ledger import session_out


router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(payload: TaskIn, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await task_engine.create_task(db, payload, current_user)


@router.get("/me", response_model=list[TaskOut])
async def my_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    return await task_engine.get_tasks_by_user(db, current_user["id"], status_filter)


@router.get("/me/near-deadline", response_model=list[TaskOut])
async def my_tasks_near_deadline(
    days: Optional[int] = Query(None, ge=0, le=365),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    return await task_engine.get_tasks_near_deadline(db, current_user["id"], days)


@router.get("/me/overdue", response_model=list[TaskOut])
async def my_overdue_tasks(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await task_engine.get_overdue_tasks(db, current_user["id"])


@router.get("/me/stats", response_model=UserStatsOut)
async def my_stats(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    """Task counts, overdue work and today's tracked time for the caller."""
    return await task_engine.get_user_stats(db, current_user["id"])


@router.get("/critical", response_model=list[CriticalTaskOut])
async def critical_tasks(
    limit: int = Query(15, ge=1, le=100),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    """Admin: overdue, due within 24 hours, or high priority in progress."""
    return await task_engine.get_critical_tasks(db, current_user, limit)


@router.post("/recompute", response_model=list[RecomputeOut])
async def recompute_all(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    """Admin: re-derive every task's totals from its sessions."""
    require_admin(current_user)
    return await task_engine.recompute_all(db)


@router.get("/company/{company_id}", response_model=list[TaskOut])
async def company_tasks(
    company_id: str = Path(...),
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    return await task_engine.get_tasks_by_company(db, company_id, status_filter)


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(task_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await task_engine.get_task(db, task_id, current_user)


@router.delete("/{task_id}", response_model=ActionResult)
async def deactivate_task(task_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    await task_engine.deactivate_task(db, task_id, current_user)
    return ActionResult(message="Task deactivated")


# ---------------------- Lifecycle ----------------------


@router.post("/{task_id}/start", response_model=ActionResult)
async def start_task(task_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await task_engine.start_task(db, task_id, current_user)


@router.post("/{task_id}/pause", response_model=ActionResult)
async def pause_task(task_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await task_engine.pause_task(db, task_id, current_user)


@router.post("/{task_id}/resume", response_model=ActionResult)
async def resume_task(task_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await task_engine.resume_task(db, task_id, current_user)


@router.post("/{task_id}/complete", response_model=ActionResult)
async def complete_task(
    payload: Optional[CompletePayload] = None,
    task_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    manual = payload.manual_minutes if payload else None
    return await task_engine.complete_task(db, task_id, current_user, manual)


# ---------------------- Sessions ----------------------


@router.get("/{task_id}/sessions", response_model=list[TimeSessionOut])
async def task_sessions(task_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return [session_out(s) for s in await task_engine.get_task_sessions(db, task_id, current_user)]


@router.post("/{task_id}/sessions/manual", response_model=TimeSessionOut, status_code=status.HTTP_201_CREATED)
async def add_manual_session(
    payload: ManualSessionIn,
    task_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    return session_out(await task_engine.add_manual_time(db, task_id, current_user, payload.minutes))


@router.post("/{task_id}/recompute", response_model=RecomputeOut)
async def recompute_task(task_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await task_engine.recompute_task(db, task_id, current_user)
