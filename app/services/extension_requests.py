"""Due-date extension requests. Approval moves the due date, never the task status."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import ConflictError, InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from app.core.rbac import is_assigned, require_admin
from app.schemas.common import ExtensionStatus
from app.schemas.extension_request_schema import ExtensionRequestIn, ExtensionRequestOut
from app.utils import clock
from app.utils.ids import to_object_id


logger = logging.getLogger(__name__)


def _out(doc: dict, task: Optional[dict] = None) -> ExtensionRequestOut:
    return ExtensionRequestOut(
        id=str(doc["_id"]),
        task_id=str(doc.get("task_id")),
        task_title=(task or {}).get("title"),
        user_id=str(doc.get("user_id")),
        current_due_date=doc.get("current_due_date"),
        requested_due_date=doc["requested_due_date"],
        reason=doc.get("reason", ""),
        status=doc.get("status", ExtensionStatus.pending.value),
        admin_response=doc.get("admin_response"),
        created_at=doc["created_at"],
        reviewed_at=doc.get("reviewed_at"),
    )


async def _with_titles(db: AsyncIOMotorDatabase, q: dict) -> list[ExtensionRequestOut]:
    docs = [d async for d in db["extension_requests"].find(q).sort("created_at", -1)]
    task_ids = list({d["task_id"] for d in docs})
    tasks = {t["_id"]: t async for t in db["tasks"].find({"_id": {"$in": task_ids}}, {"title": 1})}
    return [_out(d, tasks.get(d["task_id"])) for d in docs]


async def create_request(db: AsyncIOMotorDatabase, payload: ExtensionRequestIn, actor: dict) -> ExtensionRequestOut:
    reason = (payload.reason or "").strip()
    if not payload.task_id or not reason:
        raise ValidationError("task_id, requested_due_date and reason are required")
    task_oid = to_object_id(payload.task_id, "Task")
    task = await db["tasks"].find_one({"_id": task_oid, "active": True})
    if not task:
        raise NotFoundError("Task not found")
    if not is_assigned(task, actor["id"]):
        raise PermissionDeniedError("You are not assigned to this task")
    requested: datetime = clock.as_datetime(payload.requested_due_date)
    current = task.get("due_date")
    if current is not None and requested <= current:
        raise ValidationError("The requested date must be after the current due date")
    pending = await db["extension_requests"].find_one({
        "task_id": task_oid,
        "user_id": actor["id"],
        "status": ExtensionStatus.pending.value,
    })
    if pending:
        raise ConflictError("There is already a pending extension request for this task")
    doc = {
        "task_id": task_oid,
        "user_id": actor["id"],
        "current_due_date": current,
        "requested_due_date": requested,
        "reason": reason,
        "status": ExtensionStatus.pending.value,
        "admin_response": None,
        "created_at": clock.utcnow(),
        "reviewed_at": None,
        "reviewed_by": None,
    }
    await db["extension_requests"].insert_one(doc)
    logger.info("Extension requested on task %s by %s", task_oid, actor["id"])
    return _out(doc, task)


async def list_user_requests(db: AsyncIOMotorDatabase, user_id: str) -> list[ExtensionRequestOut]:
    return await _with_titles(db, {"user_id": str(user_id)})


async def list_requests(db: AsyncIOMotorDatabase, actor: dict, status: Optional[ExtensionStatus] = None) -> list[ExtensionRequestOut]:
    require_admin(actor)
    q: dict = {}
    if status:
        q["status"] = ExtensionStatus(status).value
    return await _with_titles(db, q)


async def review_request(
    db: AsyncIOMotorDatabase,
    request_id: str,
    actor: dict,
    action: str,
    admin_response: Optional[str] = None,
) -> ExtensionRequestOut:
    require_admin(actor)
    if action not in {"approve", "reject"}:
        raise ValidationError("action must be 'approve' or 'reject'")
    oid = to_object_id(request_id, "Extension request")
    new_status = ExtensionStatus.approved if action == "approve" else ExtensionStatus.rejected
    now = clock.utcnow()
    res = await db["extension_requests"].update_one(
        {"_id": oid, "status": ExtensionStatus.pending.value},
        {"$set": {
            "status": new_status.value,
            "admin_response": admin_response,
            "reviewed_at": now,
            "reviewed_by": actor["id"],
        }},
    )
    doc = await db["extension_requests"].find_one({"_id": oid})
    if not doc:
        raise NotFoundError("Extension request not found")
    if res.modified_count == 0:
        raise InvalidStateError("Extension request was already reviewed")
    if new_status is ExtensionStatus.approved:
        await db["tasks"].update_one(
            {"_id": doc["task_id"]},
            {"$set": {"due_date": doc["requested_due_date"], "updated_at": now}},
        )
    logger.info("Extension request %s %s by %s", oid, new_status.value, actor["id"])
    task = await db["tasks"].find_one({"_id": doc["task_id"]}, {"title": 1})
    return _out(doc, task)
