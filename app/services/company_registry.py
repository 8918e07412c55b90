"""Company registry: identity, hourly rate and currency of client companies."""
from __future__ import annotations

import logging
import re
from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import ConflictError, NotFoundError
from app.core.rbac import require_admin
from app.schemas.company_schema import CompanyIn, CompanyOut, CompanyUpdate
from app.utils import clock
from app.utils.ids import to_object_id


logger = logging.getLogger(__name__)


def company_out(doc: dict) -> CompanyOut:
    return CompanyOut(
        id=str(doc["_id"]),
        name=doc.get("name", ""),
        description=doc.get("description", ""),
        cost_per_hour=float(doc.get("cost_per_hour", 0.0)),
        currency=doc.get("currency", ""),
        contact=doc.get("contact") or {},
        active=bool(doc.get("active", True)),
        created_at=doc.get("created_at"),
    )


async def get_company_by_id(db: AsyncIOMotorDatabase, company_id) -> Optional[dict]:
    """Return the active company document, or None when missing or deactivated."""
    try:
        oid = to_object_id(company_id, "Company")
    except NotFoundError:
        return None
    return await db["companies"].find_one({"_id": oid, "active": True})


async def get_company_by_name(db: AsyncIOMotorDatabase, name: str) -> Optional[dict]:
    return await db["companies"].find_one({"name": name, "active": True})


async def create_company(db: AsyncIOMotorDatabase, payload: CompanyIn, actor: dict) -> CompanyOut:
    require_admin(actor)
    name = payload.name.strip()
    if await get_company_by_name(db, name):
        raise ConflictError("A company with this name already exists")
    now = clock.utcnow()
    doc = {
        "name": name,
        "description": payload.description,
        "cost_per_hour": float(payload.cost_per_hour),
        "currency": payload.currency,
        "contact": payload.contact.model_dump(),
        "created_by": actor["id"],
        "created_at": now,
        "updated_at": now,
        "active": True,
    }
    res = await db["companies"].insert_one(doc)
    doc["_id"] = res.inserted_id
    logger.info("Company %s created by %s at %.2f %s/h", res.inserted_id, actor["id"], doc["cost_per_hour"], doc["currency"])
    return company_out(doc)


async def list_companies(db: AsyncIOMotorDatabase, active_only: bool = True, search: Optional[str] = None) -> list[CompanyOut]:
    q: dict = {}
    if active_only:
        q["active"] = True
    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        q["$or"] = [{"name": pattern}, {"description": pattern}]
    out: list[CompanyOut] = []
    async for c in db["companies"].find(q).sort("name", 1):
        out.append(company_out(c))
    return out


async def get_company(db: AsyncIOMotorDatabase, company_id: str) -> CompanyOut:
    doc = await get_company_by_id(db, company_id)
    if not doc:
        raise NotFoundError("Company not found")
    return company_out(doc)


async def update_company(db: AsyncIOMotorDatabase, company_id: str, payload: CompanyUpdate, actor: dict) -> CompanyOut:
    """Rate changes only affect recomputations that happen after this call."""
    require_admin(actor)
    oid = to_object_id(company_id, "Company")
    update: dict = {}
    for k, v in payload.model_dump(exclude_unset=True).items():
        if v is None:
            continue
        if k == "contact":
            for ck, cv in v.items():
                update[f"contact.{ck}"] = cv
        elif k == "cost_per_hour":
            update[k] = float(v)
        elif k == "currency":
            update[k] = str(v).upper()
        elif k == "name":
            update[k] = str(v).strip()
        else:
            update[k] = v
    if "name" in update:
        exists = await db["companies"].find_one({"name": update["name"], "active": True, "_id": {"$ne": oid}})
        if exists:
            raise ConflictError("A company with this name already exists")
    update["updated_at"] = clock.utcnow()
    res = await db["companies"].update_one({"_id": oid, "active": True}, {"$set": update})
    if res.matched_count == 0:
        raise NotFoundError("Company not found")
    if "cost_per_hour" in update:
        logger.info("Company %s rate changed to %.2f by %s", oid, update["cost_per_hour"], actor["id"])
    return company_out(await db["companies"].find_one({"_id": oid}))


async def deactivate_company(db: AsyncIOMotorDatabase, company_id: str, actor: dict) -> None:
    require_admin(actor)
    oid = to_object_id(company_id, "Company")
    res = await db["companies"].update_one(
        {"_id": oid, "active": True},
        {"$set": {"active": False, "updated_at": clock.utcnow()}},
    )
    if res.matched_count == 0:
        raise NotFoundError("Company not found")
    logger.info("Company %s deactivated by %s", oid, actor["id"])


async def company_names(db: AsyncIOMotorDatabase, company_ids: set[ObjectId]) -> dict[str, dict]:
    """Active companies keyed by string id, for report joins."""
    out: dict[str, dict] = {}
    if not company_ids:
        return out
    async for c in db["companies"].find({"_id": {"$in": list(company_ids)}, "active": True}):
        out[str(c["_id"])] = c
    return out


async def get_user_companies(db: AsyncIOMotorDatabase, user_id: str) -> list[CompanyOut]:
    """Active companies owning at least one active task assigned to the user."""
    ids = {
        t["company_id"]
        async for t in db["tasks"].find({"assigned_users": str(user_id), "active": True}, {"company_id": 1})
        if isinstance(t.get("company_id"), ObjectId)
    }
    if not ids:
        return []
    return [company_out(c) async for c in db["companies"].find({"_id": {"$in": list(ids)}, "active": True}).sort("name", 1)]
