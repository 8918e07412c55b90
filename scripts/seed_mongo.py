from __future__ import annotations

import asyncio
from datetime import timedelta

from bson import ObjectId

from app.db.mongo import get_mongo_db, close_mongo_client
from app.db.mongo_indexes import ensure_indexes
from app.schemas.common import TaskStatus
from app.utils import clock


ADMIN_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0a1")
ALICE_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0b1")
BOB_ID = ObjectId("6562a0f0a0a0a0a0a0a0a0b2")


async def seed_companies(db):
    now = clock.utcnow()
    companies = [
        {
            "_id": ObjectId("6562a0f0a0a0a0a0a0a0a0c1"),  # stable ids for idempotence
            "name": "Acme Logistics",
            "description": "Freight and warehousing client",
            "cost_per_hour": 45.0,
            "currency": "EUR",
            "contact": {"email": "billing@acme.local", "phone": "", "address": ""},
            "created_by": str(ADMIN_ID),
            "created_at": now,
            "updated_at": now,
            "active": True,
        },
        {
            "_id": ObjectId("6562a0f0a0a0a0a0a0a0a0c2"),
            "name": "Northwind Retail",
            "description": "E-commerce storefront",
            "cost_per_hour": 30.0,
            "currency": "EUR",
            "contact": {"email": "ap@northwind.local", "phone": "", "address": ""},
            "created_by": str(ADMIN_ID),
            "created_at": now,
            "updated_at": now,
            "active": True,
        },
    ]
    for c in companies:
        await db["companies"].update_one({"_id": c["_id"]}, {"$setOnInsert": c}, upsert=True)
    return companies


async def seed_users(db):
    now = clock.utcnow()
    users = [
        {"_id": ADMIN_ID, "name": "Admin User", "email": "admin@taskledger.local", "role": "admin", "created_at": now},
        {"_id": ALICE_ID, "name": "Alice Smith", "email": "alice@taskledger.local", "role": "user", "created_at": now},
        {"_id": BOB_ID, "name": "Bob Brown", "email": "bob@taskledger.local", "role": "user", "created_at": now},
    ]
    for u in users:
        await db["users"].update_one({"email": u["email"]}, {"$setOnInsert": u}, upsert=True)
    return users


async def seed_tasks(db, companies):
    now = clock.utcnow()
    tasks = [
        {
            "_id": ObjectId("6562a0f0a0a0a0a0a0a0a0d1"),
            "title": "Route optimisation audit",
            "company_id": companies[0]["_id"],
            "assigned_users": [str(ALICE_ID)],
            "priority": "high",
            "due_date": now + timedelta(days=2),
        },
        {
            "_id": ObjectId("6562a0f0a0a0a0a0a0a0a0d2"),
            "title": "Checkout A/B test",
            "company_id": companies[1]["_id"],
            "assigned_users": [str(ALICE_ID), str(BOB_ID)],
            "priority": "medium",
            "due_date": now + timedelta(days=10),
        },
    ]
    for t in tasks:
        t.update({
            "description": "",
            "status": TaskStatus.NOT_STARTED.value,
            "estimated_hours": None,
            "created_by": str(ADMIN_ID),
            "created_at": now,
            "updated_at": now,
            "completed_at": None,
            "status_history": [{
                "status": TaskStatus.NOT_STARTED.value,
                "changed_by": str(ADMIN_ID),
                "changed_at": now,
                "comment": "Task created",
            }],
            "total_time_spent": 0,
            "total_cost": 0.0,
            "active": True,
        })
        await db["tasks"].update_one({"_id": t["_id"]}, {"$setOnInsert": t}, upsert=True)


async def main():
    db = get_mongo_db()
    # Ensure indexes before inserting
    await ensure_indexes(db)

    companies = await seed_companies(db)
    await seed_users(db)
    await seed_tasks(db, companies)

    print("MongoDB seed completed.")
    close_mongo_client()


if __name__ == "__main__":
    asyncio.run(main())
