from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.mongo import get_mongo_db


ACTIVE_SESSION_INDEX = "uniq_active_session_task_user"


async def ensure_active_session_index(db: AsyncIOMotorDatabase | None = None) -> None:
    """Create the index allowing one active session per (task, user).

    The insert in ``start_session`` relies on it as its only check, so any
    failure here propagates. A same-named index with other options makes
    ``create_index`` raise as well.
    """
    if db is None:
        db = get_mongo_db()
    time_sessions = db["time_sessions"]
    await time_sessions.create_index(
        [("task_id", 1), ("user_id", 1)],
        unique=True,
        partialFilterExpression={"status": "active"},
        name=ACTIVE_SESSION_INDEX,
    )


async def ensure_indexes(db: AsyncIOMotorDatabase | None = None) -> None:
    """Create required MongoDB indexes (idempotent)."""
    if db is None:
        db = get_mongo_db()

    companies = db["companies"]
    await companies.create_index([("name", 1), ("active", 1)], name="idx_company_name_active")
    await companies.create_index([("active", 1)], name="idx_company_active")

    tasks = db["tasks"]
    await tasks.create_index([("company_id", 1), ("active", 1), ("created_at", -1)], name="idx_task_company_active_created")
    await tasks.create_index([("assigned_users", 1), ("active", 1), ("status", 1)], name="idx_task_user_active_status")
    await tasks.create_index([("due_date", 1)], name="idx_task_due_date")

    await ensure_active_session_index(db)
    time_sessions = db["time_sessions"]
    await time_sessions.create_index([("task_id", 1)], name="idx_session_task")
    await time_sessions.create_index([("user_id", 1), ("start_time", -1)], name="idx_session_user_start")
    await time_sessions.create_index([("user_id", 1), ("end_time", -1)], name="idx_session_user_end")

    extension_requests = db["extension_requests"]
    await extension_requests.create_index([("task_id", 1), ("user_id", 1), ("status", 1)], name="idx_ext_task_user_status")
    await extension_requests.create_index([("status", 1), ("created_at", -1)], name="idx_ext_status_created")

    users = db["users"]
    await users.create_index([("email", 1)], unique=True, name="uniq_email")
