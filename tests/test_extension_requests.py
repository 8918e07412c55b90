from datetime import timedelta

import pytest
from bson import ObjectId

from app.core.errors import ConflictError, InvalidStateError, PermissionDeniedError, ValidationError
from app.schemas.extension_request_schema import ExtensionRequestIn
from app.services import extension_requests
from app.services.task_engine import get_task


@pytest.fixture
async def due_task(task_factory, alice, fake_clock):
    return await task_factory([alice], title="Due soon", due_date=fake_clock.now + timedelta(days=1))


def _ask(task, when, reason="Blocked on review"):
    return ExtensionRequestIn(task_id=task.id, requested_due_date=when, reason=reason)


async def test_request_and_approve(db, due_task, admin, alice, fake_clock):
    new_due = fake_clock.now + timedelta(days=5)
    created = await extension_requests.create_request(db, _ask(due_task, new_due), alice)
    assert created.status == "pending"
    assert created.task_title == "Due soon"
    assert created.current_due_date == due_task.due_date

    reviewed = await extension_requests.review_request(db, created.id, admin, "approve", "ok")
    assert reviewed.status == "approved"
    assert reviewed.admin_response == "ok"
    task = await get_task(db, due_task.id, admin)
    assert task.due_date == new_due
    # Approval never touches the lifecycle
    assert task.status == "not_started"
    assert len(task.status_history) == 1


async def test_reject_leaves_due_date(db, due_task, admin, alice, fake_clock):
    created = await extension_requests.create_request(db, _ask(due_task, fake_clock.now + timedelta(days=5)), alice)
    await extension_requests.review_request(db, created.id, admin, "reject")
    task = await get_task(db, due_task.id, admin)
    assert task.due_date == due_task.due_date


async def test_review_only_once(db, due_task, admin, alice, fake_clock):
    created = await extension_requests.create_request(db, _ask(due_task, fake_clock.now + timedelta(days=5)), alice)
    await extension_requests.review_request(db, created.id, admin, "reject")
    with pytest.raises(InvalidStateError):
        await extension_requests.review_request(db, created.id, admin, "approve")


async def test_requested_date_must_move_forward(db, due_task, alice, fake_clock):
    with pytest.raises(ValidationError):
        await extension_requests.create_request(db, _ask(due_task, due_task.due_date), alice)


async def test_blank_reason_rejected(db, due_task, alice, fake_clock):
    with pytest.raises(ValidationError):
        await extension_requests.create_request(db, _ask(due_task, fake_clock.now + timedelta(days=5), reason="  "), alice)


async def test_only_assignees_may_ask(db, due_task, bob, fake_clock):
    with pytest.raises(PermissionDeniedError):
        await extension_requests.create_request(db, _ask(due_task, fake_clock.now + timedelta(days=5)), bob)


async def test_one_pending_request_per_task(db, due_task, alice, fake_clock):
    await extension_requests.create_request(db, _ask(due_task, fake_clock.now + timedelta(days=5)), alice)
    with pytest.raises(ConflictError):
        await extension_requests.create_request(db, _ask(due_task, fake_clock.now + timedelta(days=6)), alice)


async def test_listing(db, due_task, admin, alice, fake_clock):
    created = await extension_requests.create_request(db, _ask(due_task, fake_clock.now + timedelta(days=5)), alice)
    assert [r.id for r in await extension_requests.list_user_requests(db, alice["id"])] == [created.id]
    assert [r.id for r in await extension_requests.list_requests(db, admin, "pending")] == [created.id]
    assert await extension_requests.list_requests(db, admin, "approved") == []
    with pytest.raises(PermissionDeniedError):
        await extension_requests.list_requests(db, alice)


async def test_review_requires_admin(db, due_task, alice, fake_clock):
    created = await extension_requests.create_request(db, _ask(due_task, fake_clock.now + timedelta(days=5)), alice)
    with pytest.raises(PermissionDeniedError):
        await extension_requests.review_request(db, created.id, alice, "approve")
    doc = await db["extension_requests"].find_one({"_id": ObjectId(created.id)})
    assert doc["status"] == "pending"
