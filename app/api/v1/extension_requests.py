from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.security import get_current_user
from app.db.mongo import get_mongo_db
from app.schemas.common import ExtensionStatus
from app.schemas.extension_request_schema import ExtensionRequestIn, ExtensionRequestOut, ExtensionReviewIn
from app.services import extension_requests


router = APIRouter(prefix="/extension-requests", tags=["extension-requests"])


@router.post("", response_model=ExtensionRequestOut, status_code=status.HTTP_201_CREATED)
async def request_extension(payload: ExtensionRequestIn, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await extension_requests.create_request(db, payload, current_user)


@router.get("/me", response_model=list[ExtensionRequestOut])
async def my_extension_requests(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await extension_requests.list_user_requests(db, current_user["id"])


@router.get("", response_model=list[ExtensionRequestOut])
async def list_extension_requests(
    status_filter: Optional[ExtensionStatus] = Query(None, alias="status"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    return await extension_requests.list_requests(db, current_user, status_filter)


@router.post("/{request_id}/review", response_model=ExtensionRequestOut)
async def review_extension_request(
    payload: ExtensionReviewIn,
    request_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    return await extension_requests.review_request(db, request_id, current_user, payload.action, payload.admin_response)
