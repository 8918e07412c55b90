from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.security import get_current_user
from app.db.mongo import get_mongo_db
from app.schemas.company_schema import CompanyIn, CompanyOut, CompanyUpdate, CostQuoteOut
from app.schemas.task_schema import ActionResult
from app.services import company_registry
from app.services.cost_calculator import cost_for_hours
from app.utils.ids import to_object_id


router = APIRouter(prefix="/companies", tags=["companies"])


@router.post("", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
async def create_company(payload: CompanyIn, db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await company_registry.create_company(db, payload, current_user)


@router.get("", response_model=list[CompanyOut])
async def list_companies(
    q: Optional[str] = Query(None, description="Case-insensitive search on name and description"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    return await company_registry.list_companies(db, search=q)


@router.get("/me", response_model=list[CompanyOut])
async def my_companies(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    """Companies the caller has tasks with."""
    return await company_registry.get_user_companies(db, current_user["id"])


@router.get("/{company_id}", response_model=CompanyOut)
async def get_company(company_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    return await company_registry.get_company(db, company_id)


@router.patch("/{company_id}", response_model=CompanyOut)
async def update_company(
    payload: CompanyUpdate,
    company_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    return await company_registry.update_company(db, company_id, payload, current_user)


@router.delete("/{company_id}", response_model=ActionResult)
async def deactivate_company(company_id: str = Path(...), db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user=Depends(get_current_user)):
    await company_registry.deactivate_company(db, company_id, current_user)
    return ActionResult(message="Company deactivated")


@router.get("/{company_id}/cost", response_model=CostQuoteOut)
async def quote_cost(
    company_id: str = Path(...),
    hours: float = Query(..., ge=0),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    return await cost_for_hours(db, to_object_id(company_id, "Company"), hours)
