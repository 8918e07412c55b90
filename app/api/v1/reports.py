from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.security import get_current_user
from app.db.mongo import get_mongo_db
from app.schemas.report_schema import ReportEnvelope, ReportFilters
from app.services.reports import generate_report
from app.utils import clock


router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("", response_model=ReportEnvelope)
async def get_report(
    type_: Literal["general", "company", "user", "time", "cost"] = Query("general", alias="type"),
    company_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user=Depends(get_current_user),
):
    """Admin: one of the five report shapes, filtered with AND semantics."""
    filters = ReportFilters(company_id=company_id, user_id=user_id, start_date=start_date, end_date=end_date)
    report = await generate_report(db, type_, filters, current_user)
    return ReportEnvelope(report=report, generated_at=clock.utcnow(), filters=filters)
