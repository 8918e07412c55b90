from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.core.config import settings


class CompanyContact(BaseModel):
    email: str = ""
    phone: str = ""
    address: str = ""


class CompanyIn(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    cost_per_hour: float = Field(gt=0)
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    contact: CompanyContact = Field(default_factory=CompanyContact)

    @field_validator("cost_per_hour")
    @classmethod
    def _cap_rate(cls, v: float) -> float:
        if v > settings.MAX_COST_PER_HOUR:
            raise ValueError(f"cost_per_hour must be <= {settings.MAX_COST_PER_HOUR:g}")
        return v

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.upper()


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    cost_per_hour: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    contact: Optional[CompanyContact] = None

    @field_validator("cost_per_hour")
    @classmethod
    def _cap_rate(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v > settings.MAX_COST_PER_HOUR:
            raise ValueError(f"cost_per_hour must be <= {settings.MAX_COST_PER_HOUR:g}")
        return v


class CompanyOut(BaseModel):
    id: str
    name: str
    description: str = ""
    cost_per_hour: float
    currency: str
    contact: CompanyContact = Field(default_factory=CompanyContact)
    active: bool = True
    created_at: Optional[datetime] = None


class CostQuoteOut(BaseModel):
    company_id: str
    cost_per_hour: float
    hours: float
    total_cost: float
    currency: str
