"""
Cost calculation for tracked time.

Time is priced with the owning company's hourly rate. Amounts stay
unrounded while aggregating and are rounded half-up to cents only when
persisted or returned.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import DependencyMissingError
from app.services.company_registry import get_company_by_id


Number = Union[int, float, Decimal]

_CENTS = Decimal("0.01")
_MINUTES_PER_HOUR = Decimal(60)


def _dec(value: Number) -> Decimal:
    # str() keeps 19.99 as 19.99 instead of its binary expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


def calculate_cost(minutes: Number, rate_per_hour: Number) -> Decimal:
    """Cost of ``minutes`` of work at ``rate_per_hour``, unrounded."""
    return (_dec(minutes) / _MINUTES_PER_HOUR) * _dec(rate_per_hour)


def round_money(value: Number) -> float:
    return float(_dec(value).quantize(_CENTS, rounding=ROUND_HALF_UP))


def round_minutes(seconds: Number) -> int:
    """Whole minutes, half-up, from an elapsed number of seconds."""
    return int((_dec(seconds) / _MINUTES_PER_HOUR).quantize(Decimal(1), rounding=ROUND_HALF_UP))


async def resolve_rate(db: AsyncIOMotorDatabase, company_id) -> tuple[Decimal, str]:
    """Return (cost_per_hour, currency) for an active company.

    Raises:
        DependencyMissingError: If the company is missing, inactive or has no rate
    """
    company = await get_company_by_id(db, company_id)
    if not company or company.get("cost_per_hour") is None:
        raise DependencyMissingError(f"Hourly rate unavailable for company {company_id}")
    return _dec(company["cost_per_hour"]), company.get("currency", "")


async def price_minutes(db: AsyncIOMotorDatabase, company_id, minutes: int) -> float:
    rate, _ = await resolve_rate(db, company_id)
    return round_money(calculate_cost(minutes, rate))


async def cost_for_hours(db: AsyncIOMotorDatabase, company_id, hours: float) -> dict:
    """Quote the cost of a number of hours for a company."""
    rate, currency = await resolve_rate(db, company_id)
    return {
        "company_id": str(company_id),
        "cost_per_hour": float(rate),
        "hours": float(hours),
        "total_cost": round_money(_dec(hours) * rate),
        "currency": currency,
    }
