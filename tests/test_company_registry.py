import pytest
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.schemas.company_schema import CompanyContact, CompanyIn, CompanyUpdate
from app.services.company_registry import (
    create_company,
    deactivate_company,
    get_company,
    get_company_by_id,
    list_companies,
    update_company,
)


def test_rate_must_be_positive_and_capped():
    with pytest.raises(PydanticValidationError):
        CompanyIn(name="Zero", cost_per_hour=0)
    with pytest.raises(PydanticValidationError):
        CompanyIn(name="Pricey", cost_per_hour=1000.01)
    assert CompanyIn(name="Cap", cost_per_hour=1000).cost_per_hour == 1000


def test_currency_defaults_and_uppercases():
    assert CompanyIn(name="A", cost_per_hour=1).currency == "EUR"
    assert CompanyIn(name="B", cost_per_hour=1, currency="usd").currency == "USD"


async def test_create_requires_admin(db, alice):
    with pytest.raises(PermissionDeniedError):
        await create_company(db, CompanyIn(name="Nope", cost_per_hour=10), alice)


async def test_duplicate_active_name_rejected(db, admin, company):
    with pytest.raises(ConflictError):
        await create_company(db, CompanyIn(name="Acme", cost_per_hour=10), admin)


async def test_name_can_be_reused_after_deactivation(db, admin, company):
    await deactivate_company(db, company.id, admin)
    again = await create_company(db, CompanyIn(name="Acme", cost_per_hour=10), admin)
    assert again.id != company.id


async def test_list_and_search(db, admin, company):
    await create_company(db, CompanyIn(name="Globex", description="gadgets", cost_per_hour=50), admin)
    names = [c.name for c in await list_companies(db)]
    assert names == ["Acme", "Globex"]
    found = await list_companies(db, search="GADG")
    assert [c.name for c in found] == ["Globex"]


async def test_update_merges_contact_fields(db, admin):
    created = await create_company(
        db,
        CompanyIn(name="Initech", cost_per_hour=30, contact=CompanyContact(email="ops@initech.test", phone="123")),
        admin,
    )
    updated = await update_company(
        db, created.id, CompanyUpdate(cost_per_hour=45, contact=CompanyContact(phone="555")), admin,
    )
    assert updated.cost_per_hour == 45.0
    assert updated.contact.phone == "555"


async def test_update_rejects_taken_name(db, admin, company):
    other = await create_company(db, CompanyIn(name="Globex", cost_per_hour=50), admin)
    with pytest.raises(ConflictError):
        await update_company(db, other.id, CompanyUpdate(name="Acme"), admin)


async def test_deactivated_company_is_hidden(db, admin, company):
    await deactivate_company(db, company.id, admin)
    assert await get_company_by_id(db, company.id) is None
    with pytest.raises(NotFoundError):
        await get_company(db, company.id)
    with pytest.raises(NotFoundError):
        await deactivate_company(db, company.id, admin)
    assert await list_companies(db) == []
    assert len(await list_companies(db, active_only=False)) == 1


async def test_malformed_id_is_not_found(db):
    assert await get_company_by_id(db, "not-an-id") is None
    with pytest.raises(NotFoundError):
        await get_company(db, "not-an-id")
