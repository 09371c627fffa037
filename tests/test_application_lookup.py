import pytest

from conftest import FakeAsyncSession, FakeResult, entity_handler, make_sanctioned, raising_handler
from app.models.application import ApplicationRecord
from app.models.sanctioned_application import SanctionedApplication
from app.services.application_lookup import (
    details_from_prefix,
    placeholder_details,
    resolve_application_details,
)


@pytest.mark.parametrize(
    ("app_no", "customer", "code"),
    [
        ("SNP12345", "Rajesh Kumar", "MUM001"),
        ("bl-778", "Amit Singh", "BLR001"),
        (" pun 99 ", "Neha Agarwal", "PUN001"),
    ],
)
def test_prefix_table(app_no, customer, code):
    details = details_from_prefix(app_no)
    assert details.customer_name == customer
    assert details.branch_code == code
    assert details.source == "prefix"


def test_unknown_prefix_has_no_details():
    assert details_from_prefix("XYZ1") is None
    assert details_from_prefix("12345") is None


def test_placeholder():
    details = placeholder_details("ZZ9")
    assert details.customer_name == "Customer ZZ9"
    assert details.branch == "Main Branch"
    assert details.branch_code == "MAIN001"


@pytest.mark.asyncio
async def test_sanctioned_application_wins(tenant_ctx):
    db = FakeAsyncSession().on_execute(
        entity_handler(SanctionedApplication, FakeResult(scalar=make_sanctioned(app_id="SNP1")))
    )
    details = await resolve_application_details(db, tenant_ctx, "SNP1")
    assert details.source == "sanctioned"
    assert details.customer_name == "Kavita Rao"
    assert details.branch_code == "AND001"


@pytest.mark.asyncio
async def test_application_record_used_when_not_sanctioned(tenant_ctx):
    record = ApplicationRecord(app_id="ZZ1", org_id="default", customer_name="Imran", branch="Goa")
    db = FakeAsyncSession().on_execute(entity_handler(ApplicationRecord, FakeResult(scalar=record)))
    details = await resolve_application_details(db, tenant_ctx, "ZZ1")
    assert details.source == "application"
    assert details.branch == "Goa"
    assert details.branch_code == "Goa"


@pytest.mark.asyncio
async def test_lookup_failures_fall_through_to_prefix(tenant_ctx):
    db = FakeAsyncSession().on_execute(raising_handler())
    details = await resolve_application_details(db, tenant_ctx, "CHN42")
    assert details.source == "prefix"
    assert details.branch == "Chennai Port Branch"


@pytest.mark.asyncio
async def test_placeholder_when_nothing_matches(tenant_ctx):
    details = await resolve_application_details(FakeAsyncSession(), tenant_ctx, "QQ7")
    assert details.source == "placeholder"


@pytest.mark.asyncio
async def test_failed_lookup_rolls_back_before_next_step(tenant_ctx):
    db = FakeAsyncSession(abort_on_error=True).on_execute(
        raising_handler(entity=SanctionedApplication)
    )
    record = ApplicationRecord(app_id="ZZ2", org_id="default", customer_name="Farah", branch="Pune")
    db.on_execute(entity_handler(ApplicationRecord, FakeResult(scalar=record)))

    details = await resolve_application_details(db, tenant_ctx, "ZZ2")

    assert details.source == "application"
    assert details.customer_name == "Farah"
    assert db.rollbacks == 1
    assert db.aborted is False
