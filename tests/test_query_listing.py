from datetime import date, datetime, timezone

import pytest
from sqlalchemy.dialects import postgresql

from conftest import (
    FakeAsyncSession,
    FakeResult,
    db_down_error,
    entity_handler,
    make_group,
    make_sanctioned,
    raising_handler,
)
from app.models.query_group import QueryGroup
from app.models.sanctioned_application import SanctionedApplication
from app.schemas.queries import (
    QueryCreate,
    QueryFilters,
    QueryListResponse,
    QueryStatsResponse,
    QueryUpdate,
)
from app.services.queries import (
    build_list_statement,
    compute_stats,
    create_queries,
    list_queries,
    matches_filters,
)
from app.services.query_cache import QueryCache
from app.services.query_numbering import QueryNumberSequence
from app.services.query_payloads import group_to_payload, group_to_read
from app.services.query_resolution import update_query


def _payload(**overrides) -> dict:
    return group_to_payload(make_group(**overrides))


def test_team_filter_matches_routing_flags():
    sales = _payload()
    credit = _payload(team="credit", marked_for_team="credit", send_to=["Credit"],
                      send_to_sales=False, send_to_credit=True)
    both = _payload(team="operations", marked_for_team="operations", send_to=["Both"],
                    send_to_sales=False)
    assert matches_filters(sales, QueryFilters(team="sales"))
    assert not matches_filters(credit, QueryFilters(team="sales"))
    assert matches_filters(credit, QueryFilters(team="credit"))
    assert matches_filters(both, QueryFilters(team="operations"))
    assert not matches_filters(both, QueryFilters(team="credit"))


def test_status_and_resolved_filters():
    pending = _payload()
    approved = _payload(statuses=("approved",))
    assert matches_filters(approved, QueryFilters(status="approved"))
    assert not matches_filters(pending, QueryFilters(status="approved"))
    assert matches_filters(approved, QueryFilters(resolved=True))
    assert not matches_filters(pending, QueryFilters(resolved=True))
    assert matches_filters(pending, QueryFilters(resolved=False))


def test_branch_filter_is_case_insensitive_and_passes_unassigned():
    mumbai = _payload()
    unassigned = _payload(branch_code=None, branch=None)
    assert matches_filters(mumbai, QueryFilters(branches=["mum001"]))
    assert matches_filters(mumbai, QueryFilters(branches=["Mumbai Central Branch"]))
    assert not matches_filters(mumbai, QueryFilters(branches=["DEL001"]))
    assert matches_filters(unassigned, QueryFilters(branches=["DEL001"]))


def test_app_no_filter_is_substring():
    assert matches_filters(_payload(app_no="SNP12345"), QueryFilters(app_no="p123"))
    assert not matches_filters(_payload(app_no="SNP12345"), QueryFilters(app_no="BHR"))


def test_list_statement_scopes_to_org():
    stmt = build_list_statement(
        type("Ctx", (), {"org_id": "acme"})(),
        QueryFilters(team="sales", branches=["MUM001"], app_no="50%", limit=5),
    )
    sql = str(stmt.compile(dialect=postgresql.dialect()))
    assert "query_groups.org_id" in sql
    assert "query_groups.marked_for_team" in sql
    assert "@>" in sql
    assert "LIMIT" in sql


def test_stats_count_sub_queries():
    today = date(2026, 1, 5)
    groups = [
        group_to_read(make_group(statuses=("pending", "approved", "pending"))),
        group_to_read(make_group(statuses=("otc",), priority="high")),
        group_to_read(
            make_group(
                statuses=("pending-approval",),
                created_at=datetime(2025, 12, 1, tzinfo=timezone.utc),
            )
        ),
    ]
    stats = compute_stats(groups, today=today)
    assert stats.total == 5
    assert stats.pending == 2
    assert stats.resolved == 2
    assert stats.urgent == 1
    assert stats.todays_queries == 2


@pytest.mark.asyncio
async def test_listing_enriches_with_sanctioned_details(tenant_ctx):
    group = make_group(app_no="SNP1")
    db = (
        FakeAsyncSession()
        .on_execute(entity_handler(QueryGroup, FakeResult(items=[group])))
        .on_execute(
            entity_handler(SanctionedApplication, FakeResult(items=[make_sanctioned(app_id="SNP1")]))
        )
    )
    cache = QueryCache()

    response = await list_queries(db, tenant_ctx, QueryFilters(), cache=cache)

    assert isinstance(response, QueryListResponse)
    assert response.source == "database"
    item = response.items[0]
    assert item.is_sanctioned is True
    assert item.customer_name == "Kavita Rao"
    assert item.branch_code == "AND001"
    assert item.sanctioned_amount == 2500000.0
    assert item.sales_exec == "Rohan Mehta"
    cached = cache.find_group("default", [group.id])
    assert "isSanctioned" not in cached
    assert cached["customerName"] == "Rajesh Kumar"


@pytest.mark.asyncio
async def test_enrichment_failure_rolls_back_and_keeps_items(tenant_ctx):
    group = make_group(app_no="SNP1")
    db = (
        FakeAsyncSession(abort_on_error=True)
        .on_execute(entity_handler(QueryGroup, FakeResult(items=[group])))
        .on_execute(raising_handler(entity=SanctionedApplication))
    )

    response = await list_queries(db, tenant_ctx, QueryFilters(), cache=QueryCache())

    assert response.source == "database"
    assert response.items[0].is_sanctioned is False
    assert db.rollbacks == 1


@pytest.mark.asyncio
async def test_listing_never_drops_cached_groups(tenant_ctx):
    cache = QueryCache()
    cache.upsert("default", _payload(group_id="cached-only"))
    db = FakeAsyncSession()
    await list_queries(db, tenant_ctx, QueryFilters(team="sales"), cache=cache)
    assert cache.find_group("default", ["cached-only"]) is not None
    await list_queries(db, tenant_ctx, QueryFilters(), cache=cache)
    assert cache.find_group("default", ["cached-only"]) is not None


@pytest.mark.asyncio
async def test_unpersisted_query_stays_resolvable_after_listing(
    tenant_ctx, operations_caller, sales_caller
):
    cache = QueryCache()
    failing = FakeAsyncSession()
    failing.commit_error = db_down_error()
    created = await create_queries(
        failing,
        tenant_ctx,
        operations_caller,
        QueryCreate(app_no="KOL7", queries=["Need salary slips"], send_to="Credit"),
        cache=cache,
        numbers=QueryNumberSequence(),
    )
    assert created.persisted is False

    listing = await list_queries(FakeAsyncSession(), tenant_ctx, QueryFilters(), cache=cache)
    assert listing.count == 0
    assert len(cache) == 1

    sub_query_id = created.items[0].queries[0].id
    response = await update_query(
        FakeAsyncSession(),
        tenant_ctx,
        sales_caller,
        QueryUpdate(query_id=sub_query_id, status="approved"),
        cache=cache,
    )
    assert response.source == "cache"
    assert response.sub_query.status == "approved"


@pytest.mark.asyncio
async def test_outage_serves_filtered_cache_newest_first(tenant_ctx):
    cache = QueryCache()
    cache.upsert(
        "default",
        _payload(group_id="old", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc)),
    )
    cache.upsert(
        "default",
        _payload(group_id="new", created_at=datetime(2026, 1, 9, tzinfo=timezone.utc)),
    )
    cache.upsert("default", _payload(group_id="credit", team="credit", marked_for_team="credit",
                                     send_to=["Credit"], send_to_sales=False))
    db = FakeAsyncSession().on_execute(raising_handler())

    response = await list_queries(
        db, tenant_ctx, QueryFilters(team="sales", limit=5), cache=cache
    )

    assert response.source == "cache"
    assert [item.id for item in response.items] == ["new", "old"]


@pytest.mark.asyncio
async def test_stats_response(tenant_ctx):
    db = FakeAsyncSession().on_execute(
        entity_handler(QueryGroup, FakeResult(items=[make_group(statuses=("approved", "pending"))]))
    )
    response = await list_queries(db, tenant_ctx, QueryFilters(), cache=QueryCache(), stats=True)
    assert isinstance(response, QueryStatsResponse)
    assert response.stats.total == 2
    assert response.stats.resolved == 1


def test_route_lists_queries(client, fake_db):
    fake_db.on_execute(entity_handler(QueryGroup, FakeResult(items=[make_group(app_no="BHR1")])))
    resp = client.get("/api/v1/queries?status=all&team=Sales&branches=MUM001, DEL001")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["count"] == 1
    assert data["items"][0]["appNo"] == "BHR1"
    assert data["filters"]["team"] == "sales"
    assert data["filters"]["branches"] == ["MUM001", "DEL001"]
    assert data["filters"]["status"] is None


def test_route_stats(client, fake_db):
    fake_db.on_execute(entity_handler(QueryGroup, FakeResult(items=[make_group()])))
    resp = client.get("/api/v1/queries?stats=true")
    assert resp.status_code == 200
    assert resp.json()["data"]["stats"]["pending"] == 1


def test_route_rejects_unknown_status(client):
    resp = client.get("/api/v1/queries?status=maybe")
    assert resp.status_code == 400
    assert resp.json()["details"] == {"status": "maybe"}
