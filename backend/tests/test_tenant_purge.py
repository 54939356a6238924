# tests/test_tenant_purge.py
from __future__ import annotations

import functools
from datetime import date, datetime, timezone
from decimal import Decimal
from graphlib import CycleError

import pytest
from sqlalchemy import func, insert, select

from app.api.v1 import companies as companies_api
from app.core.errors import TenantPurgeError
from app.core.tenant_purge import PURGE_GRAPH, PURGE_ORDER, ROOT_TABLE, compute_purge_order, purge_tenant
from app.db.base import Base
from app.models.audit_log import AuditLog
from app.models.company import Company

from conftest import auth_headers, create_company, create_user

_SAMPLES = {
    str: lambda label: label,
    int: lambda label: 0,
    bool: lambda label: False,
    Decimal: lambda label: Decimal("0"),
    datetime: lambda label: datetime(2024, 1, 1, tzinfo=timezone.utc),
    date: lambda label: date(2024, 1, 1),
    dict: lambda label: {},
}


def _needs_value(column) -> bool:
    if column.primary_key or column.foreign_keys:
        return False
    if column.default is not None or column.server_default is not None:
        return False
    return not column.nullable or column.unique


async def populate_tenant(db, company_id: int, tag: str) -> dict[str, int]:
    """One row in every table, each FK pointing at this tenant's row of the parent."""
    ids = {ROOT_TABLE: company_id}
    for table in Base.metadata.sorted_tables:
        if table.name == ROOT_TABLE:
            continue
        values = {}
        for column in table.columns:
            if column.foreign_keys:
                parent = next(iter(column.foreign_keys)).column.table.name
                values[column.name] = ids[parent]
            elif _needs_value(column):
                values[column.name] = _SAMPLES[column.type.python_type](f"{table.name}-{tag}")
        res = await db.execute(insert(table).values(**values))
        ids[table.name] = res.inserted_primary_key[0]
    await db.commit()
    return ids


async def row_counts(sessionmaker) -> dict[str, int]:
    counts = {}
    async with sessionmaker() as s:
        for table in Base.metadata.sorted_tables:
            counts[table.name] = int((await s.execute(select(func.count()).select_from(table))).scalar())
    return counts


# ---------------------------------------------------------
# Ordering
# ---------------------------------------------------------
def test_purge_graph_covers_every_table():
    assert set(PURGE_GRAPH) == set(Base.metadata.tables)


def test_purge_graph_declares_every_foreign_key():
    for table in Base.metadata.sorted_tables:
        for fk in table.foreign_keys:
            parent = fk.column.table.name
            if parent == ROOT_TABLE:
                continue
            assert table.name in PURGE_GRAPH[parent], f"{table.name} -> {parent}"


def test_purge_order_puts_children_before_parents():
    position = {name: idx for idx, name in enumerate(PURGE_ORDER)}
    assert PURGE_ORDER[-1] == ROOT_TABLE
    for table in Base.metadata.sorted_tables:
        for fk in table.foreign_keys:
            assert position[table.name] < position[fk.column.table.name]


def test_compute_purge_order_rejects_cycles():
    with pytest.raises(CycleError):
        compute_purge_order({"a": {"b"}, "b": {"a"}})


# ---------------------------------------------------------
# Purge
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_purge_removes_every_tenant_row_and_nothing_else(db, sessionmaker):
    doomed = await create_company(db, "Doomed")
    survivor = await create_company(db, "Survivor")
    doomed_id, survivor_id = doomed.id, survivor.id
    await populate_tenant(db, doomed_id, "a")
    survivor_ids = await populate_tenant(db, survivor_id, "b")

    result = await purge_tenant(db, doomed)

    assert result.company_id == doomed_id
    assert result.deleted_rows[ROOT_TABLE] == 1
    assert set(result.deleted_rows) == set(Base.metadata.tables)

    counts = await row_counts(sessionmaker)
    for name, n in counts.items():
        # the deletion itself is audited
        expected = 2 if name == "audit_logs" else 1
        assert n == expected, name

    async with sessionmaker() as s:
        assert await s.get(Company, doomed_id) is None
        assert (await s.get(Company, survivor_id)).name == "Survivor"
        table = Base.metadata.tables["sale_items"]
        remaining = (await s.execute(select(table.c.id))).scalars().all()
    assert remaining == [survivor_ids["sale_items"]]


@pytest.mark.asyncio
async def test_purge_is_all_or_nothing(db, sessionmaker):
    company = await create_company(db, "Half")
    company_id = company.id
    await populate_tenant(db, company_id, "a")
    before = await row_counts(sessionmaker)

    # company_instances still references the company when its row is deleted
    broken_order = tuple(t for t in PURGE_ORDER if t != "company_instances")
    with pytest.raises(TenantPurgeError) as excinfo:
        await purge_tenant(db, company, order=broken_order)

    assert excinfo.value.table == ROOT_TABLE
    assert excinfo.value.to_detail()["error"] == "TENANT_PURGE_FAILED"
    assert await row_counts(sessionmaker) == before


@pytest.mark.asyncio
async def test_purge_audit_drops_actor_purged_with_tenant(db, sessionmaker):
    company = await create_company(db, "Self Service")
    company_id = company.id
    admin = await create_user(db, "admin@self.test", role="ADMIN", company_id=company_id)

    await purge_tenant(db, company, actor_id=admin.id, actor_company_id=company_id)

    async with sessionmaker() as s:
        audit = (await s.execute(select(AuditLog).where(AuditLog.action == "delete"))).scalar_one()
    assert audit.user_id is None
    assert audit.company_id is None
    assert audit.resource_id == str(company_id)
    assert audit.old_values["name"] == "Self Service"


# ---------------------------------------------------------
# API
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_delete_company_endpoint(client, db, operator, operator_headers, sessionmaker):
    company = await create_company(db, "Gone Soon")
    company_id = company.id
    await populate_tenant(db, company_id, "a")

    resp = await client.delete(f"/api/v1/companies/{company_id}", headers=operator_headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["company_id"] == company_id
    assert body["deleted_rows"]["companies"] == 1
    assert body["deleted_rows"]["company_instances"] == 1

    async with sessionmaker() as s:
        assert await s.get(Company, company_id) is None
        audit = (await s.execute(select(AuditLog).where(AuditLog.action == "delete"))).scalar_one()
    assert audit.user_id == operator.id
    assert audit.resource_type == "company"


@pytest.mark.asyncio
async def test_delete_unknown_company_is_404(client, operator_headers):
    resp = await client.delete("/api/v1/companies/999999", headers=operator_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_failure_maps_to_500_with_table(client, db, operator_headers, sessionmaker, monkeypatch):
    company = await create_company(db, "Sticky")
    company_id = company.id
    await populate_tenant(db, company_id, "a")

    broken_order = tuple(t for t in PURGE_ORDER if t != "company_instances")
    monkeypatch.setattr(companies_api, "purge_tenant", functools.partial(purge_tenant, order=broken_order))

    resp = await client.delete(f"/api/v1/companies/{company_id}", headers=operator_headers)
    assert resp.status_code == 500
    detail = resp.json()["detail"]
    assert detail["error"] == "TENANT_PURGE_FAILED"
    assert detail["table"] == "companies"
    assert detail["details"]

    async with sessionmaker() as s:
        assert (await s.get(Company, company_id)).name == "Sticky"


@pytest.mark.asyncio
async def test_delete_requires_platform_operator(client, db):
    company = await create_company(db, "Protected")
    admin = await create_user(db, "admin@protected.test", role="ADMIN", company_id=company.id)

    resp = await client.delete(f"/api/v1/companies/{company.id}", headers=auth_headers(admin))
    assert resp.status_code == 403
