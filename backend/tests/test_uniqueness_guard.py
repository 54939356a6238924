# tests/test_uniqueness_guard.py
from __future__ import annotations

import re

import pytest
from sqlalchemy import select

from app.core.errors import InstanceKeyConflict, InvalidInstanceDefinition
from app.core.uniqueness_guard import (
    assert_keys_available,
    ensure_no_duplicate_keys,
    insert_instance,
    update_instance,
    update_instance_strict,
)
from app.models.company_instance import CompanyInstance

from conftest import create_company


async def keys_of(sessionmaker, company_id: int) -> list[str]:
    async with sessionmaker() as s:
        res = await s.execute(
            select(CompanyInstance.instance_key)
            .where(CompanyInstance.company_id == company_id)
            .order_by(CompanyInstance.id)
        )
        return list(res.scalars().all())


def test_duplicate_keys_in_one_request():
    ensure_no_duplicate_keys(["a", None, "", "b"])
    with pytest.raises(InvalidInstanceDefinition) as excinfo:
        ensure_no_duplicate_keys(["a", "b", "a"])
    assert excinfo.value.instance_key == "a"


@pytest.mark.asyncio
async def test_assert_keys_available_ignores_own_keys(db):
    company = await create_company(db, "Owner")
    db.add(CompanyInstance(company_id=company.id, instance_key="owned"))
    await db.commit()

    await assert_keys_available(db, ["owned", "free"], exclude_company_id=company.id)
    with pytest.raises(InstanceKeyConflict) as excinfo:
        await assert_keys_available(db, ["free", "owned"])
    assert excinfo.value.instance_key == "owned"


@pytest.mark.asyncio
async def test_insert_collision_retries_with_derived_key(db, sessionmaker):
    first = await create_company(db, "First")
    second = await create_company(db, "Second")
    db.add(CompanyInstance(company_id=first.id, instance_key="racy"))
    await db.commit()

    new_id = await insert_instance(db, company_id=second.id, instance_key="racy", name="Racy")
    await db.commit()

    assert new_id is not None
    (key,) = await keys_of(sessionmaker, second.id)
    assert re.fullmatch(rf"racy_{second.id}_\d{{4}}", key)


@pytest.mark.asyncio
async def test_update_collision_retries_with_derived_key(db, sessionmaker):
    first = await create_company(db, "First")
    second = await create_company(db, "Second")
    db.add(CompanyInstance(company_id=first.id, instance_key="wanted"))
    mine = CompanyInstance(company_id=second.id, instance_key="mine")
    db.add(mine)
    await db.commit()

    ok = await update_instance(db, company_id=second.id, instance_id=mine.id, values={"instance_key": "wanted"})
    await db.commit()

    assert ok
    (key,) = await keys_of(sessionmaker, second.id)
    assert key.startswith(f"wanted_{second.id}_")


@pytest.mark.asyncio
async def test_strict_update_collision_is_a_conflict(db, sessionmaker):
    first = await create_company(db, "First")
    second = await create_company(db, "Second")
    db.add(CompanyInstance(company_id=first.id, instance_key="wanted"))
    mine = CompanyInstance(company_id=second.id, instance_key="mine")
    db.add(mine)
    await db.commit()

    with pytest.raises(InstanceKeyConflict):
        await update_instance_strict(db, instance_id=mine.id, values={"instance_key": "wanted"})
    await db.commit()

    assert await keys_of(sessionmaker, second.id) == ["mine"]
