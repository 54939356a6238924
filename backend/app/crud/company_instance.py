# app/crud/company_instance.py
from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.company_instance import CompanyInstance


async def list_company_instances(db: AsyncSession, company_id: int) -> list[CompanyInstance]:
    """Instances of a company ordered by ascending id (instance #1 first)."""
    stmt = (
        select(CompanyInstance)
        .where(CompanyInstance.company_id == company_id)
        .order_by(CompanyInstance.id.asc())
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def get_company_instance(db: AsyncSession, company_id: int, instance_id: int) -> Optional[CompanyInstance]:
    stmt = (
        select(CompanyInstance)
        .where(CompanyInstance.id == instance_id)
        .where(CompanyInstance.company_id == company_id)
    )
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def find_taken_instance_keys(
    db: AsyncSession,
    keys: Iterable[str],
    exclude_company_id: Optional[int] = None,
) -> list[str]:
    """
    Returns the subset of `keys` already stored in company_instances.
    When exclude_company_id is given, keys held by that company are not
    reported (a company may keep its own keys on update).
    """
    wanted = sorted({k for k in keys if k})
    if not wanted:
        return []

    stmt = select(CompanyInstance.instance_key).where(CompanyInstance.instance_key.in_(wanted))
    if exclude_company_id is not None:
        stmt = stmt.where(CompanyInstance.company_id != exclude_company_id)

    res = await db.execute(stmt)
    taken = set(res.scalars().all())
    return [k for k in wanted if k in taken]
