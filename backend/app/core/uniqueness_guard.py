# app/core/uniqueness_guard.py
"""
Global uniqueness of instance routing keys.

The unique index on company_instances.instance_key is authoritative. The
pre-check only exists to reject a request with a friendly error before any
write; concurrent creators can still race past it, so every write runs in a
savepoint and an IntegrityError is either retried once with a derived key
(reconciliation) or mapped to InstanceKeyConflict (direct edits).
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InstanceKeyConflict, InvalidInstanceDefinition
from app.core.instance_keys import derive_retry_key
from app.crud.company_instance import find_taken_instance_keys
from app.models.company_instance import CompanyInstance

logger = logging.getLogger(__name__)


def ensure_no_duplicate_keys(keys: Iterable[Optional[str]]) -> None:
    seen: set[str] = set()
    for key in keys:
        if not key:
            continue
        if key in seen:
            raise InvalidInstanceDefinition(
                f"Instance key '{key}' appears more than once in this request.",
                instance_key=key,
            )
        seen.add(key)


async def assert_keys_available(
    db: AsyncSession,
    keys: Iterable[Optional[str]],
    exclude_company_id: Optional[int] = None,
) -> None:
    """
    Raises InvalidInstanceDefinition for keys repeated within the request and
    InstanceKeyConflict for the first key already held elsewhere.
    """
    keys = [k for k in keys if k]
    ensure_no_duplicate_keys(keys)

    taken = await find_taken_instance_keys(db, keys, exclude_company_id=exclude_company_id)
    if taken:
        raise InstanceKeyConflict(taken[0])


async def _try_insert(db: AsyncSession, values: dict[str, Any]) -> Optional[int]:
    try:
        async with db.begin_nested():
            res = await db.execute(
                insert(CompanyInstance).values(**values).returning(CompanyInstance.id)
            )
            return res.scalar_one()
    except IntegrityError:
        return None


async def _try_update(db: AsyncSession, instance_id: int, values: dict[str, Any]) -> bool:
    try:
        async with db.begin_nested():
            await db.execute(
                update(CompanyInstance)
                .where(CompanyInstance.id == instance_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return True
    except IntegrityError:
        return False


async def insert_instance(
    db: AsyncSession,
    *,
    company_id: int,
    instance_key: str,
    name: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Optional[int]:
    """
    Inserts an instance; on a unique violation retries once with a derived key.
    Returns the new id, or None when both attempts collided.
    """
    values = {
        "company_id": company_id,
        "name": name or instance_key,
        "instance_key": instance_key,
        "api_key": api_key,
        "status": "disconnected",
    }
    new_id = await _try_insert(db, values)
    if new_id is not None:
        return new_id

    retry_key = derive_retry_key(instance_key, company_id)
    logger.warning(
        "instance key collision on insert company_id=%s key=%s retry_key=%s",
        company_id,
        instance_key,
        retry_key,
    )
    new_id = await _try_insert(db, {**values, "instance_key": retry_key})
    if new_id is None:
        logger.error("instance insert failed after retry company_id=%s key=%s", company_id, retry_key)
    return new_id


async def update_instance(
    db: AsyncSession,
    *,
    company_id: int,
    instance_id: int,
    values: dict[str, Any],
) -> bool:
    """
    Updates an instance; a key collision retries once with a derived key.
    Returns False when the row could not be written.
    """
    if not values:
        return True

    if await _try_update(db, instance_id, values):
        return True

    key = values.get("instance_key")
    if not key:
        logger.error("instance update failed company_id=%s instance_id=%s", company_id, instance_id)
        return False

    retry_key = derive_retry_key(key, company_id)
    logger.warning(
        "instance key collision on update company_id=%s instance_id=%s key=%s retry_key=%s",
        company_id,
        instance_id,
        key,
        retry_key,
    )
    if await _try_update(db, instance_id, {**values, "instance_key": retry_key}):
        return True

    logger.error("instance update failed after retry company_id=%s instance_id=%s", company_id, instance_id)
    return False


async def update_instance_strict(
    db: AsyncSession,
    *,
    instance_id: int,
    values: dict[str, Any],
) -> None:
    """Direct edits never rename silently: a collision is a conflict."""
    if not values:
        return
    if not await _try_update(db, instance_id, values):
        raise InstanceKeyConflict(values.get("instance_key") or "")
