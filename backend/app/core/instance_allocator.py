# app/core/instance_allocator.py
"""
Instance allocation for a company: seeding on create and reconciliation of
desired definitions against stored rows on update.

Pairing is explicit when a definition carries the id of an existing
instance; id-less definitions fall back to positional pairing with the
remaining instances in ascending id order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidInstanceDefinition
from app.core.instance_keys import sanitize_instance_key
from app.core.uniqueness_guard import insert_instance, update_instance
from app.crud.company_instance import list_company_instances
from app.models.company import Company
from app.models.company_instance import CompanyInstance
from app.schemas.company import InstanceDefinition, SecretUpdate

logger = logging.getLogger(__name__)


@dataclass
class InstanceSeed:
    instance_key: str
    name: Optional[str] = None
    api_key: Optional[str] = None


@dataclass
class PairedDefinition:
    definition: InstanceDefinition
    existing: Optional[CompanyInstance] = None

    @property
    def is_new(self) -> bool:
        return self.existing is None


def plan_seed_instances(
    definitions: Optional[Sequence[InstanceDefinition]],
    *,
    legacy_key: Optional[str],
    legacy_api_key: Optional[str],
    max_instances: int,
) -> list[InstanceSeed]:
    """
    Explicit definitions win (those with a usable key, capped at
    max_instances); otherwise the legacy single-instance key yields exactly
    one instance; otherwise nothing.
    """
    seeds: list[InstanceSeed] = []
    for d in definitions or []:
        key = sanitize_instance_key(d.instance_key)
        if not key:
            continue
        if len(seeds) >= max_instances:
            logger.info("skipping instance definitions beyond max_instances=%s", max_instances)
            break
        api_key = d.api_key.apply(None) if d.api_key else None
        seeds.append(InstanceSeed(instance_key=key, name=d.name, api_key=api_key))

    if seeds:
        return seeds

    key = sanitize_instance_key(legacy_key)
    if key:
        return [InstanceSeed(instance_key=key, name=key, api_key=legacy_api_key or None)]
    return []


def pair_definitions(
    existing: Sequence[CompanyInstance],
    definitions: Sequence[InstanceDefinition],
) -> list[PairedDefinition]:
    """
    Pure pairing step, run before any write so that a bad id rejects the
    request. Returns one entry per definition in submitted order.
    """
    by_id = {inst.id: inst for inst in existing}
    used: set[int] = set()
    paired: list[Optional[CompanyInstance]] = [None] * len(definitions)

    for idx, d in enumerate(definitions):
        if d.id is None:
            continue
        inst = by_id.get(d.id)
        if inst is None:
            raise InvalidInstanceDefinition(
                f"Instance {d.id} does not belong to this company.",
                instance_id=d.id,
            )
        if d.id in used:
            raise InvalidInstanceDefinition(
                f"Instance {d.id} is referenced more than once.",
                instance_id=d.id,
            )
        used.add(d.id)
        paired[idx] = inst

    remaining = [inst for inst in sorted(existing, key=lambda i: i.id) if inst.id not in used]
    for idx, d in enumerate(definitions):
        if d.id is not None or not remaining:
            continue
        paired[idx] = remaining.pop(0)

    return [PairedDefinition(definition=d, existing=inst) for d, inst in zip(definitions, paired)]


def legacy_definition(
    existing: Sequence[CompanyInstance],
    evolution_instance: Optional[str],
    evolution_apikey: Optional[SecretUpdate],
) -> list[InstanceDefinition]:
    """A bare legacy key on update targets instance #1 (or creates it)."""
    first = min(existing, key=lambda i: i.id) if existing else None
    return [
        InstanceDefinition(
            id=first.id if first else None,
            instance_key=evolution_instance,
            api_key=evolution_apikey,
        )
    ]


def submitted_keys(pairs: Sequence[PairedDefinition]) -> list[str]:
    """Sanitized keys a reconciliation would write (unchanged keys excluded)."""
    keys: list[str] = []
    for p in pairs:
        key = sanitize_instance_key(p.definition.instance_key)
        if not key:
            continue
        if p.existing is not None and p.existing.instance_key == key:
            continue
        keys.append(key)
    return keys


async def sync_legacy_fields(db: AsyncSession, company: Company) -> None:
    """Mirror the lowest-id instance into the company's legacy columns."""
    res = await db.execute(
        select(CompanyInstance.instance_key, CompanyInstance.api_key)
        .where(CompanyInstance.company_id == company.id)
        .order_by(CompanyInstance.id.asc())
        .limit(1)
    )
    first = res.first()
    if first is None:
        return

    company.evolution_instance = first.instance_key
    if first.api_key:
        company.evolution_apikey = first.api_key


async def seed_instances(
    db: AsyncSession,
    company: Company,
    definitions: Optional[Sequence[InstanceDefinition]],
) -> list[CompanyInstance]:
    seeds = plan_seed_instances(
        definitions,
        legacy_key=company.evolution_instance,
        legacy_api_key=company.evolution_apikey,
        max_instances=company.max_instances,
    )
    for seed in seeds:
        await insert_instance(
            db,
            company_id=company.id,
            instance_key=seed.instance_key,
            name=seed.name,
            api_key=seed.api_key,
        )

    await sync_legacy_fields(db, company)
    return await _reload(db, company.id)


async def apply_reconciliation(
    db: AsyncSession,
    company: Company,
    pairs: Sequence[PairedDefinition],
) -> list[CompanyInstance]:
    """
    Applies paired definitions, then trims to max_instances newest-first.
    Never creates instances beyond what was explicitly defined.
    """
    existing_count = sum(1 for p in pairs if not p.is_new)
    stored = await list_company_instances(db, company.id)
    free_slots = max(0, company.max_instances - len(stored))

    async with db.begin_nested():
        parked = await _park_moving_keys(db, company.id, pairs)

        for p in pairs:
            if p.existing is None:
                continue
            d = p.definition
            inst = p.existing
            key = sanitize_instance_key(d.instance_key)

            values: dict = {}
            if d.name:
                values["name"] = d.name
            if key and (key != inst.instance_key or inst.id in parked):
                values["instance_key"] = key
            if d.api_key is not None:
                api_key = d.api_key.apply(inst.api_key)
                if api_key != inst.api_key:
                    values["api_key"] = api_key
            await update_instance(db, company_id=company.id, instance_id=inst.id, values=values)

    for p in pairs:
        if p.existing is not None:
            continue
        d = p.definition
        key = sanitize_instance_key(d.instance_key)

        if not key:
            logger.debug("skipping new instance definition without key company_id=%s", company.id)
            continue
        if free_slots <= 0:
            logger.info(
                "skipping new instance key=%s company_id=%s: max_instances=%s reached",
                key,
                company.id,
                company.max_instances,
            )
            continue

        api_key = d.api_key.apply(None) if d.api_key else None
        new_id = await insert_instance(db, company_id=company.id, instance_key=key, name=d.name, api_key=api_key)
        if new_id is not None:
            free_slots -= 1

    logger.debug(
        "reconciled instances company_id=%s paired=%s new=%s",
        company.id,
        existing_count,
        len(pairs) - existing_count,
    )

    await trim_to_capacity(db, company)
    await sync_legacy_fields(db, company)
    return await _reload(db, company.id)


async def _park_moving_keys(
    db: AsyncSession,
    company_id: int,
    pairs: Sequence[PairedDefinition],
) -> set[int]:
    """
    Keys exchanged between the company's own instances would trip the unique
    index mid-way, so their current holders get a temporary key first.
    Returns the ids that were parked.
    """
    targets: dict[int, str] = {}
    for p in pairs:
        if p.existing is None:
            continue
        key = sanitize_instance_key(p.definition.instance_key)
        if key and key != p.existing.instance_key:
            targets[p.existing.id] = key

    wanted = set(targets.values())
    holders = [
        p.existing.id
        for p in pairs
        if p.existing is not None and p.existing.id in targets and p.existing.instance_key in wanted
    ]
    for instance_id in holders:
        await db.execute(
            update(CompanyInstance)
            .where(CompanyInstance.id == instance_id)
            .values(instance_key=f"_moving_{company_id}_{instance_id}")
            .execution_options(synchronize_session=False)
        )

    if holders:
        logger.debug("parked moving instance keys company_id=%s ids=%s", company_id, holders)
    return set(holders)


async def trim_to_capacity(db: AsyncSession, company: Company) -> list[int]:
    """Deletes instances above max_instances, highest ids first. Returns deleted ids."""
    res = await db.execute(
        select(CompanyInstance.id)
        .where(CompanyInstance.company_id == company.id)
        .order_by(CompanyInstance.id.desc())
    )
    ids = list(res.scalars().all())
    excess = len(ids) - company.max_instances
    if excess <= 0:
        return []

    doomed = ids[:excess]
    try:
        async with db.begin_nested():
            await db.execute(
                delete(CompanyInstance)
                .where(CompanyInstance.id.in_(doomed))
                .execution_options(synchronize_session=False)
            )
    except IntegrityError:
        logger.exception("could not trim instances company_id=%s ids=%s", company.id, doomed)
        return []

    logger.info("trimmed instances company_id=%s ids=%s max_instances=%s", company.id, doomed, company.max_instances)
    return doomed


async def _reload(db: AsyncSession, company_id: int) -> list[CompanyInstance]:
    res = await db.execute(
        select(CompanyInstance)
        .where(CompanyInstance.company_id == company_id)
        .order_by(CompanyInstance.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())
