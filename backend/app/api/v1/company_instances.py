# app/api/v1/company_instances.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.company import get_company_for_member
from app.core.errors import InstanceKeyConflict
from app.core.instance_allocator import sync_legacy_fields
from app.core.instance_keys import sanitize_instance_key
from app.core.instance_status import sync_instance_statuses
from app.core.uniqueness_guard import assert_keys_available, update_instance_strict
from app.crud.company_instance import get_company_instance, list_company_instances
from app.db.session import get_db
from app.integrations.evolution import EvolutionGateway, get_evolution_gateway
from app.models.company import Company
from app.models.company_instance import CompanyInstance
from app.schemas.company import CompanyInstanceOut, CompanyInstanceUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companies/{company_id}/instances", tags=["company-instances"])


@router.get("", response_model=List[CompanyInstanceOut])
async def list_instances(
    sync: bool = Query(default=False, description="Refresh status from the gateway first"),
    company: Company = Depends(get_company_for_member),
    db: AsyncSession = Depends(get_db),
    gateway: EvolutionGateway = Depends(get_evolution_gateway),
):
    instances = await list_company_instances(db, company.id)

    if sync and instances:
        changed = await sync_instance_statuses(company, instances, gateway)
        if changed:
            await db.commit()

    return instances


@router.patch("/{instance_id}", response_model=CompanyInstanceOut)
async def update_instance(
    payload: CompanyInstanceUpdate,
    instance_id: int = Path(..., ge=1),
    company: Company = Depends(get_company_for_member),
    db: AsyncSession = Depends(get_db),
):
    instance = await get_company_instance(db, company.id, instance_id)
    if not instance:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "INSTANCE_NOT_FOUND", "message": "Instance not found for this company."},
        )

    values: dict = {}
    if payload.name is not None and payload.name.strip():
        values["name"] = payload.name.strip()

    key = sanitize_instance_key(payload.instance_key)
    if key and key != instance.instance_key:
        values["instance_key"] = key

    if payload.api_key is not None:
        api_key = payload.api_key.apply(instance.api_key)
        if api_key != instance.api_key:
            values["api_key"] = api_key

    if not values:
        return instance

    try:
        if "instance_key" in values:
            await assert_keys_available(db, [key], exclude_company_id=company.id)
        await update_instance_strict(db, instance_id=instance.id, values=values)
    except InstanceKeyConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_detail())

    await sync_legacy_fields(db, company)
    await db.commit()

    logger.info(
        "instance updated company_id=%s instance_id=%s fields=%s",
        company.id,
        instance_id,
        sorted(values),
    )

    res = await db.execute(
        select(CompanyInstance)
        .where(CompanyInstance.id == instance_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one()
