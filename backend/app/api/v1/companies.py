# app/api/v1/companies.py
from __future__ import annotations

import logging
from collections import defaultdict
from typing import List, Optional, Sequence

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.auth import get_current_user, require_platform_operator
from app.api.deps.company import get_company_for_member, get_company_or_404
from app.core.audit import company_snapshot, log_audit
from app.core.errors import InstanceKeyConflict, InvalidInstanceDefinition, TenantPurgeError
from app.core.instagram_channel import InstagramStatus, resolve_instagram_channel
from app.core.instance_allocator import (
    apply_reconciliation,
    legacy_definition,
    pair_definitions,
    seed_instances,
    submitted_keys,
)
from app.core.instance_keys import sanitize_instance_key
from app.core.operational_profile import DEFAULT_OPERATION_TYPE, derive_operational_profile
from app.core.roles import is_platform_operator
from app.core.tenant_purge import purge_tenant
from app.core.tenant_seed import seed_baseline_data
from app.core.uniqueness_guard import assert_keys_available, ensure_no_duplicate_keys
from app.crud.company_instance import list_company_instances
from app.crud.subscription import mirror_due_date
from app.db.session import get_db
from app.integrations.instagram_graph import InstagramGraphClient, get_instagram_graph_client
from app.models.company import Company
from app.models.company_instance import CompanyInstance
from app.models.user import User
from app.schemas.company import (
    CompanyCreate,
    CompanyInstanceOut,
    CompanyOut,
    CompanyPurgeOut,
    CompanyUpdate,
    SecretUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companies", tags=["companies"])

# Only platform operators may change these; other callers' values are replaced
# with the stored ones.
OPERATOR_ONLY_FIELDS = frozenset(
    {"max_instances", "whatsapp_limit", "instagram_limit", "messenger_limit", "plan_id", "due_date"}
)

# Copied as-is from the payload when present
PLAIN_FIELDS = (
    "name",
    "cnpj",
    "city",
    "state",
    "phone",
    "operation_type",
    "category",
    "max_instances",
    "whatsapp_limit",
    "instagram_limit",
    "messenger_limit",
    "whatsapp_enabled",
    "messenger_enabled",
    "evolution_url",
    "instagram_app_id",
    "instagram_page_id",
    "instagram_business_id",
    "plan_id",
    "due_date",
)


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def _to_http(exc: InstanceKeyConflict | InvalidInstanceDefinition) -> HTTPException:
    if isinstance(exc, InstanceKeyConflict):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_detail())
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.to_detail())


def _company_out(company: Company, instances: Sequence[CompanyInstance]) -> CompanyOut:
    out = CompanyOut.model_validate(company)
    out.instances = [CompanyInstanceOut.model_validate(i) for i in instances]
    return out


async def _recover(db: AsyncSession, company: Company) -> None:
    # rollback expires everything; reload before touching the company again
    await db.rollback()
    await db.refresh(company)


async def _instances_by_company(db: AsyncSession, company_ids: List[int]) -> dict[int, list[CompanyInstance]]:
    grouped: dict[int, list[CompanyInstance]] = defaultdict(list)
    if not company_ids:
        return grouped
    res = await db.execute(
        select(CompanyInstance)
        .where(CompanyInstance.company_id.in_(company_ids))
        .order_by(CompanyInstance.id.asc())
    )
    for inst in res.scalars().all():
        grouped[inst.company_id].append(inst)
    return grouped


# ---------------------------------------------------------
# Create
# ---------------------------------------------------------
@router.post("", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
async def create_company(
    payload: CompanyCreate,
    operator: User = Depends(require_platform_operator),
    db: AsyncSession = Depends(get_db),
    graph: InstagramGraphClient = Depends(get_instagram_graph_client),
):
    operator_id = operator.id
    legacy_key = sanitize_instance_key(payload.evolution_instance)
    definition_keys = [sanitize_instance_key(d.instance_key) for d in payload.instances or []]

    # Validation and conflicts abort before any write
    try:
        ensure_no_duplicate_keys(definition_keys)
        await assert_keys_available(db, set(k for k in definition_keys + [legacy_key] if k))
    except (InstanceKeyConflict, InvalidInstanceDefinition) as exc:
        raise _to_http(exc)

    operation_type = payload.operation_type or DEFAULT_OPERATION_TYPE

    channel = await resolve_instagram_channel(
        stored_token=None,
        stored_status=InstagramStatus.INATIVO.value,
        stored_enabled=payload.instagram_enabled,
        token_update=SecretUpdate.from_wire(payload.instagram_access_token) if payload.instagram_access_token else None,
        page_id=payload.instagram_page_id,
        enabled_submitted=None,
        client=graph,
    )

    company = Company(
        name=payload.name,
        cnpj=payload.cnpj,
        city=payload.city,
        state=payload.state,
        phone=payload.phone,
        operation_type=operation_type,
        category=payload.category,
        operational_profile=derive_operational_profile(operation_type, payload.category),
        max_instances=payload.max_instances,
        whatsapp_limit=payload.whatsapp_limit,
        instagram_limit=payload.instagram_limit,
        messenger_limit=payload.messenger_limit,
        whatsapp_enabled=payload.whatsapp_enabled,
        instagram_enabled=channel.enabled,
        messenger_enabled=payload.messenger_enabled,
        evolution_instance=legacy_key,
        evolution_apikey=payload.evolution_apikey or None,
        evolution_url=payload.evolution_url,
        instagram_app_id=payload.instagram_app_id,
        instagram_app_secret=payload.instagram_app_secret or None,
        instagram_page_id=payload.instagram_page_id,
        instagram_business_id=payload.instagram_business_id,
        instagram_access_token=channel.access_token,
        instagram_status=channel.status,
        plan_id=payload.plan_id,
        due_date=payload.due_date,
    )

    try:
        db.add(company)
        await db.flush()
        if payload.due_date is not None:
            await mirror_due_date(db, company_id=company.id, plan_id=company.plan_id, due_date=company.due_date)
        await db.commit()
        await db.refresh(company)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("company insert failed name=%s", payload.name)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "COMPANY_CREATE_FAILED", "message": "Could not create company."},
        )

    company_id = company.id
    logger.info("company created company_id=%s operator_id=%s", company_id, operator_id)

    # Best-effort enrichment: the company exists even if these fail
    try:
        await seed_instances(db, company, payload.instances)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("instance seeding failed company_id=%s", company_id)
        await _recover(db, company)

    await seed_baseline_data(db, company)
    await log_audit(
        db,
        action="create",
        resource_type="company",
        resource_id=company_id,
        user_id=operator_id,
        company_id=company_id,
        new_values=company_snapshot(company),
    )
    try:
        await db.commit()
    except SQLAlchemyError:
        logger.exception("post-create commit failed company_id=%s", company_id)
        await db.rollback()

    await db.refresh(company)
    instances = await list_company_instances(db, company_id)
    return _company_out(company, instances)


# ---------------------------------------------------------
# Read
# ---------------------------------------------------------
@router.get("", response_model=List[CompanyOut])
async def list_companies(
    operator: User = Depends(require_platform_operator),
    db: AsyncSession = Depends(get_db),
):
    res = await db.execute(select(Company).order_by(Company.id.desc()))
    companies = list(res.scalars().all())
    grouped = await _instances_by_company(db, [c.id for c in companies])
    return [_company_out(c, grouped.get(c.id, [])) for c in companies]


@router.get("/{company_id}", response_model=CompanyOut)
async def get_company(
    company: Company = Depends(get_company_for_member),
    db: AsyncSession = Depends(get_db),
):
    instances = await list_company_instances(db, company.id)
    return _company_out(company, instances)


# ---------------------------------------------------------
# Update
# ---------------------------------------------------------
@router.patch("/{company_id}", response_model=CompanyOut)
async def update_company(
    payload: CompanyUpdate,
    company: Company = Depends(get_company_for_member),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    graph: InstagramGraphClient = Depends(get_instagram_graph_client),
):
    user_id = user.id
    company_id = company.id
    fields = set(payload.model_fields_set)
    if not is_platform_operator(user):
        ignored = fields & OPERATOR_ONLY_FIELDS
        if ignored:
            logger.info("ignoring operator-only fields %s from user_id=%s", sorted(ignored), user_id)
        fields -= OPERATOR_ONLY_FIELDS

    evolution_apikey: Optional[SecretUpdate] = payload.evolution_apikey if "evolution_apikey" in fields else None

    # Pair and check instance definitions before anything is written
    existing = await list_company_instances(db, company_id)
    definitions = payload.instances if "instances" in fields else None
    if definitions is None and sanitize_instance_key(payload.evolution_instance) and "evolution_instance" in fields:
        definitions = legacy_definition(existing, payload.evolution_instance, evolution_apikey)

    pairs = []
    if definitions is not None:
        try:
            pairs = pair_definitions(existing, definitions)
            ensure_no_duplicate_keys(sanitize_instance_key(d.instance_key) for d in definitions)
            await assert_keys_available(db, submitted_keys(pairs), exclude_company_id=company_id)
        except (InstanceKeyConflict, InvalidInstanceDefinition) as exc:
            raise _to_http(exc)

    old_values = company_snapshot(company)

    for name in PLAIN_FIELDS:
        if name in fields:
            setattr(company, name, getattr(payload, name))

    if not company.operation_type:
        company.operation_type = DEFAULT_OPERATION_TYPE
    company.operational_profile = derive_operational_profile(company.operation_type, company.category)

    if evolution_apikey is not None:
        company.evolution_apikey = evolution_apikey.apply(company.evolution_apikey)
    if "instagram_app_secret" in fields and payload.instagram_app_secret is not None:
        company.instagram_app_secret = payload.instagram_app_secret.apply(company.instagram_app_secret)

    channel = await resolve_instagram_channel(
        stored_token=company.instagram_access_token,
        stored_status=company.instagram_status,
        stored_enabled=company.instagram_enabled,
        token_update=payload.instagram_access_token if "instagram_access_token" in fields else None,
        page_id=company.instagram_page_id,
        enabled_submitted=payload.instagram_enabled if "instagram_enabled" in fields else None,
        client=graph,
    )
    company.instagram_access_token = channel.access_token
    company.instagram_status = channel.status
    company.instagram_enabled = channel.enabled

    try:
        if "due_date" in fields:
            await mirror_due_date(db, company_id=company_id, plan_id=company.plan_id, due_date=company.due_date)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("company update failed company_id=%s", company_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "COMPANY_UPDATE_FAILED", "message": "Could not update company."},
        )

    # Reconciliation also trims to a lowered max_instances when no definitions were sent
    try:
        await apply_reconciliation(db, company, pairs)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("instance reconciliation failed company_id=%s", company_id)
        await _recover(db, company)

    await db.refresh(company)
    await log_audit(
        db,
        action="update",
        resource_type="company",
        resource_id=company_id,
        user_id=user_id,
        company_id=company_id,
        old_values=old_values,
        new_values=company_snapshot(company),
        details=channel.error,
    )
    await db.commit()

    instances = await list_company_instances(db, company_id)
    return _company_out(company, instances)


# ---------------------------------------------------------
# Onboarding re-run
# ---------------------------------------------------------
@router.post("/{company_id}/seed", response_model=CompanyOut)
async def reseed_company(
    operator: User = Depends(require_platform_operator),
    company: Company = Depends(get_company_or_404),
    db: AsyncSession = Depends(get_db),
):
    ok = await seed_baseline_data(db, company)
    await db.commit()
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "COMPANY_SEED_FAILED", "message": "Baseline data could not be created."},
        )

    await db.refresh(company)
    instances = await list_company_instances(db, company.id)
    return _company_out(company, instances)


# ---------------------------------------------------------
# Delete
# ---------------------------------------------------------
@router.delete("/{company_id}", response_model=CompanyPurgeOut)
async def delete_company(
    operator: User = Depends(require_platform_operator),
    company: Company = Depends(get_company_or_404),
    db: AsyncSession = Depends(get_db),
):
    actor_id, actor_company_id = operator.id, operator.company_id
    try:
        result = await purge_tenant(db, company, actor_id=actor_id, actor_company_id=actor_company_id)
    except TenantPurgeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.to_detail())

    return CompanyPurgeOut(
        message="Company and all related data deleted.",
        company_id=result.company_id,
        deleted_rows=result.deleted_rows,
    )
