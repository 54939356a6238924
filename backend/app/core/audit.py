# app/core/audit.py
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog
from app.models.company import Company
from app.schemas.company import mask_secret

logger = logging.getLogger(__name__)

COMPANY_SECRET_FIELDS = frozenset({"evolution_apikey", "instagram_app_secret", "instagram_access_token"})


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def company_snapshot(company: Company) -> dict[str, Any]:
    """Column values of a company, JSON-serializable, secrets masked."""
    snapshot: dict[str, Any] = {}
    for attr in inspect(Company).column_attrs:
        value = getattr(company, attr.key)
        if attr.key in COMPANY_SECRET_FIELDS:
            value = mask_secret(value)
        snapshot[attr.key] = _json_safe(value)
    return snapshot


async def log_audit(
    db: AsyncSession,
    *,
    action: str,
    resource_type: str,
    resource_id: Optional[Any] = None,
    user_id: Optional[int] = None,
    company_id: Optional[int] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
    details: Optional[str] = None,
) -> None:
    """
    Adds an audit row inside a savepoint of the caller's transaction.
    Audit failures are logged and never fail the audited operation.
    """
    try:
        async with db.begin_nested():
            db.add(
                AuditLog(
                    action=action,
                    resource_type=resource_type,
                    resource_id=str(resource_id) if resource_id is not None else None,
                    user_id=user_id,
                    company_id=company_id,
                    old_values=old_values or {},
                    new_values=new_values or {},
                    details=details,
                )
            )
    except SQLAlchemyError:
        logger.exception("audit write failed action=%s resource=%s:%s", action, resource_type, resource_id)
