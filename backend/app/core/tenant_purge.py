# app/core/tenant_purge.py
"""
Tenant purge: removes a company and every row that depends on it.

PURGE_GRAPH declares, per table, the tables whose rows must be gone before
it can be purged (its foreign-key dependents). The order is computed once at
import with graphlib; a cycle fails the import. Each table is scoped to the
tenant through its foreign keys: a row is purged when any FK points at a row
that is itself being purged, so `companies.id` is the single root.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from graphlib import TopologicalSorter
from typing import Optional, Sequence

from sqlalchemy import ColumnElement, Table, delete, false, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import company_snapshot, log_audit
from app.core.errors import TenantPurgeError
from app.db.base import Base
from app.models.company import Company

logger = logging.getLogger(__name__)

ROOT_TABLE = "companies"

# table -> tables that must be purged first
PURGE_GRAPH: dict[str, set[str]] = {
    # Messaging
    "whatsapp_contacts": {"whatsapp_conversations", "whatsapp_campaign_contacts"},
    "whatsapp_conversations": {"whatsapp_messages", "whatsapp_audit_logs", "bot_sessions"},
    "whatsapp_messages": set(),
    "whatsapp_campaigns": {"whatsapp_campaign_contacts"},
    "whatsapp_campaign_contacts": set(),
    "whatsapp_audit_logs": set(),
    # CRM
    "crm_tags": {"crm_lead_tags"},
    "crm_lead_tags": set(),
    "crm_follow_ups": set(),
    "insurance_plans": {"professional_insurance_config", "crm_appointments"},
    "professionals": {"professional_insurance_config", "crm_appointments"},
    "professional_insurance_config": set(),
    "crm_appointments": set(),
    # Finance
    "financial_categories": {"financial_transactions"},
    "financial_cost_centers": {"financial_transactions"},
    "suppliers": {"financial_transactions", "inventory"},
    "financial_transactions": set(),
    "inventory": {"inventory_movements", "sale_items"},
    "inventory_movements": set(),
    "sales": {"sale_items", "receivables"},
    "sale_items": set(),
    "receivables": {"payments"},
    "payments": set(),
    # Restaurant
    "restaurant_tables": {"restaurant_orders"},
    "restaurant_menu_categories": {"restaurant_menu_items"},
    "restaurant_menu_items": {"restaurant_order_items"},
    "restaurant_orders": {"restaurant_order_items", "restaurant_deliveries"},
    "restaurant_order_items": set(),
    "restaurant_deliveries": set(),
    # Car wash
    "lavajato_plans": {"lavajato_subscriptions"},
    "lavajato_services": {"lavajato_appointments"},
    "lavajato_boxes": {"lavajato_appointments"},
    "lavajato_vehicles": {"lavajato_subscriptions", "lavajato_appointments", "lavajato_service_orders"},
    "lavajato_subscriptions": set(),
    "lavajato_appointments": {"lavajato_service_orders"},
    "lavajato_service_orders": set(),
    # Leads / pipeline
    "crm_leads": {"crm_lead_tags", "crm_follow_ups", "crm_appointments", "sales", "lavajato_vehicles"},
    "crm_stages": {"crm_leads"},
    # Automation
    "bots": {"bot_nodes", "bot_edges", "bot_instances", "bot_sessions"},
    "bot_nodes": {"bot_edges"},
    "bot_edges": set(),
    "bot_instances": set(),
    "bot_sessions": set(),
    "ai_agents": set(),
    # Planning
    "admin_tasks": {"admin_task_history"},
    "admin_task_history": set(),
    "roadmap_items": {"roadmap_comments"},
    "roadmap_comments": set(),
    "entity_links": set(),
    # Workflows / FAQ
    "system_workflows": {"workflow_executions"},
    "workflow_executions": set(),
    "faq_questions": set(),
    "global_templates": set(),
    # Observability
    "admin_alerts": set(),
    "system_logs": set(),
    "audit_logs": set(),
    "company_settings": set(),
    # Billing
    "subscriptions": {"invoices"},
    "invoices": set(),
    "company_usage": set(),
    "company_goals": set(),
    # Core
    "company_instances": {"whatsapp_conversations", "bot_instances"},
    "app_users": {
        "whatsapp_audit_logs",
        "admin_tasks",
        "admin_task_history",
        "roadmap_items",
        "roadmap_comments",
        "entity_links",
        "system_logs",
        "audit_logs",
    },
}
PURGE_GRAPH[ROOT_TABLE] = set(PURGE_GRAPH)


def compute_purge_order(graph: dict[str, set[str]]) -> tuple[str, ...]:
    return tuple(TopologicalSorter(graph).static_order())


PURGE_ORDER: tuple[str, ...] = compute_purge_order(PURGE_GRAPH)


@dataclass
class PurgeResult:
    company_id: int
    deleted_rows: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.deleted_rows.values())


def _table(name: str) -> Table:
    return Base.metadata.tables[name]


def tenant_scope(table_name: str, company_id: int, _seen: Optional[frozenset[str]] = None) -> ColumnElement[bool]:
    """
    WHERE clause selecting the rows of `table_name` that belong to the tenant:
    any FK column pointing at a purged row of a parent table.
    """
    table = _table(table_name)
    if table_name == ROOT_TABLE:
        return table.c.id == company_id

    seen = (_seen or frozenset()) | {table_name}
    clauses = []
    for fk in table.foreign_keys:
        parent_name = fk.column.table.name
        if parent_name not in PURGE_GRAPH or parent_name in seen:
            continue
        if parent_name == ROOT_TABLE:
            clauses.append(fk.parent == company_id)
            continue
        parent = _table(parent_name)
        clauses.append(
            fk.parent.in_(select(parent.c.id).where(tenant_scope(parent_name, company_id, seen)))
        )

    if not clauses:
        return false()
    return or_(*clauses)


def _constraint_name(exc: SQLAlchemyError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None), getattr(orig, "diag", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return str(name)
    return None


async def purge_tenant(
    db: AsyncSession,
    company: Company,
    *,
    actor_id: Optional[int] = None,
    actor_company_id: Optional[int] = None,
    order: Sequence[str] = PURGE_ORDER,
) -> PurgeResult:
    """
    Deletes every tenant-scoped row in `order` and the company itself, then
    writes the audit record, all in the session's current transaction.
    Commits on success; on any failure rolls back and raises TenantPurgeError.
    """
    company_id = company.id
    snapshot = company_snapshot(company)
    result = PurgeResult(company_id=company_id)

    current: Optional[str] = None
    try:
        for table_name in order:
            current = table_name
            table = _table(table_name)
            res = await db.execute(delete(table).where(tenant_scope(table_name, company_id)))
            if res.rowcount:
                result.deleted_rows[table_name] = int(res.rowcount)

        current = None
        # The acting user may have been purged with the tenant
        user_id = actor_id if actor_company_id != company_id else None
        await log_audit(
            db,
            action="delete",
            resource_type="company",
            resource_id=company_id,
            user_id=user_id,
            company_id=None,
            old_values=snapshot,
            details=f"purged {result.total} rows",
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        failed = current or ROOT_TABLE
        logger.error("tenant purge failed company_id=%s table=%s: %s", company_id, failed, exc)
        raise TenantPurgeError(failed, _constraint_name(exc), str(getattr(exc, "orig", exc))) from exc

    logger.info("tenant purged company_id=%s rows=%s", company_id, result.total)
    return result

