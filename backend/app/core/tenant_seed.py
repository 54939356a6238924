# app/core/tenant_seed.py
"""
Baseline data for a new company so the product is usable on first login:
a pipeline stage, a sample lead, a sample AI agent and message templates.

Seeding is idempotent (existing rows are matched by name) and all-or-nothing
inside a savepoint; `seed_completed_at` is only set once everything exists.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.company import Company
from app.models.crm import AiAgent, CrmLead, CrmStage, GlobalTemplate

logger = logging.getLogger(__name__)

DEFAULT_STAGE = {"name": "LEADS", "position": 0, "color": "#cbd5e1"}

SAMPLE_LEAD = {
    "name": "João Silva (Exemplo)",
    "phone": "5511999999999",
    "description": "Este é um lead de exemplo. Arraste-o para mover de fase!",
    "value": Decimal("1500.00"),
    "origin": "Simulação",
}

SAMPLE_AGENT = {
    "name": "Assistente de Vendas",
    "prompt": "Você é um assistente comercial focado em qualificar leads. Seja breve e cordial.",
    "status": "active",
    "model": "gpt-4o",
}

DEFAULT_TEMPLATES = (
    ("Boas Vindas", "Olá {nome}, tudo bem? Vi que se cadastrou em nosso site. Como posso ajudar?"),
    ("Cobrança Amigável", "Oi {nome}, lembrete gentil sobre sua fatura pendente. Podemos ajudar com algo?"),
    ("Confirmação", "Confirmado, {nome}! Ficamos aguardando você."),
)


async def _ensure_stage(db: AsyncSession, company_id: int) -> CrmStage:
    res = await db.execute(
        select(CrmStage)
        .where(CrmStage.company_id == company_id)
        .where(CrmStage.name == DEFAULT_STAGE["name"])
        .limit(1)
    )
    stage = res.scalar_one_or_none()
    if stage is None:
        stage = CrmStage(company_id=company_id, **DEFAULT_STAGE)
        db.add(stage)
        await db.flush()
    return stage


async def _exists(db: AsyncSession, model, company_id: int, name: str) -> bool:
    res = await db.execute(
        select(model.id).where(model.company_id == company_id).where(model.name == name).limit(1)
    )
    return res.first() is not None


async def seed_baseline_data(db: AsyncSession, company: Company) -> bool:
    """
    Returns True when the baseline is complete. Failures are logged and
    rolled back to the savepoint; the caller still commits the company.
    """
    company_id = company.id
    try:
        async with db.begin_nested():
            stage = await _ensure_stage(db, company_id)

            if not await _exists(db, CrmLead, company_id, SAMPLE_LEAD["name"]):
                db.add(CrmLead(company_id=company_id, stage_id=stage.id, **SAMPLE_LEAD))

            if not await _exists(db, AiAgent, company_id, SAMPLE_AGENT["name"]):
                db.add(AiAgent(company_id=company_id, **SAMPLE_AGENT))

            for name, content in DEFAULT_TEMPLATES:
                if not await _exists(db, GlobalTemplate, company_id, name):
                    db.add(
                        GlobalTemplate(
                            company_id=company_id,
                            name=name,
                            content=content,
                            type="message",
                            is_active=True,
                        )
                    )
            await db.flush()
    except SQLAlchemyError:
        logger.exception("baseline seeding failed company_id=%s", company_id)
        return False

    company.seed_completed_at = datetime.now(timezone.utc)
    logger.info("baseline seeding complete company_id=%s", company_id)
    return True
