# app/crud/subscription.py
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import Subscription


def _period_end(due_date: date) -> datetime:
    return datetime.combine(due_date, time(23, 59, 59), tzinfo=timezone.utc)


async def get_latest_subscription(db: AsyncSession, company_id: int) -> Optional[Subscription]:
    stmt = (
        select(Subscription)
        .where(Subscription.company_id == company_id)
        .order_by(Subscription.id.desc())
        .limit(1)
    )
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def mirror_due_date(
    db: AsyncSession,
    *,
    company_id: int,
    plan_id: Optional[int],
    due_date: Optional[date],
) -> Optional[Subscription]:
    """
    Keeps the company's latest subscription in step with its due date.
    A due date in the future re-activates the subscription.
    """
    sub = await get_latest_subscription(db, company_id)
    if due_date is None:
        if sub is not None:
            sub.current_period_end = None
        return sub

    period_end = _period_end(due_date)
    if sub is None:
        sub = Subscription(company_id=company_id, plan_id=plan_id, status="active", current_period_end=period_end)
        db.add(sub)
        return sub

    sub.current_period_end = period_end
    if plan_id is not None:
        sub.plan_id = plan_id
    if period_end > datetime.now(timezone.utc):
        sub.status = "active"
    return sub
