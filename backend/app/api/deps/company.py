from __future__ import annotations

from fastapi import Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.auth import get_current_user
from app.core.roles import is_platform_operator
from app.db.session import get_db
from app.models.company import Company
from app.models.user import User


async def get_company_or_404(
    company_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
) -> Company:
    company = await db.get(Company, company_id)
    if not company:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "COMPANY_NOT_FOUND", "message": "Company not found."},
        )
    return company


async def get_company_for_member(
    company: Company = Depends(get_company_or_404),
    user: User = Depends(get_current_user),
) -> Company:
    """
    Platform operators may act on any company; everyone else only on their own.
    """
    if is_platform_operator(user) or user.company_id == company.id:
        return company

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"error": "FORBIDDEN", "message": "Not a member of this company."},
    )
