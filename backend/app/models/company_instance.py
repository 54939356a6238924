# backend/app/models/company_instance.py

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class CompanyInstance(Base):
    __tablename__ = "company_instances"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
    )

    name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    # Routing key on the Evolution gateway; the gateway namespace is shared,
    # so uniqueness is global and not per company.
    instance_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)

    # Falls back to the company / global key when null
    api_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # connected | connecting | disconnected
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="disconnected")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
