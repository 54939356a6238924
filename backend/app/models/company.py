# backend/app/models/company.py

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class Company(Base):
    __tablename__ = "companies"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    cnpj: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # clientes | pacientes | lavajato | restaurante | loja | motoristas
    operation_type: Mapped[str] = mapped_column(String(30), nullable=False, default="clientes")
    category: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    # derived from operation_type/category on every write
    operational_profile: Mapped[str] = mapped_column(String(20), nullable=False, default="GENERIC")

    # Capacity
    max_instances: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    whatsapp_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    instagram_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messenger_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    whatsapp_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    instagram_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    messenger_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Legacy single-instance fields, mirrored from the lowest-id instance
    evolution_instance: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    evolution_apikey: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    evolution_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Instagram channel
    instagram_app_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    instagram_app_secret: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram_page_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    instagram_business_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    instagram_access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # ATIVO | INATIVO | ERRO
    instagram_status: Mapped[str] = mapped_column(String(10), nullable=False, default="INATIVO")

    # Subscription
    plan_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Set once baseline onboarding data has been fully seeded
    seed_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
