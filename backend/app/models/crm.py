from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from app.db.base import Base


class CrmStage(Base):
    __tablename__ = "crm_stages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    name = Column(String(120), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    color = Column(String(16), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CrmLead(Base):
    __tablename__ = "crm_leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    stage_id = Column(Integer, ForeignKey("crm_stages.id"), nullable=True, index=True)

    name = Column(String(200), nullable=False)
    phone = Column(String(32), nullable=True)
    description = Column(Text, nullable=True)
    value = Column(Numeric(12, 2), nullable=True)
    origin = Column(String(60), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AiAgent(Base):
    __tablename__ = "ai_agents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    name = Column(String(120), nullable=False)
    prompt = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active | paused
    model = Column(String(60), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GlobalTemplate(Base):
    __tablename__ = "global_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    name = Column(String(120), nullable=False)
    type = Column(String(30), nullable=False, default="message")
    content = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
