from __future__ import annotations

import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from app.core.config import settings
from app.core.operational_profile import normalize_operation_type

logger = logging.getLogger(__name__)

REDACTION_MARKER = "********"


class SecretAction(str, Enum):
    KEEP = "keep"
    SET = "set"
    CLEAR = "clear"


class SecretUpdate(BaseModel):
    """
    Update instruction for a stored secret.

    On the wire a secret may also be sent as a plain string: a value containing
    the redaction marker means keep, an empty string means clear, anything else
    means set.
    """

    action: SecretAction
    value: Optional[str] = None

    @model_validator(mode="after")
    def _value_matches_action(self) -> "SecretUpdate":
        if self.action == SecretAction.SET:
            if not self.value or not self.value.strip():
                raise ValueError("A value is required to set a secret")
            self.value = self.value.strip()
        else:
            self.value = None
        return self

    @classmethod
    def from_wire(cls, raw: Any) -> Any:
        if raw is None or isinstance(raw, (cls, dict)):
            return raw
        if isinstance(raw, str):
            if REDACTION_MARKER in raw:
                return cls(action=SecretAction.KEEP)
            if not raw.strip():
                return cls(action=SecretAction.CLEAR)
            return cls(action=SecretAction.SET, value=raw)
        return raw

    def apply(self, current: Optional[str]) -> Optional[str]:
        if self.action == SecretAction.KEEP:
            return current
        if self.action == SecretAction.CLEAR:
            return None
        return self.value


def mask_secret(value: Optional[str]) -> Optional[str]:
    return REDACTION_MARKER if value else None


def _parse_instances(raw: Any) -> Any:
    # Form posts send the definitions as a JSON string
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("ignoring malformed instances payload: %.200s", raw)
            return None
    return raw


class InstanceDefinition(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=120)
    instance_key: Optional[str] = Field(default=None, max_length=100)
    api_key: Optional[SecretUpdate] = None

    @field_validator("api_key", mode="before")
    @classmethod
    def _coerce_api_key(cls, v: Any) -> Any:
        return SecretUpdate.from_wire(v)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


def _check_max_instances(v: Optional[int]) -> Optional[int]:
    if v is not None and v > settings.MAX_INSTANCES_PER_COMPANY:
        raise ValueError(f"max_instances cannot exceed {settings.MAX_INSTANCES_PER_COMPANY}")
    return v


def _check_operation_type(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    return normalize_operation_type(v)


class CompanyCreate(BaseModel):
    name: str = Field(max_length=200)

    cnpj: Optional[str] = Field(default=None, max_length=32)
    city: Optional[str] = Field(default=None, max_length=120)
    state: Optional[str] = Field(default=None, max_length=60)
    phone: Optional[str] = Field(default=None, max_length=32)

    operation_type: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=60)

    max_instances: int = Field(default=1, ge=1)
    whatsapp_limit: int = Field(default=1, ge=0)
    instagram_limit: int = Field(default=0, ge=0)
    messenger_limit: int = Field(default=0, ge=0)
    whatsapp_enabled: bool = True
    instagram_enabled: bool = False
    messenger_enabled: bool = False

    evolution_instance: Optional[str] = Field(default=None, max_length=100)
    evolution_apikey: Optional[str] = None
    evolution_url: Optional[str] = Field(default=None, max_length=500)

    instagram_app_id: Optional[str] = Field(default=None, max_length=100)
    instagram_app_secret: Optional[str] = None
    instagram_page_id: Optional[str] = Field(default=None, max_length=100)
    instagram_business_id: Optional[str] = Field(default=None, max_length=100)
    instagram_access_token: Optional[str] = None

    plan_id: Optional[int] = None
    due_date: Optional[date] = None

    instances: Optional[List[InstanceDefinition]] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Company name is required")
        return v

    @field_validator("operation_type")
    @classmethod
    def _normalize_operation_type(cls, v: Optional[str]) -> Optional[str]:
        return _check_operation_type(v)

    @field_validator("max_instances")
    @classmethod
    def _cap_max_instances(cls, v: int) -> int:
        return _check_max_instances(v)

    @field_validator("instances", mode="before")
    @classmethod
    def _decode_instances(cls, v: Any) -> Any:
        return _parse_instances(v)


class CompanyUpdate(BaseModel):
    """
    Partial update. Only fields present in the payload are applied
    (see model_fields_set); secrets use SecretUpdate instructions.
    """

    name: Optional[str] = Field(default=None, max_length=200)

    cnpj: Optional[str] = Field(default=None, max_length=32)
    city: Optional[str] = Field(default=None, max_length=120)
    state: Optional[str] = Field(default=None, max_length=60)
    phone: Optional[str] = Field(default=None, max_length=32)

    operation_type: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=60)

    max_instances: Optional[int] = Field(default=None, ge=1)
    whatsapp_limit: Optional[int] = Field(default=None, ge=0)
    instagram_limit: Optional[int] = Field(default=None, ge=0)
    messenger_limit: Optional[int] = Field(default=None, ge=0)
    whatsapp_enabled: Optional[bool] = None
    instagram_enabled: Optional[bool] = None
    messenger_enabled: Optional[bool] = None

    evolution_instance: Optional[str] = Field(default=None, max_length=100)
    evolution_apikey: Optional[SecretUpdate] = None
    evolution_url: Optional[str] = Field(default=None, max_length=500)

    instagram_app_id: Optional[str] = Field(default=None, max_length=100)
    instagram_app_secret: Optional[SecretUpdate] = None
    instagram_page_id: Optional[str] = Field(default=None, max_length=100)
    instagram_business_id: Optional[str] = Field(default=None, max_length=100)
    instagram_access_token: Optional[SecretUpdate] = None

    plan_id: Optional[int] = None
    due_date: Optional[date] = None

    instances: Optional[List[InstanceDefinition]] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("Company name cannot be blank")
        return v

    # Validators only see submitted values: these may be omitted, never null.
    @field_validator(
        "name",
        "max_instances",
        "whatsapp_limit",
        "instagram_limit",
        "messenger_limit",
        "whatsapp_enabled",
        "messenger_enabled",
    )
    @classmethod
    def _not_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Field cannot be null; omit it to keep the stored value")
        return v

    @field_validator("operation_type")
    @classmethod
    def _normalize_operation_type(cls, v: Optional[str]) -> Optional[str]:
        return _check_operation_type(v)

    @field_validator("max_instances")
    @classmethod
    def _cap_max_instances(cls, v: Optional[int]) -> Optional[int]:
        return _check_max_instances(v)

    @field_validator("evolution_apikey", "instagram_app_secret", "instagram_access_token", mode="before")
    @classmethod
    def _coerce_secret(cls, v: Any) -> Any:
        return SecretUpdate.from_wire(v)

    @field_validator("instances", mode="before")
    @classmethod
    def _decode_instances(cls, v: Any) -> Any:
        return _parse_instances(v)


class CompanyInstanceOut(BaseModel):
    id: int
    company_id: int
    name: Optional[str] = None
    instance_key: str
    api_key: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_serializer("api_key")
    def _mask_api_key(self, v: Optional[str]) -> Optional[str]:
        return mask_secret(v)


class CompanyInstanceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    instance_key: Optional[str] = Field(default=None, max_length=100)
    api_key: Optional[SecretUpdate] = None

    @field_validator("api_key", mode="before")
    @classmethod
    def _coerce_api_key(cls, v: Any) -> Any:
        return SecretUpdate.from_wire(v)


class CompanyOut(BaseModel):
    id: int
    name: str
    cnpj: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    phone: Optional[str] = None

    operation_type: str
    category: Optional[str] = None
    operational_profile: str

    max_instances: int
    whatsapp_limit: int
    instagram_limit: int
    messenger_limit: int
    whatsapp_enabled: bool
    instagram_enabled: bool
    messenger_enabled: bool

    evolution_instance: Optional[str] = None
    evolution_apikey: Optional[str] = None
    evolution_url: Optional[str] = None

    instagram_app_id: Optional[str] = None
    instagram_app_secret: Optional[str] = None
    instagram_page_id: Optional[str] = None
    instagram_business_id: Optional[str] = None
    instagram_access_token: Optional[str] = None
    instagram_status: str

    plan_id: Optional[int] = None
    due_date: Optional[date] = None
    seed_completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    instances: List[CompanyInstanceOut] = []

    model_config = {"from_attributes": True}

    @field_serializer("evolution_apikey", "instagram_app_secret", "instagram_access_token")
    def _mask_secrets(self, v: Optional[str]) -> Optional[str]:
        return mask_secret(v)


class CompanyPurgeOut(BaseModel):
    message: str
    company_id: int
    deleted_rows: dict[str, int]
