# app/core/errors.py
from __future__ import annotations

from typing import Any, Optional


class LifecycleError(Exception):
    """Base for domain errors raised by the tenant lifecycle core."""

    code = "LIFECYCLE_ERROR"

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class InstanceKeyConflict(LifecycleError):
    code = "INSTANCE_KEY_CONFLICT"

    def __init__(self, instance_key: str):
        self.instance_key = instance_key
        super().__init__(f"Instance key '{instance_key}' is already in use by another company.")

    def to_detail(self) -> dict[str, Any]:
        return {**super().to_detail(), "instance_key": self.instance_key}


class InvalidInstanceDefinition(LifecycleError):
    code = "INVALID_INSTANCE_DEFINITION"

    def __init__(self, message: str, *, instance_key: Optional[str] = None, instance_id: Optional[int] = None):
        self.instance_key = instance_key
        self.instance_id = instance_id
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        if self.instance_key is not None:
            detail["instance_key"] = self.instance_key
        if self.instance_id is not None:
            detail["instance_id"] = self.instance_id
        return detail


class TenantPurgeError(LifecycleError):
    code = "TENANT_PURGE_FAILED"

    def __init__(self, table: str, constraint: Optional[str], details: str):
        self.table = table
        self.constraint = constraint
        self.details = details
        super().__init__(f"Failed to purge table '{table}'")

    def to_detail(self) -> dict[str, Any]:
        return {
            **super().to_detail(),
            "table": self.table,
            "constraint": self.constraint,
            "details": self.details,
        }
