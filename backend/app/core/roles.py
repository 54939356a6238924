# app/core/roles.py

import enum


class UserRole(str, enum.Enum):
    SUPERADMIN = "SUPERADMIN"  # platform operator, sees every company
    ADMIN = "ADMIN"            # company administrator
    MANAGER = "MANAGER"
    USER = "USER"


PLATFORM_OPERATOR_ROLES = frozenset({UserRole.SUPERADMIN.value})


def normalize_role(role: str | None) -> str:
    return (role or "").strip().upper()


def is_platform_operator(user) -> bool:
    if user is None or not getattr(user, "is_active", True):
        return False
    return normalize_role(getattr(user, "role", None)) in PLATFORM_OPERATOR_ROLES
