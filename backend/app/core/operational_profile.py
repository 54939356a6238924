# app/core/operational_profile.py
from __future__ import annotations

import enum


class OperationType(str, enum.Enum):
    CLIENTES = "clientes"
    PACIENTES = "pacientes"
    LAVAJATO = "lavajato"
    RESTAURANTE = "restaurante"
    LOJA = "loja"
    MOTORISTAS = "motoristas"


class OperationalProfile(str, enum.Enum):
    GENERIC = "GENERIC"
    CLINICA = "CLINICA"
    LOJA = "LOJA"
    RESTAURANTE = "RESTAURANTE"
    LAVAJATO = "LAVAJATO"
    TRANSPORTE = "TRANSPORTE"


DEFAULT_OPERATION_TYPE = OperationType.CLIENTES.value

# English names used by the admin UI and older integrations.
_OPERATION_TYPE_ALIASES: dict[str, str] = {
    "clients": OperationType.CLIENTES.value,
    "patients": OperationType.PACIENTES.value,
    "car-wash": OperationType.LAVAJATO.value,
    "carwash": OperationType.LAVAJATO.value,
    "restaurant": OperationType.RESTAURANTE.value,
    "retail": OperationType.LOJA.value,
    "drivers": OperationType.MOTORISTAS.value,
}

# Order matters: the first profile whose triggers match wins.
_PROFILE_PRIORITY: tuple[tuple[OperationalProfile, frozenset[str], frozenset[str]], ...] = (
    (OperationalProfile.CLINICA, frozenset({"pacientes"}), frozenset({"clinica"})),
    (OperationalProfile.LOJA, frozenset({"loja"}), frozenset({"loja"})),
    (OperationalProfile.RESTAURANTE, frozenset({"restaurante"}), frozenset({"restaurante"})),
    (OperationalProfile.LAVAJATO, frozenset({"lavajato"}), frozenset({"lavajato"})),
    (OperationalProfile.TRANSPORTE, frozenset({"motoristas"}), frozenset({"transporte"})),
)


def normalize_operation_type(value: str | None) -> str | None:
    """
    Returns the stored form of an operation type, or None when empty.
    Raises ValueError for values outside the known set.
    """
    if value is None:
        return None
    v = value.strip().lower()
    if not v:
        return None
    v = _OPERATION_TYPE_ALIASES.get(v, v)
    if v not in {t.value for t in OperationType}:
        allowed = sorted({t.value for t in OperationType} | set(_OPERATION_TYPE_ALIASES))
        raise ValueError(f"operation_type must be one of {allowed}")
    return v


def derive_operational_profile(operation_type: str | None, category: str | None) -> str:
    op = (operation_type or "").strip().lower()
    op = _OPERATION_TYPE_ALIASES.get(op, op)
    cat = (category or "").strip().lower()

    for profile, op_triggers, category_triggers in _PROFILE_PRIORITY:
        if op in op_triggers or cat in category_triggers:
            return profile.value
    return OperationalProfile.GENERIC.value
