# tests/test_instance_keys.py
from __future__ import annotations

import re

import pytest

from app.core.instance_keys import derive_retry_key, sanitize_instance_key
from app.core.operational_profile import derive_operational_profile, normalize_operation_type
from app.schemas.company import REDACTION_MARKER, SecretAction, SecretUpdate


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("MyStore", "mystore"),
        ("  Loja Centro  ", "loja_centro"),
        ("loja\t\tcentro 2", "loja_centro_2"),
        ("ação-01!", "ao-01"),
        ("***", None),
        ("   ", None),
        (None, None),
    ],
)
def test_sanitize_instance_key(raw, expected):
    assert sanitize_instance_key(raw) == expected


def test_derive_retry_key_embeds_company_and_suffix():
    key = derive_retry_key("mystore", 42)
    assert re.fullmatch(r"mystore_42_\d{4}", key)
    assert 1000 <= int(key.rsplit("_", 1)[1]) <= 9999


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("clientes", "clientes"),
        ("Patients", "pacientes"),
        ("car-wash", "lavajato"),
        ("retail", "loja"),
        ("drivers", "motoristas"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_operation_type(raw, expected):
    assert normalize_operation_type(raw) == expected


def test_normalize_operation_type_rejects_unknown():
    with pytest.raises(ValueError):
        normalize_operation_type("spaceships")


@pytest.mark.parametrize(
    "operation_type, category, expected",
    [
        ("pacientes", None, "CLINICA"),
        ("clientes", "clinica", "CLINICA"),
        ("loja", None, "LOJA"),
        ("restaurante", None, "RESTAURANTE"),
        ("lavajato", None, "LAVAJATO"),
        ("motoristas", None, "TRANSPORTE"),
        ("clientes", "transporte", "TRANSPORTE"),
        ("clientes", "academia", "GENERIC"),
        # patients outranks a retail category
        ("pacientes", "loja", "CLINICA"),
    ],
)
def test_derive_operational_profile(operation_type, category, expected):
    assert derive_operational_profile(operation_type, category) == expected


def test_secret_update_from_wire():
    assert SecretUpdate.from_wire(f"abc{REDACTION_MARKER}").action == SecretAction.KEEP
    assert SecretUpdate.from_wire(REDACTION_MARKER).apply("stored") == "stored"
    assert SecretUpdate.from_wire("").apply("stored") is None
    assert SecretUpdate.from_wire("  new-token ").apply("stored") == "new-token"
    assert SecretUpdate.from_wire(None) is None


def test_secret_update_set_requires_value():
    with pytest.raises(ValueError):
        SecretUpdate(action=SecretAction.SET, value="   ")
