# app/core/instance_keys.py
from __future__ import annotations

import random
import re
from typing import Optional

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9_-]")


def sanitize_instance_key(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a routing key for the gateway: lowercase, whitespace runs become
    underscores, anything outside [a-z0-9_-] is dropped. Returns None when
    nothing usable is left.
    """
    if raw is None:
        return None

    key = _WHITESPACE.sub("_", str(raw).strip().lower())
    key = _DISALLOWED.sub("", key)
    return key or None


def derive_retry_key(key: str, company_id: int) -> str:
    suffix = random.randint(1000, 9999)
    return sanitize_instance_key(f"{key}_{company_id}_{suffix}") or f"{company_id}_{suffix}"
