# app/core/instance_status.py
from __future__ import annotations

import enum
import logging
from typing import Optional, Sequence

from app.core.config import settings
from app.integrations.evolution import EvolutionGateway, GatewayConfig, GatewayError
from app.models.company import Company
from app.models.company_instance import CompanyInstance

logger = logging.getLogger(__name__)

# Instance keys shorter than this are placeholders, not real gateway keys
MIN_INSTANCE_API_KEY_LENGTH = 11


class InstanceStatus(str, enum.Enum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"


_CONNECTED_STATES = frozenset({"open", "connected", "online"})
_CONNECTING_STATES = frozenset({"connecting", "pairing"})


def normalize_connection_state(raw: Optional[str]) -> str:
    state = (raw or "").strip().lower()
    if state in _CONNECTED_STATES:
        return InstanceStatus.CONNECTED.value
    if state in _CONNECTING_STATES:
        return InstanceStatus.CONNECTING.value
    return InstanceStatus.DISCONNECTED.value


def resolve_gateway_config(instance: CompanyInstance, company: Company) -> GatewayConfig:
    url = (company.evolution_url or "").strip() or settings.EVOLUTION_API_URL

    # first key long enough wins: instance, company, then the global default
    api_key = settings.EVOLUTION_API_KEY
    for candidate in (instance.api_key, company.evolution_apikey):
        candidate = (candidate or "").strip()
        if len(candidate) >= MIN_INSTANCE_API_KEY_LENGTH:
            api_key = candidate
            break

    return GatewayConfig(url=url, api_key=api_key)


async def sync_instance_statuses(
    company: Company,
    instances: Sequence[CompanyInstance],
    gateway: EvolutionGateway,
) -> int:
    """
    Refreshes each instance's status from the gateway, one at a time.
    Only changed rows are touched; a failing instance is logged and skipped.
    Returns the number of instances whose status changed (caller commits).
    """
    changed = 0
    for inst in instances:
        config = resolve_gateway_config(inst, company)
        try:
            result = await gateway.connection_state(config, inst.instance_key)
        except GatewayError as exc:
            logger.warning(
                "status sync failed company_id=%s instance_id=%s key=%s: %s",
                company.id,
                inst.id,
                inst.instance_key,
                exc,
            )
            continue

        status = normalize_connection_state(result.state) if result.found else InstanceStatus.DISCONNECTED.value
        if status != inst.status:
            logger.info(
                "instance status changed company_id=%s instance_id=%s %s -> %s",
                company.id,
                inst.id,
                inst.status,
                status,
            )
            inst.status = status
            changed += 1

    return changed
