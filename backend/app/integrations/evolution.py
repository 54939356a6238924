"""
HTTP client for the Evolution WhatsApp gateway.

Only the connection-state endpoint is used here; message traffic goes
through other services.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Connection-state lookup failed (network or non-2xx other than 404)."""

    def __init__(self, instance_key: str, message: str, status_code: Optional[int] = None):
        self.instance_key = instance_key
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class GatewayConfig:
    url: str
    api_key: str


@dataclass
class ConnectionState:
    # Raw state string from the gateway, None when it has no record of the key
    state: Optional[str]
    found: bool = True


class EvolutionGateway:
    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout or settings.EVOLUTION_TIMEOUT_SECONDS
        self.transport = transport

    async def connection_state(self, config: GatewayConfig, instance_key: str) -> ConnectionState:
        url = f"{config.url.rstrip('/')}/instance/connectionState/{instance_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers={"apikey": config.api_key})
        except httpx.TimeoutException as exc:
            raise GatewayError(instance_key, f"timeout after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(instance_key, str(exc) or exc.__class__.__name__) from exc

        if response.status_code == 404:
            return ConnectionState(state=None, found=False)

        if not response.is_success:
            raise GatewayError(
                instance_key,
                f"gateway returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError(instance_key, "gateway returned a non-JSON body") from exc

        state = None
        if isinstance(body, dict):
            instance = body.get("instance")
            if isinstance(instance, dict):
                state = instance.get("state")
            if state is None:
                state = body.get("state")

        return ConnectionState(state=str(state) if state is not None else None)


def get_evolution_gateway() -> EvolutionGateway:
    return EvolutionGateway()
