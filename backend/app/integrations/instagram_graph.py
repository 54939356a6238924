"""
HTTP client for the Instagram / Facebook Graph API.

Only used to prove that a submitted access token works and can see the
configured page. Every failure (HTTP error, timeout, network) is reported as
an invalid result, never raised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CredentialCheck:
    ok: bool
    reason: Optional[str] = None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return f"HTTP {response.status_code}"


class InstagramGraphClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.GRAPH_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GRAPH_API_TIMEOUT_SECONDS
        self.transport = transport

    async def validate_credentials(self, access_token: str, page_id: str) -> CredentialCheck:
        """
        Two calls: the token owner (`/me`) and the page (`/{page_id}`).
        Both must return 2xx for the credentials to be valid.
        """
        params = {"fields": "id,name", "access_token": access_token}

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                me = await client.get("/me", params=params)
                if not me.is_success:
                    return CredentialCheck(ok=False, reason=_error_message(me))

                page = await client.get(f"/{page_id}", params=params)
                if not page.is_success:
                    return CredentialCheck(ok=False, reason=_error_message(page))

                return CredentialCheck(ok=True)

        except httpx.TimeoutException:
            logger.warning("graph api timeout after %ss page_id=%s", self.timeout, page_id)
            return CredentialCheck(ok=False, reason=f"timeout after {self.timeout}s")

        except httpx.HTTPError as exc:
            logger.warning("graph api request error page_id=%s: %s", page_id, exc)
            return CredentialCheck(ok=False, reason=str(exc) or exc.__class__.__name__)


def get_instagram_graph_client() -> InstagramGraphClient:
    return InstagramGraphClient()
