# app/core/instagram_channel.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from app.integrations.instagram_graph import InstagramGraphClient
from app.schemas.company import SecretAction, SecretUpdate

logger = logging.getLogger(__name__)


class InstagramStatus(str, enum.Enum):
    ATIVO = "ATIVO"      # token and page verified
    INATIVO = "INATIVO"  # no credentials
    ERRO = "ERRO"        # last verification failed


@dataclass
class InstagramChannelState:
    access_token: Optional[str]
    status: str
    enabled: bool
    error: Optional[str] = None


async def resolve_instagram_channel(
    *,
    stored_token: Optional[str],
    stored_status: Optional[str],
    stored_enabled: bool,
    token_update: Optional[SecretUpdate],
    page_id: Optional[str],
    enabled_submitted: Optional[bool],
    client: InstagramGraphClient,
) -> InstagramChannelState:
    """
    Computes the token/status/enabled triple for a company write.

    keep / not submitted -> stored token and status preserved
    clear                -> no token, INATIVO, disabled
    set + page id        -> verified against the Graph API: ATIVO and enabled,
                            or ERRO with the enabled flag as submitted/stored
    set without page id  -> token stored, status unchanged
    """
    status = stored_status or InstagramStatus.INATIVO.value
    enabled = stored_enabled if enabled_submitted is None else enabled_submitted

    if token_update is None or token_update.action == SecretAction.KEEP:
        return InstagramChannelState(access_token=stored_token, status=status, enabled=enabled)

    if token_update.action == SecretAction.CLEAR:
        return InstagramChannelState(access_token=None, status=InstagramStatus.INATIVO.value, enabled=False)

    token = token_update.value
    if not page_id:
        return InstagramChannelState(access_token=token, status=status, enabled=enabled)

    check = await client.validate_credentials(token, page_id)
    if check.ok:
        logger.info("instagram credentials verified page_id=%s", page_id)
        return InstagramChannelState(access_token=token, status=InstagramStatus.ATIVO.value, enabled=True)

    logger.warning("instagram credentials rejected page_id=%s reason=%s", page_id, check.reason)
    return InstagramChannelState(
        access_token=token,
        status=InstagramStatus.ERRO.value,
        enabled=enabled,
        error=check.reason,
    )
