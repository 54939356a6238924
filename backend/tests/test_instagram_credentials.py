# tests/test_instagram_credentials.py
from __future__ import annotations

import httpx
import pytest

from app.core.instagram_channel import InstagramStatus, resolve_instagram_channel
from app.integrations.instagram_graph import InstagramGraphClient
from app.models.company import Company
from app.schemas.company import SecretAction, SecretUpdate

from conftest import FakeGraph, create_company

GOOD_TOKEN = "EAAGood"
PAGE_ID = "1122334455"


def graph_client(graph: FakeGraph) -> InstagramGraphClient:
    return InstagramGraphClient(
        base_url="https://graph.test/v18.0",
        timeout=1.0,
        transport=httpx.MockTransport(graph.handler),
    )


async def load_company(sessionmaker, company_id: int) -> Company:
    async with sessionmaker() as s:
        return await s.get(Company, company_id)


# ---------------------------------------------------------
# Graph client
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_validate_credentials_checks_token_then_page(graph):
    graph.valid_tokens.add(GOOD_TOKEN)
    graph.pages.add(PAGE_ID)

    check = await graph_client(graph).validate_credentials(GOOD_TOKEN, PAGE_ID)
    assert check.ok
    assert check.reason is None
    assert graph.calls == ["/v18.0/me", f"/v18.0/{PAGE_ID}"]


@pytest.mark.asyncio
async def test_validate_credentials_reports_graph_error_message(graph):
    check = await graph_client(graph).validate_credentials("EAABad", PAGE_ID)
    assert not check.ok
    assert check.reason == "Invalid OAuth access token."
    # page is not queried once the token is rejected
    assert len(graph.calls) == 1


@pytest.mark.asyncio
async def test_validate_credentials_timeout_is_not_raised(graph):
    graph.timeout = True
    check = await graph_client(graph).validate_credentials(GOOD_TOKEN, PAGE_ID)
    assert not check.ok
    assert "timeout" in check.reason


# ---------------------------------------------------------
# State transitions
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_resolve_keep_preserves_stored_state(graph):
    state = await resolve_instagram_channel(
        stored_token="stored",
        stored_status="ATIVO",
        stored_enabled=True,
        token_update=SecretUpdate(action=SecretAction.KEEP),
        page_id=PAGE_ID,
        enabled_submitted=None,
        client=graph_client(graph),
    )
    assert (state.access_token, state.status, state.enabled) == ("stored", "ATIVO", True)
    assert graph.calls == []


@pytest.mark.asyncio
async def test_resolve_clear_deactivates(graph):
    state = await resolve_instagram_channel(
        stored_token="stored",
        stored_status="ATIVO",
        stored_enabled=True,
        token_update=SecretUpdate(action=SecretAction.CLEAR),
        page_id=PAGE_ID,
        enabled_submitted=True,
        client=graph_client(graph),
    )
    assert state.access_token is None
    assert state.status == InstagramStatus.INATIVO.value
    assert state.enabled is False


@pytest.mark.asyncio
async def test_resolve_set_without_page_keeps_status(graph):
    state = await resolve_instagram_channel(
        stored_token=None,
        stored_status="INATIVO",
        stored_enabled=False,
        token_update=SecretUpdate(action=SecretAction.SET, value="EAANew"),
        page_id=None,
        enabled_submitted=None,
        client=graph_client(graph),
    )
    assert state.access_token == "EAANew"
    assert state.status == "INATIVO"
    assert graph.calls == []


@pytest.mark.asyncio
async def test_resolve_rejected_token_keeps_submitted_enabled_flag(graph):
    state = await resolve_instagram_channel(
        stored_token=None,
        stored_status="INATIVO",
        stored_enabled=False,
        token_update=SecretUpdate(action=SecretAction.SET, value="EAABad"),
        page_id=PAGE_ID,
        enabled_submitted=True,
        client=graph_client(graph),
    )
    assert state.access_token == "EAABad"
    assert state.status == InstagramStatus.ERRO.value
    assert state.enabled is True
    assert state.error == "Invalid OAuth access token."


# ---------------------------------------------------------
# Through the API
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_update_with_valid_token_activates_channel(client, db, graph, operator_headers, sessionmaker):
    graph.valid_tokens.add(GOOD_TOKEN)
    graph.pages.add(PAGE_ID)
    company = await create_company(db, "Insta Shop")

    resp = await client.patch(
        f"/api/v1/companies/{company.id}",
        headers=operator_headers,
        json={"instagram_page_id": PAGE_ID, "instagram_access_token": GOOD_TOKEN},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["instagram_status"] == "ATIVO"
    assert body["instagram_enabled"] is True
    assert body["instagram_access_token"] == "********"

    stored = await load_company(sessionmaker, company.id)
    assert stored.instagram_access_token == GOOD_TOKEN


@pytest.mark.asyncio
async def test_update_with_rejected_token_stores_error(client, db, graph, operator_headers, sessionmaker):
    company = await create_company(db, "Insta Broken", instagram_page_id=PAGE_ID)

    resp = await client.patch(
        f"/api/v1/companies/{company.id}",
        headers=operator_headers,
        json={"instagram_access_token": "EAABad", "instagram_enabled": False},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["instagram_status"] == "ERRO"
    assert resp.json()["instagram_enabled"] is False

    stored = await load_company(sessionmaker, company.id)
    assert stored.instagram_access_token == "EAABad"


@pytest.mark.asyncio
async def test_update_graph_timeout_marks_error(client, db, graph, operator_headers):
    graph.timeout = True
    company = await create_company(db, "Insta Slow", instagram_page_id=PAGE_ID)

    resp = await client.patch(
        f"/api/v1/companies/{company.id}",
        headers=operator_headers,
        json={"instagram_access_token": GOOD_TOKEN},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["instagram_status"] == "ERRO"


@pytest.mark.asyncio
async def test_update_empty_token_clears_channel(client, db, graph, operator_headers, sessionmaker):
    company = await create_company(
        db,
        "Insta Off",
        instagram_page_id=PAGE_ID,
        instagram_access_token=GOOD_TOKEN,
        instagram_status="ATIVO",
        instagram_enabled=True,
    )

    resp = await client.patch(
        f"/api/v1/companies/{company.id}",
        headers=operator_headers,
        json={"instagram_access_token": ""},
    )
    assert resp.status_code == 200, resp.text

    stored = await load_company(sessionmaker, company.id)
    assert stored.instagram_access_token is None
    assert stored.instagram_status == "INATIVO"
    assert stored.instagram_enabled is False
    assert graph.calls == []


@pytest.mark.asyncio
async def test_create_with_valid_token_activates_channel(client, graph, operator_headers):
    graph.valid_tokens.add(GOOD_TOKEN)
    graph.pages.add(PAGE_ID)

    resp = await client.post(
        "/api/v1/companies",
        headers=operator_headers,
        json={"name": "Insta New", "instagram_page_id": PAGE_ID, "instagram_access_token": GOOD_TOKEN},
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["instagram_status"] == "ATIVO"
    assert resp.json()["instagram_enabled"] is True
