"""
NodeBase Backend: Render Pipeline Tests
========================================

What we test (server prefetch → dehydrate → HTML → client hydrate → read):
    ✅ Guarded pages redirect before any procedure runs
    ✅ N users → N rendered records, N records in the payload, and the
       first client paint needs no network request
    ✅ Empty store → empty list, no records rendered
    ✅ Store failure during prefetch → HTML still emitted with the
       fallback; the client read fails into the error boundary
    ✅ /dashboard prints the Direct Caller result
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from nodebase.exceptions import RemoteProcedureError, StoreError
from nodebase.frontend import ErrorBoundary, HydratedPage, UsersView, load_dehydrated_state
from nodebase.rpc.client import RPCClient


def _offline_rpc(settings):
    """RPC client whose transport records requests and always fails."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(503, json={"error": {"code": "OFFLINE", "message": "offline"}})

    http = AsyncClient(transport=httpx.MockTransport(handler), base_url="http://offline")
    return RPCClient(settings=settings, http_client=http), seen


def _users_entry(state):
    return next(q for q in state["queries"] if q["query_key"] == ["getUsers"])


class TestGuards:

    @pytest.mark.asyncio
    async def test_home_redirects_anonymous_without_calling_procedures(self, app, test_client):
        users = MagicMock()
        users.list_users = AsyncMock(return_value=[])
        app.state.user_service = users

        response = await test_client.get("/")

        assert response.status_code == 303
        assert response.headers["location"] == "/login"
        users.list_users.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dashboard_redirects_anonymous(self, test_client):
        response = await test_client.get("/dashboard")
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

    @pytest.mark.asyncio
    async def test_login_page_redirects_signed_in_user(self, signed_in_client):
        response = await signed_in_client.get("/login")
        assert response.status_code == 303
        assert response.headers["location"] == "/"


class TestHomePage:

    @pytest.mark.asyncio
    async def test_renders_users_and_embeds_payload(self, signed_in_client, create_users):
        await create_users(2)

        response = await signed_in_client.get("/")

        assert response.status_code == 200
        html = response.text
        assert html.count("<li data-user-id=") == 3
        assert 'data-count="3"' in html
        state = load_dehydrated_state(html)
        entry = _users_entry(state)
        assert entry["state"]["status"] == "success"
        assert len(entry["state"]["data"]) == 3
        assert "password_hash" not in entry["state"]["data"][0]

    @pytest.mark.asyncio
    async def test_first_client_paint_needs_no_network(self, signed_in_client, create_users, test_settings):
        await create_users(4)
        html = (await signed_in_client.get("/")).text
        rpc, seen = _offline_rpc(test_settings)

        page = HydratedPage.from_html(html, rpc, settings=test_settings)
        rendered = await ErrorBoundary().render(UsersView(page))

        assert seen == []
        assert rendered.count("<li data-user-id=") == 5
        assert "user5@example.com" in rendered

    @pytest.mark.asyncio
    async def test_empty_store_renders_no_records(self, app, signed_in_client):
        users = MagicMock()
        users.list_users = AsyncMock(return_value=[])
        app.state.user_service = users

        html = (await signed_in_client.get("/")).text

        assert "<li data-user-id=" not in html
        assert 'data-count="0"' in html
        assert _users_entry(load_dehydrated_state(html))["state"]["data"] == []

    @pytest.mark.asyncio
    async def test_store_failure_still_emits_html(self, app, signed_in_client, test_settings):
        failing = MagicMock()
        failing.list_users = AsyncMock(side_effect=StoreError(context={"operation": "list_users"}))
        app.state.user_service = failing

        response = await signed_in_client.get("/")

        assert response.status_code == 200
        assert "Loading..." in response.text
        assert load_dehydrated_state(response.text) == {"queries": []}

        # The client read goes to the bridge, fails, and lands in the boundary.
        http = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        async with RPCClient(settings=test_settings, http_client=http) as rpc:
            page = HydratedPage.from_html(response.text, rpc, settings=test_settings)
            boundary = ErrorBoundary(fallback=lambda error: "<p>fallback</p>")
            rendered = await boundary.render(UsersView(page))
        await http.aclose()

        assert rendered == "<p>fallback</p>"
        assert isinstance(boundary.error, RemoteProcedureError)
        assert boundary.error.status_code == 500


class TestDashboard:

    @pytest.mark.asyncio
    async def test_prints_direct_caller_json(self, signed_in_client, create_users):
        await create_users(1)

        response = await signed_in_client.get("/dashboard")

        assert response.status_code == 200
        assert "user1@example.com" in response.text
        assert "user2@example.com" in response.text
        assert "__NODEBASE_STATE__" not in response.text
