"""
Tests for the command API.
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from miniorg_desktop.api import CommandContext, create_app
from miniorg_desktop.api.errors import api_error
from miniorg_desktop.api.routes.events import format_sse
from miniorg_desktop.auth import AuthorizationFlow, CredentialStore, OAuthCallbackPayload, SecretBackend
from miniorg_desktop.config import AppConfig, OAuthConfig
from miniorg_desktop.events import OAUTH_CODE_RECEIVED, OAUTH_ERROR, Event, EventBus
from miniorg_desktop.exceptions import CredentialStorageError, MiniOrgError, SyncError
from miniorg_desktop.sync import SyncScheduler

COMMAND_SECRET = "launch-secret"


class MemoryBackend(SecretBackend):
    """In-memory backend for API tests."""

    def __init__(self):
        self.value = None
        self.broken = False

    async def read_secret(self):
        if self.broken:
            raise CredentialStorageError("Secret Service unavailable")
        return self.value

    async def write_secret(self, value):
        if self.broken:
            raise CredentialStorageError("Secret Service unavailable")
        self.value = value

    async def delete_secret(self):
        self.value = None


def make_context(sync_error: str = None) -> CommandContext:
    bus = EventBus()
    sync_client = AsyncMock()
    if sync_error:
        sync_client.sync_calendar.side_effect = SyncError(sync_error)

    return CommandContext(
        config=AppConfig(api_url="https://api.example.com"),
        bus=bus,
        credentials=CredentialStore(MemoryBackend()),
        auth_flow=AuthorizationFlow(bus, OAuthConfig(client_id="cid", callback_timeout=5)),
        sync=SyncScheduler(sync_client, interval_seconds=3600),
        command_secret=COMMAND_SECRET,
    )


def make_client(ctx: CommandContext,
                base_url: str = "http://127.0.0.1:4599",
                secret: str = COMMAND_SECRET) -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=create_app(ctx))
    headers = {"Authorization": f"Bearer {secret}"} if secret else {}
    return httpx.AsyncClient(transport=transport, base_url=base_url, headers=headers)


class TestHealth:
    """Tests for the health endpoint."""

    @pytest.mark.asyncio
    async def test_health(self):
        async with make_client(make_context()) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["sync_running"] is False


class TestCommandSecurity:
    """Tests for host and secret checks on the command API."""

    @pytest.mark.asyncio
    async def test_foreign_host_is_rejected(self):
        async with make_client(make_context(), base_url="http://attacker.example.com") as client:
            health = await client.get("/health")
            token = await client.get("/api/v1/auth/token")

        assert health.status_code == 400
        assert token.status_code == 400

    @pytest.mark.asyncio
    async def test_localhost_name_is_accepted(self):
        async with make_client(make_context(), base_url="http://localhost:4599") as client:
            response = await client.get("/health")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_secret_is_401(self):
        ctx = make_context()
        await ctx.credentials.set("stored-token")

        async with make_client(ctx, secret=None) as client:
            token = await client.get("/api/v1/auth/token")
            trigger = await client.post("/api/v1/sync/trigger")

        assert token.status_code == 401
        assert token.json()["detail"] == {"code": "UNAUTHORIZED", "message": "Not authenticated"}
        assert trigger.status_code == 401
        ctx.sync.client.sync_calendar.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wrong_secret_is_401(self):
        async with make_client(make_context(), secret="guessed") as client:
            response = await client.get("/api/v1/sync/status")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_secret_in_query_parameter(self):
        async with make_client(make_context(), secret=None) as client:
            response = await client.get("/api/v1/sync/status", params={"token": COMMAND_SECRET})

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_health_needs_no_secret(self):
        async with make_client(make_context(), secret=None) as client:
            response = await client.get("/health")

        assert response.status_code == 200


class TestAuthRoutes:
    """Tests for /api/v1/auth."""

    @pytest.mark.asyncio
    async def test_logged_out_token_is_null(self):
        async with make_client(make_context()) as client:
            response = await client.get("/api/v1/auth/token")

        assert response.status_code == 200
        assert response.json() == {"token": None}

    @pytest.mark.asyncio
    async def test_set_get_clear_token(self):
        ctx = make_context()
        async with make_client(ctx) as client:
            put = await client.put(
                "/api/v1/auth/token", json={"token": "T1", "expires_at": 1700000000}
            )
            got = await client.get("/api/v1/auth/token")
            deleted = await client.delete("/api/v1/auth/token")
            deleted_again = await client.delete("/api/v1/auth/token")
            after = await client.get("/api/v1/auth/token")

        assert put.status_code == 200
        assert got.json() == {"token": {"token": "T1", "expires_at": 1700000000}}
        assert deleted.status_code == 200
        assert deleted_again.status_code == 200
        assert after.json() == {"token": None}

    @pytest.mark.asyncio
    async def test_storage_error_is_500(self):
        ctx = make_context()
        ctx.credentials.backend.broken = True

        async with make_client(ctx) as client:
            response = await client.get("/api/v1/auth/token")

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "CREDENTIAL_STORAGE_ERROR"
        assert "Secret Service unavailable" in response.json()["detail"]["message"]

    @pytest.mark.asyncio
    async def test_empty_token_is_rejected(self):
        async with make_client(make_context()) as client:
            response = await client.put("/api/v1/auth/token", json={"token": ""})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_authorize_starts_listener(self):
        ctx = make_context()
        try:
            async with make_client(ctx) as client:
                response = await client.post("/api/v1/auth/authorize")

            assert response.status_code == 200
            data = response.json()
            assert data["redirect_uri"].startswith("http://127.0.0.1:")
            assert data["redirect_uri"].endswith("/callback")
            assert "client_id=cid" in data["authorization_url"]
            assert len(ctx.auth_flow.active_listeners) == 1
        finally:
            await ctx.auth_flow.shutdown()

    @pytest.mark.asyncio
    async def test_logout_stops_sync_loop(self):
        ctx = make_context()
        await ctx.credentials.set("stored-token")
        try:
            async with make_client(ctx) as client:
                started = await client.post("/api/v1/sync/service")
                deleted = await client.delete("/api/v1/auth/token")

            assert started.json()["running"] is True
            assert deleted.status_code == 200
            assert ctx.sync.is_running is False
            assert await ctx.credentials.get() is None
        finally:
            ctx.sync.stop()

    @pytest.mark.asyncio
    async def test_validate_state(self):
        ctx = make_context()
        try:
            async with make_client(ctx) as client:
                authorize = await client.post("/api/v1/auth/authorize")
                state = authorize.json()["state"]
                first = await client.post("/api/v1/auth/validate-state", json={"state": state})
                second = await client.post("/api/v1/auth/validate-state", json={"state": state})

            assert first.json() == {
                "valid": True,
                "redirect_uri": authorize.json()["redirect_uri"],
            }
            assert second.json() == {"valid": False, "redirect_uri": None}
        finally:
            await ctx.auth_flow.shutdown()

    @pytest.mark.asyncio
    async def test_validate_unknown_state(self):
        async with make_client(make_context()) as client:
            response = await client.post("/api/v1/auth/validate-state", json={"state": "forged"})

        assert response.json() == {"valid": False, "redirect_uri": None}

    @pytest.mark.asyncio
    async def test_deep_link_publishes_code(self):
        ctx = make_context()
        received = []
        ctx.bus.listen(OAUTH_CODE_RECEIVED, received.append)

        async with make_client(ctx) as client:
            response = await client.post(
                "/api/v1/auth/deep-link", json={"url": "miniorg://callback?code=abc&state=xyz"}
            )

        assert response.json() == {"handled": True, "code": "abc", "state": "xyz", "error": None}
        assert received[0].payload == OAuthCallbackPayload(code="abc", state="xyz")

    @pytest.mark.asyncio
    async def test_deep_link_without_oauth_parameters(self):
        ctx = make_context()
        received = []
        ctx.bus.listen(EventBus.ALL, received.append)

        async with make_client(ctx) as client:
            response = await client.post("/api/v1/auth/deep-link", json={"url": "miniorg://today"})

        assert response.json()["handled"] is False
        assert received == []


class TestSyncRoutes:
    """Tests for /api/v1/sync."""

    @pytest.mark.asyncio
    async def test_trigger_requires_credential(self):
        async with make_client(make_context()) as client:
            response = await client.post("/api/v1/sync/trigger")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "NOT_AUTHENTICATED"

    @pytest.mark.asyncio
    async def test_trigger_uses_stored_credential_and_config(self):
        ctx = make_context()
        await ctx.credentials.set("stored-token")

        async with make_client(ctx) as client:
            response = await client.post("/api/v1/sync/trigger")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"]["last_sync"] is not None
        ctx.sync.client.sync_calendar.assert_awaited_once_with(
            "https://api.example.com", "stored-token"
        )

    @pytest.mark.asyncio
    async def test_trigger_with_explicit_target(self):
        ctx = make_context()

        async with make_client(ctx) as client:
            response = await client.post(
                "/api/v1/sync/trigger",
                json={"api_url": "https://other.example.com", "auth_token": "explicit"},
            )

        assert response.status_code == 200
        ctx.sync.client.sync_calendar.assert_awaited_once_with(
            "https://other.example.com", "explicit"
        )

    @pytest.mark.asyncio
    async def test_trigger_failure_is_502(self):
        ctx = make_context(sync_error="Sync failed: boom")

        async with make_client(ctx) as client:
            response = await client.post("/api/v1/sync/trigger", json={"auth_token": "t"})
            status = await client.get("/api/v1/sync/status")

        assert response.status_code == 502
        assert response.json()["detail"] == {"code": "SYNC_FAILED", "message": "Sync failed: boom"}
        assert status.json()["error"] == "Sync failed: boom"
        assert status.json()["is_syncing"] is False

    @pytest.mark.asyncio
    async def test_trigger_while_in_progress_is_409(self):
        ctx = make_context()
        assert await ctx.sync._begin_attempt()

        async with make_client(ctx) as client:
            response = await client.post("/api/v1/sync/trigger", json={"auth_token": "t"})

        assert response.status_code == 409
        assert response.json()["detail"]["message"] == "Sync already in progress"
        ctx.sync.client.sync_calendar.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status(self):
        async with make_client(make_context()) as client:
            response = await client.get("/api/v1/sync/status")

        assert response.json() == {"is_syncing": False, "last_sync": None, "error": None}

    @pytest.mark.asyncio
    async def test_start_service(self):
        ctx = make_context()
        try:
            async with make_client(ctx) as client:
                first = await client.post("/api/v1/sync/service", json={"auth_token": "t"})
                second = await client.post("/api/v1/sync/service", json={"auth_token": "t"})

            assert first.status_code == 200
            assert first.json()["running"] is True
            assert first.json()["interval_seconds"] == 3600
            assert second.json()["job_id"] == first.json()["job_id"]
        finally:
            ctx.sync.stop()


class TestEventStream:
    """Tests for server-sent event formatting."""

    def test_format_code_event(self):
        message = format_sse(Event(OAUTH_CODE_RECEIVED, OAuthCallbackPayload(code="abc")))

        lines = message.split("\n")
        assert lines[0] == f"event: {OAUTH_CODE_RECEIVED}"
        assert json.loads(lines[1][len("data: "):]) == {"code": "abc", "state": None}
        assert message.endswith("\n\n")

    def test_format_error_event(self):
        message = format_sse(Event(OAUTH_ERROR, "denied"))
        assert message == 'event: oauth-error\ndata: "denied"\n\n'


class TestApiError:
    """Tests for mapping errors to HTTP responses."""

    def test_carries_code_and_message(self):
        error = api_error(409, MiniOrgError("Busy", error_code="BUSY"))

        assert error.status_code == 409
        assert error.detail == {"code": "BUSY", "message": "Busy"}
