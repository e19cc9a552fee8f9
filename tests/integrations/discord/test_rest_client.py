from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from assistant_bot.integrations.discord.errors import (
    DiscordAPIError,
    DiscordPermanentError,
    DiscordTransientError,
)
from assistant_bot.integrations.discord.rest import DiscordRestClient


async def _configure_mock_client(
    client: DiscordRestClient, transport: httpx.MockTransport
) -> None:
    await client._client.aclose()
    client._client = httpx.AsyncClient(
        base_url="https://discord.test/api/v10",
        transport=transport,
        timeout=10.0,
    )


def _client() -> DiscordRestClient:
    return DiscordRestClient(bot_token="abc123", base_url="https://discord.test/api/v10")


@pytest.fixture
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    monkeypatch.setattr("assistant_bot.integrations.discord.rest.asyncio.sleep", fake_sleep)
    return sleeps


@pytest.mark.anyio
async def test_discord_rest_client_sets_authorization_header() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["authorization"] = request.headers.get("Authorization")
        observed["path"] = request.url.path
        return httpx.Response(200, json={"url": "wss://gateway.discord.gg"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        payload = await client.get_gateway_bot()
    finally:
        await client.close()

    assert payload["url"] == "wss://gateway.discord.gg"
    assert observed["authorization"] == "Bot abc123"
    assert observed["path"] == "/api/v10/gateway/bot"


@pytest.mark.anyio
async def test_command_routes_global_and_guild() -> None:
    observed: list[tuple[str, str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(200, json=[{"id": "cmd-1"}])

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        updated = await client.bulk_overwrite_application_commands(
            application_id="app-1",
            commands=[{"name": "avatar"}],
        )
        await client.bulk_overwrite_application_commands(
            application_id="app-1",
            guild_id="guild-2",
            commands=[{"name": "purge"}],
        )
    finally:
        await client.close()

    assert updated == [{"id": "cmd-1"}]
    assert observed == [
        ("PUT", "/api/v10/applications/app-1/commands", [{"name": "avatar"}]),
        (
            "PUT",
            "/api/v10/applications/app-1/guilds/guild-2/commands",
            [{"name": "purge"}],
        ),
    ]


@pytest.mark.anyio
async def test_rate_limit_retry_after_retries_and_succeeds(no_sleep: list[float]) -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] < 3:
            return httpx.Response(429, headers={"Retry-After": "0.25"}, json={})
        return httpx.Response(200, json={"id": "msg-1"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        payload = await client.create_followup_message(
            application_id="app-1",
            interaction_token="tok",
            payload={"content": "hello"},
        )
    finally:
        await client.close()

    assert payload == {"id": "msg-1"}
    assert attempts["count"] == 3
    assert no_sleep == [0.25, 0.25]


@pytest.mark.anyio
async def test_rate_limit_without_retry_after_is_transient(no_sleep: list[float]) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordTransientError):
            await client.get_gateway_bot()
    finally:
        await client.close()

    assert no_sleep == []


@pytest.mark.anyio
async def test_server_errors_retry_then_raise_transient(no_sleep: list[float]) -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(502, text="bad gateway")

    client = DiscordRestClient(
        bot_token="abc123", base_url="https://discord.test/api/v10", max_retries=2
    )
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordTransientError):
            await client.get_gateway_bot()
    finally:
        await client.close()

    assert attempts["count"] == 3
    assert len(no_sleep) == 2


@pytest.mark.anyio
async def test_auth_failures_are_permanent_and_not_retried() -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(401, json={"message": "401: Unauthorized"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordPermanentError):
            await client.get_current_application()
    finally:
        await client.close()

    assert attempts["count"] == 1


@pytest.mark.anyio
async def test_client_errors_raise_api_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Unknown Message"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordAPIError) as excinfo:
            await client.delete_channel_message(channel_id="chan-1", message_id="m-1")
    finally:
        await client.close()

    assert not isinstance(excinfo.value, DiscordTransientError)
    assert "status=404" in str(excinfo.value)


@pytest.mark.anyio
async def test_get_channel_messages_clamps_limit() -> None:
    observed: list[tuple[str, str | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed.append((request.url.path, request.url.params.get("limit")))
        return httpx.Response(200, json=[{"id": "1"}, "junk"])

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        messages = await client.get_channel_messages(channel_id="chan-1", limit=500)
        await client.get_channel_messages(channel_id="chan-1", limit=0)
    finally:
        await client.close()

    assert messages == [{"id": "1"}]
    assert observed == [
        ("/api/v10/channels/chan-1/messages", "100"),
        ("/api/v10/channels/chan-1/messages", "1"),
    ]


@pytest.mark.anyio
async def test_bulk_delete_posts_message_ids() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["method"] = request.method
        observed["path"] = request.url.path
        observed["body"] = json.loads(request.content)
        return httpx.Response(204)

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        await client.bulk_delete_messages(channel_id="chan-1", message_ids=["1", "4"])
    finally:
        await client.close()

    assert observed == {
        "method": "POST",
        "path": "/api/v10/channels/chan-1/messages/bulk-delete",
        "body": {"messages": ["1", "4"]},
    }


@pytest.mark.anyio
async def test_bulk_delete_requires_two_ids() -> None:
    client = _client()
    try:
        with pytest.raises(ValueError):
            await client.bulk_delete_messages(channel_id="chan-1", message_ids=["1"])
    finally:
        await client.close()


@pytest.mark.anyio
async def test_interaction_callback_and_single_delete_paths() -> None:
    observed: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed.append((request.method, request.url.path))
        return httpx.Response(204)

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        await client.create_interaction_response(
            interaction_id="int-1",
            interaction_token="tok",
            payload={"type": 4, "data": {"content": "hi"}},
        )
        await client.delete_channel_message(channel_id="chan-1", message_id="m-9")
    finally:
        await client.close()

    assert observed == [
        ("POST", "/api/v10/interactions/int-1/tok/callback"),
        ("DELETE", "/api/v10/channels/chan-1/messages/m-9"),
    ]


@pytest.mark.anyio
async def test_followup_with_attachment_sends_multipart() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["path"] = request.url.path
        observed["content_type"] = request.headers.get("Content-Type", "")
        observed["body"] = request.read()
        return httpx.Response(200, json={"id": "msg-2"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        payload = await client.create_followup_message_with_attachment(
            application_id="app-1",
            interaction_token="tok",
            data=b"PNGDATA",
            filename="abc.png",
        )
    finally:
        await client.close()

    assert payload == {"id": "msg-2"}
    assert observed["path"] == "/api/v10/webhooks/app-1/tok"
    assert observed["content_type"].startswith("multipart/form-data")
    assert b'filename="abc.png"' in observed["body"]
    assert b"PNGDATA" in observed["body"]


@pytest.mark.anyio
async def test_download_wraps_http_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("ok.png"):
            return httpx.Response(200, content=b"bytes")
        return httpx.Response(404)

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        assert await client.download("https://cdn.discord.test/ok.png") == b"bytes"
        with pytest.raises(DiscordTransientError):
            await client.download("https://cdn.discord.test/missing.png")
    finally:
        await client.close()
