from unittest.mock import AsyncMock, MagicMock
import logging

import httpx
import pytest

from particle_cloud._client import HttpConfig, ParticleHttpClient
from particle_cloud._errors import ParticleAPIError


def test_httpconfig_initialization():
    cfg = HttpConfig(base_url="https://example.com", timeout_s=10.0)

    assert cfg.base_url == "https://example.com"
    assert cfg.timeout_s == 10.0
    assert cfg.transport is None
    assert cfg.async_transport is None


def make_client():
    cfg = HttpConfig(base_url="https://example.com", timeout_s=5.0)
    return ParticleHttpClient(config=cfg, access_token="secret-token")


def test_headers_without_accept():
    client = make_client()

    headers = client._headers()

    assert headers["Authorization"] == "Bearer secret-token"
    assert "Accept" not in headers


def test_headers_with_accept():
    client = make_client()

    headers = client._headers(accept="text/event-stream")

    assert headers["Authorization"] == "Bearer secret-token"
    assert headers["Accept"] == "text/event-stream"


def test_url_joins_relative_paths_and_keeps_absolute_urls():
    client = make_client()

    assert client._url("/v1/devices/events") == "https://example.com/v1/devices/events"
    assert client._url("https://other.example/v1/events") == "https://other.example/v1/events"


def test_raise_for_status_success():
    resp = httpx.Response(200, text="ok")

    # No debe lanzar excepción en rango 2xx.
    ParticleHttpClient.raise_for_status(resp)


def test_raise_for_status_error_raises():
    resp = httpx.Response(404, text="missing", headers={"content-type": "text/plain"})

    with pytest.raises(ParticleAPIError) as exc:
        ParticleHttpClient.raise_for_status(resp)

    assert exc.value.status_code == 404
    assert exc.value.message == "missing"
    assert "missing" in (exc.value.body or "")


def test_raise_for_status_handles_text_error():
    # Cubre la rama except al intentar leer resp.text en un error.

    class BadResp:
        status_code = 500
        headers: dict = {}

        @property
        def text(self):
            raise RuntimeError("broken .text")

    with pytest.raises(ParticleAPIError) as exc:
        ParticleHttpClient.raise_for_status(BadResp())

    assert exc.value.status_code == 500
    assert exc.value.body == ""


def test_stream_get_returns_stream_context_manager():
    client = make_client()
    mock_client = MagicMock()
    mock_stream = MagicMock()
    mock_client.stream.return_value = mock_stream
    client._client = mock_client

    cm = client.stream_get("/v1/devices/events")

    assert cm is mock_stream
    mock_client.stream.assert_called_once()
    args, kwargs = mock_client.stream.call_args
    assert args[0] == "GET"
    assert args[1] == "https://example.com/v1/devices/events"
    headers = kwargs["headers"]
    assert headers["Authorization"] == "Bearer secret-token"
    assert headers["Accept"] == "text/event-stream"
    # Streams de larga duración: sin read timeout.
    assert kwargs["timeout"].read is None
    assert kwargs["timeout"].connect == 5.0


def test_astream_get_returns_async_stream_context_manager():
    client = make_client()
    mock_ac = AsyncMock()
    mock_stream = MagicMock()
    # httpx.AsyncClient.stream es síncrono y devuelve un context manager asíncrono.
    mock_ac.stream = MagicMock(return_value=mock_stream)
    client._aclient = mock_ac

    cm = client.astream_get("/v1/events/temp")

    assert cm is mock_stream
    args, kwargs = mock_ac.stream.call_args
    assert args == ("GET", "https://example.com/v1/events/temp")
    assert kwargs["headers"]["Accept"] == "text/event-stream"
    assert kwargs["timeout"].read is None


def test_close_closes_underlying_client():
    client = make_client()
    mock_client = MagicMock()
    client._client = mock_client

    client.close()

    mock_client.close.assert_called_once()


@pytest.mark.asyncio
async def test_aclose_closes_underlying_async_client():
    client = make_client()
    mock_ac = AsyncMock()
    client._aclient = mock_ac

    await client.aclose()

    mock_ac.aclose.assert_awaited_once()


def test_transports_from_config_are_used():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text=":ok\n", headers={"content-type": "text/event-stream"})

    transport = httpx.MockTransport(handler)
    client = ParticleHttpClient(
        config=HttpConfig(base_url="https://example.com", transport=transport),
        access_token="secret-token",
    )

    with client.stream_get("/v1/devices/events") as r:
        body = r.read()

    assert body == b":ok\n"
    assert seen[0].headers["Authorization"] == "Bearer secret-token"
    client.close()


def test_debug_off_logs_nothing(monkeypatch, caplog):
    monkeypatch.delenv("PARTICLE_HTTP_DEBUG", raising=False)
    client = make_client()
    request_hook = client._client.event_hooks["request"][0]

    with caplog.at_level(logging.WARNING):
        request_hook(httpx.Request("GET", "https://example.com/v1/devices/events"))

    assert caplog.records == []


def test_log_request_redacts_authorization_debug_on(monkeypatch, caplog):
    # Activa el modo debug de HTTP para que se ejecuten los hooks de logging.
    monkeypatch.setenv("PARTICLE_HTTP_DEBUG", "1")
    client = make_client()

    request_hook = client._client.event_hooks["request"][0]

    request = httpx.Request(
        "GET",
        "https://example.com/v1/devices/events",
        headers={"Authorization": "Bearer secret-token", "X-Other": "1"},
    )

    with caplog.at_level(logging.WARNING):
        request_hook(request)

    messages = " ".join(rec.getMessage() for rec in caplog.records)
    assert "***REDACTED***" in messages
    assert "secret-token" not in messages


def test_log_response_sync_debug_on(monkeypatch, caplog):
    monkeypatch.setenv("PARTICLE_HTTP_DEBUG", "true")
    client = make_client()
    response_hook = client._client.event_hooks["response"][0]

    req = httpx.Request("GET", "https://example.com/v1/devices/events")

    resp_json = httpx.Response(401, request=req, text='{"error":"invalid_token"}', headers={"content-type": "application/json"})
    resp_stream = httpx.Response(200, request=req, text="", headers={"content-type": "text/event-stream"})

    with caplog.at_level(logging.WARNING):
        response_hook(resp_json)
        response_hook(resp_stream)

    messages = " ".join(rec.getMessage() for rec in caplog.records)
    assert "HTTPX RESPONSE" in messages
    assert "invalid_token" in messages
    assert "event-stream; not auto-logged" in messages


@pytest.mark.asyncio
async def test_log_request_and_response_async_debug_on(monkeypatch, caplog):
    monkeypatch.setenv("PARTICLE_HTTP_DEBUG", "yes")
    client = make_client()

    async_request_hook = client._aclient.event_hooks["request"][0]
    async_response_hook = client._aclient.event_hooks["response"][0]

    req = httpx.Request("GET", "https://example.com/v1/events", headers={"Authorization": "Bearer async-token"})
    resp_json = httpx.Response(500, request=req, text="async-fail", headers={"content-type": "text/plain"})
    resp_stream = httpx.Response(200, request=req, text="", headers={"content-type": "text/event-stream"})

    with caplog.at_level(logging.WARNING):
        await async_request_hook(req)
        await async_response_hook(resp_json)
        await async_response_hook(resp_stream)

    messages = " ".join(rec.getMessage() for rec in caplog.records)
    assert "HTTPX RESPONSE" in messages
    assert "async-fail" in messages
    assert "async-token" not in messages
