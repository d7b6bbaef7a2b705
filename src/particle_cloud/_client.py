from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from particle_cloud._errors import ParticleAPIError

ENV_HTTP_DEBUG = "PARTICLE_HTTP_DEBUG"


@dataclass(frozen=True, slots=True)
class HttpConfig:
    base_url: str
    timeout_s: float = 120.0
    # Transportes opcionales (proxies, TLS propio, httpx.MockTransport en tests)
    transport: httpx.BaseTransport | None = None
    async_transport: httpx.AsyncBaseTransport | None = None


def _parse_error_response(
    status_code: int,
    body_text: str,
    content_type: str,
) -> ParticleAPIError:
    """
    Parsea una respuesta de error del API de Particle.

    Si el body no es JSON o no matchea ninguno de los envelopes conocidos,
    retorna ParticleAPIError con campos estructurados en None.
    """
    message = "HTTP error"
    error_code: str | None = None
    error_description: str | None = None
    info: str | None = None

    if "application/json" not in content_type.lower():
        if body_text and body_text.strip():
            message = body_text
        return ParticleAPIError(status_code=status_code, message=message, body=body_text)

    try:
        data = json.loads(body_text) if body_text else {}
    except (json.JSONDecodeError, ValueError):
        if body_text and body_text.strip():
            message = body_text
        return ParticleAPIError(status_code=status_code, message=message, body=body_text)

    if not isinstance(data, dict):
        return ParticleAPIError(
            status_code=status_code,
            message=str(data) if data else message,
            body=body_text,
        )

    # OAuth: {"error": "invalid_token", "error_description": "..."}
    # Resto: {"ok": false, "error": "Permission Denied", "info": "..."}
    err = data.get("error")
    if isinstance(err, str) and err.strip():
        error_code = err.strip()
        message = error_code

    desc = data.get("error_description")
    if isinstance(desc, str) and desc.strip():
        error_description = desc.strip()
        message = error_description

    inf = data.get("info")
    if isinstance(inf, str) and inf.strip():
        info = inf.strip()
        if error_description is None:
            message = f"{message}: {info}" if error_code else info

    if error_code is None and error_description is None and info is None:
        msg = data.get("message")
        if isinstance(msg, str) and msg.strip():
            message = msg.strip()

    return ParticleAPIError(
        status_code=status_code,
        message=message,
        body=body_text,
        error_code=error_code,
        error_description=error_description,
        info=info,
    )


class ParticleHttpClient:
    """
    Wrapper HTTPX ligero con:
    - Headers Bearer
    - Streaming de eventos via httpx.Client.stream / AsyncClient.stream
    - Debug logging opcional (PARTICLE_HTTP_DEBUG)
    """

    def __init__(self, *, config: HttpConfig, access_token: str) -> None:
        self._config = config
        self._access_token = access_token
        self._debug_http = os.getenv(ENV_HTTP_DEBUG, "").lower() in {"1", "true", "yes", "on"}

        def _redact_headers(headers: dict[str, Any]) -> dict[str, Any]:
            out = dict(headers)
            for k in ("authorization", "Authorization"):
                if k in out:
                    out[k] = "Bearer ***REDACTED***"
            return out

        def _log_request(request: httpx.Request) -> None:
            if not self._debug_http:
                return
            logging.warning("HTTPX REQUEST %s %s", request.method, request.url)
            logging.warning("HTTPX REQUEST headers=%s", _redact_headers(dict(request.headers)))

        def _log_response_headers(response: httpx.Response) -> bool:
            req = response.request
            logging.warning("HTTPX RESPONSE %s %s -> %s", req.method, req.url, response.status_code)
            logging.warning("HTTPX RESPONSE headers=%s", dict(response.headers))
            ctype = response.headers.get("content-type", "")
            if "text/event-stream" in ctype:
                logging.warning("HTTPX RESPONSE body=(event-stream; not auto-logged)")
                return False
            return True

        def _log_response_sync(response: httpx.Response) -> None:
            if not self._debug_http or not _log_response_headers(response):
                return
            try:
                response.read()
                logging.warning("HTTPX RESPONSE body=%s", response.text)
            except Exception as e:
                logging.warning("HTTPX RESPONSE body=(unreadable) err=%r", e)

        async def _log_request_async(request: httpx.Request) -> None:
            _log_request(request)

        async def _log_response_async(response: httpx.Response) -> None:
            if not self._debug_http or not _log_response_headers(response):
                return
            try:
                await response.aread()
                logging.warning("HTTPX RESPONSE body=%s", response.text)
            except Exception as e:
                logging.warning("HTTPX RESPONSE body=(unreadable) err=%r", e)

        EventHooksDict = dict[str, list[Callable[..., Any]]]

        hooks_sync: EventHooksDict = {"request": [_log_request], "response": [_log_response_sync]}
        hooks_async: EventHooksDict = {"request": [_log_request_async], "response": [_log_response_async]}

        self._client = httpx.Client(
            timeout=httpx.Timeout(config.timeout_s),
            event_hooks=hooks_sync,
            transport=config.transport,
        )
        self._aclient = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_s),
            event_hooks=hooks_async,
            transport=config.async_transport,
        )

    def close(self) -> None:
        self._client.close()

    async def aclose(self) -> None:
        await self._aclient.aclose()

    def _headers(self, *, accept: str | None = None) -> dict[str, str]:
        headers: dict[str, str] = {"Authorization": f"Bearer {self._access_token}"}
        if accept:
            headers["Accept"] = accept
        return headers

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._config.base_url}{path}"

    def _stream_timeout(self) -> httpx.Timeout:
        # Los streams de eventos son de larga duración: sin read timeout.
        return httpx.Timeout(self._config.timeout_s, read=None)

    @staticmethod
    def raise_for_status(resp: httpx.Response) -> None:
        """Verifica status y levanta ParticleAPIError estructurado."""
        if 200 <= resp.status_code < 300:
            return

        body_text: str | None = None
        try:
            body_text = resp.text
        except Exception:
            body_text = None

        content_type = resp.headers.get("content-type", "")

        raise _parse_error_response(
            status_code=resp.status_code,
            body_text=body_text or "",
            content_type=content_type,
        )

    @classmethod
    async def araise_for_status(cls, resp: httpx.Response) -> None:
        """Igual que raise_for_status, pero lee antes el body de una respuesta en streaming."""
        if 200 <= resp.status_code < 300:
            return
        try:
            await resp.aread()
        except httpx.HTTPError:
            pass
        cls.raise_for_status(resp)

    def stream_get(self, path: str) -> Any:
        """
        Retorna un httpx stream context manager para un endpoint de eventos.

        Uso:
            with client.stream_get("/v1/devices/events") as r:
                for chunk in r.iter_bytes():
                    ...
        """
        return self._client.stream(
            "GET",
            self._url(path),
            headers=self._headers(accept="text/event-stream"),
            timeout=self._stream_timeout(),
        )

    def astream_get(self, path: str) -> Any:
        """
        Retorna un httpx stream context manager asíncrono.

        Usage:
            async with client.astream_get("/v1/devices/events") as r:
                async for chunk in r.aiter_bytes():
                    ...
        """
        return self._aclient.stream(
            "GET",
            self._url(path),
            headers=self._headers(accept="text/event-stream"),
            timeout=self._stream_timeout(),
        )
