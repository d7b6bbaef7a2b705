from typing import Any, Callable

import httpx
import pytest

from particle_cloud._client import HttpConfig
from sse_helpers import BASE_URL, RecordingTransport


@pytest.fixture
def make_http_config() -> Callable[[Callable[[httpx.Request], Any]], tuple[HttpConfig, RecordingTransport]]:
    """Construye un HttpConfig cuyo transporte (sync y async) es un RecordingTransport."""

    def _make(handler: Callable[[httpx.Request], Any]) -> tuple[HttpConfig, RecordingTransport]:
        transport = RecordingTransport(handler)
        cfg = HttpConfig(base_url=BASE_URL, timeout_s=5.0, transport=transport, async_transport=transport)
        return cfg, transport

    return _make
