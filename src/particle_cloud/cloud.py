"""
Entry point for the Particle cloud event API.
It creates event sources and offers iterator based access to event streams.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterator

from particle_cloud._auth import AuthConfig
from particle_cloud._client import HttpConfig, ParticleHttpClient
from particle_cloud._sse import StreamParser
from particle_cloud.event_source import DEFAULT_BASE_URL, EventSource, EventSourceObserver
from particle_cloud.events import Event, EventSourceConfig


@dataclass(slots=True)
class ParticleCloud:
    """
    Main interface for subscribing to Particle cloud events.
    Provides observer based event sources plus synchronous and asynchronous event iterators.
    """
    access_token: str | None = None
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = 120.0
    http_config: HttpConfig | None = None

    _auth: AuthConfig = field(init=False, repr=False)
    _http: ParticleHttpClient = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """
        Resolve the access token and build the HTTP client after dataclass initialization.
        """
        self._auth = AuthConfig.from_env_or_value(self.access_token)
        if self.http_config is None:
            self.http_config = HttpConfig(base_url=self.base_url, timeout_s=self.timeout_s)
        self._http = ParticleHttpClient(config=self.http_config, access_token=self._auth.access_token)

    def close(self) -> None:
        self._http.close()

    async def aclose(self) -> None:
        await self._http.aclose()

    def create_event_source(
        self,
        config: EventSourceConfig | None = None,
        *,
        observer: EventSourceObserver | None = None,
        logger: logging.Logger | None = None,
    ) -> EventSource:
        """
        Create an event source for the stream selected by `config`.

        The source is created stopped; call `start()` from a running event loop.
        It shares this cloud's HTTP client, which stays open when the source is closed.
        No check is made that the access token is still valid.

        Args:
            config: Stream selection. Defaults to all events of the account's devices.
            observer: Receiver of lifecycle and event notifications.
            logger: Logger injected into the source and its parser.

        Returns:
            A new, stopped EventSource.
        """
        cfg = config or EventSourceConfig()
        return EventSource(
            cfg.url_path,
            self._auth.access_token,
            http_client=self._http,
            observer=observer,
            logger=logger,
        )

    def stream_events(self, config: EventSourceConfig | None = None) -> Iterator[Event]:
        """
        Iterate over the events of a stream synchronously.

        The request stays open until the stream ends or the iterator is closed.

        Raises:
            ParticleAPIError: If the cloud rejects the request.
            httpx.HTTPError: On transport failures.
        """
        cfg = config or EventSourceConfig()
        parser = StreamParser()
        with self._http.stream_get(cfg.url_path) as r:
            if not 200 <= r.status_code < 300:
                r.read()
            self._http.raise_for_status(r)
            for raw in r.iter_bytes():
                yield from parser.feed_bytes(raw)

    async def astream_events(self, config: EventSourceConfig | None = None) -> AsyncIterator[Event]:
        """
        Async version of stream_events().
        """
        cfg = config or EventSourceConfig()
        parser = StreamParser()
        async with self._http.astream_get(cfg.url_path) as r:
            await self._http.araise_for_status(r)
            async for raw in r.aiter_bytes():
                for event in parser.feed_bytes(raw):
                    yield event
