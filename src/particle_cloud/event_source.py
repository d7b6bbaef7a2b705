"""
Event source that subscribes to a Particle cloud event stream.

An EventSource owns one streaming GET request. Chunks are read by a single
asyncio task, fed in arrival order to its StreamParser, and every decoded Event
is handed to the registered observer. The lifecycle is a two-state machine
(STOPPED/STARTED) described by `transition`; `EventSource` only carries out the
actions it returns.

Event sources are bound to the event loop they are started on. `start()` and
`stop()` never block and are safe to call from inside observer callbacks.
`stop()` may also be called from another thread; the cancellation and the
`stopped` notification then run on the loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import threading
from typing import Any

import httpx

from particle_cloud._client import HttpConfig, ParticleHttpClient
from particle_cloud._errors import ParticleAPIError
from particle_cloud._sse import StreamParser
from particle_cloud.events import Event

DEFAULT_BASE_URL = "https://api.particle.io"

_logger = logging.getLogger(__name__)


class EventSourceState(enum.Enum):
    STOPPED = "stopped"
    STARTED = "started"


class SourceRequest(enum.Enum):
    START = "start"
    STOP = "stop"
    TRANSPORT_CLOSED = "transport_closed"


class SourceAction(enum.Enum):
    OPEN_REQUEST = "open_request"
    NOTIFY_STARTED = "notify_started"
    CANCEL_REQUEST = "cancel_request"
    RESET_PARSER = "reset_parser"
    NOTIFY_STOPPED = "notify_stopped"


_TRANSITIONS: dict[tuple[EventSourceState, SourceRequest], tuple[EventSourceState, tuple[SourceAction, ...]]] = {
    (EventSourceState.STOPPED, SourceRequest.START): (
        EventSourceState.STARTED,
        (SourceAction.OPEN_REQUEST, SourceAction.NOTIFY_STARTED),
    ),
    (EventSourceState.STARTED, SourceRequest.STOP): (
        EventSourceState.STOPPED,
        (SourceAction.CANCEL_REQUEST, SourceAction.RESET_PARSER, SourceAction.NOTIFY_STOPPED),
    ),
    # The request already finished on its own; nothing to cancel.
    (EventSourceState.STARTED, SourceRequest.TRANSPORT_CLOSED): (
        EventSourceState.STOPPED,
        (SourceAction.RESET_PARSER, SourceAction.NOTIFY_STOPPED),
    ),
}


def transition(
    current: EventSourceState, request: SourceRequest
) -> tuple[EventSourceState, tuple[SourceAction, ...]]:
    """
    Compute the next state and the actions to perform for a request.

    Requests that do not apply to the current state (start while started, stop or
    a late transport completion while stopped) leave the state as is with no actions.
    """
    return _TRANSITIONS.get((current, request), (current, ()))


class EventSourceObserver:
    """
    Receives lifecycle and event notifications from an EventSource.

    Callbacks run on the event loop of the source, from its processing task or
    from the start()/stop() caller. They must return quickly. Subclass and
    override the hooks you need.
    """

    def started(self, source: EventSource) -> None:
        """Called when the source starts. Starting does not imply a successful connection."""

    def stopped(self, source: EventSource) -> None:
        """Called when the source stops, by request or because the stream ended or failed."""

    def received_event(self, event: Event, source: EventSource) -> None:
        """Called for every event decoded from the stream, in stream order."""


class EventSource:
    """
    A restartable subscription to one Particle event URL.

    Args:
        url: Absolute URL, or path relative to `http_config.base_url`, of the event stream.
        token: Bearer access token; assumed valid while the source is used.
        http_config: Transport configuration. Defaults to the public Particle cloud.
        http_client: Shared client to stream through instead of building one from
            `http_config`. It must carry `token`, and it is left open by `aclose()`.
        observer: Receiver of notifications.
        logger: Logger for diagnostics. Defaults to the module logger.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        http_config: HttpConfig | None = None,
        http_client: ParticleHttpClient | None = None,
        observer: EventSourceObserver | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.url = url
        self.observer = observer
        self._logger = logger or _logger
        self._owns_http = http_client is None
        self._http = http_client or ParticleHttpClient(
            config=http_config or HttpConfig(base_url=DEFAULT_BASE_URL),
            access_token=token,
        )
        self._parser = StreamParser(logger=self._logger)
        self._state = EventSourceState.STOPPED
        self._task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        # Bumped on every start/stop; a run whose generation is stale delivers nothing.
        self._generation = 0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"EventSource(url={self.url!r}, state={self._state.value})"

    @property
    def state(self) -> EventSourceState:
        return self._state

    @property
    def is_started(self) -> bool:
        return self._state is EventSourceState.STARTED

    # --------- lifecycle ---------

    def start(self) -> None:
        """
        Connect and start emitting events. No-op when already started.

        Raises:
            RuntimeError: If there is no running event loop.
        """
        asyncio.get_running_loop()
        self._apply(SourceRequest.START)

    def stop(self) -> None:
        """
        Cancel the request and stop emitting events. No-op when already stopped.

        From a thread other than the loop's, the state changes at once and the
        rest of the work is handed to the loop.
        """
        loop = self._loop
        if loop is not None and not loop.is_closed() and not _running_on(loop):
            self._apply(SourceRequest.STOP, loop=loop)
        else:
            self._apply(SourceRequest.STOP)

    async def aclose(self) -> None:
        """Stop the source, wait for its task to finish and release the HTTP client it owns."""
        self.stop()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._owns_http:
            await self._http.aclose()
            self._http.close()

    async def __aenter__(self) -> EventSource:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _apply(self, request: SourceRequest, loop: asyncio.AbstractEventLoop | None = None) -> None:
        with self._lock:
            previous = self._state
            self._state, actions = transition(previous, request)
            if previous is not self._state:
                self._logger.debug("Event source moving from %s to %s", previous.value, self._state.value)
                self._generation += 1
            generation = self._generation
            task = self._task

        if not actions:
            return
        if loop is None:
            self._perform(actions, task, generation)
        else:
            loop.call_soon_threadsafe(self._perform, actions, task, generation)

    def _perform(
        self,
        actions: tuple[SourceAction, ...],
        task: asyncio.Task[None] | None,
        generation: int,
    ) -> None:
        for action in actions:
            if action is SourceAction.OPEN_REQUEST:
                self._logger.debug("Attempting to establish an event source on url %s", self.url)
                self._loop = asyncio.get_running_loop()
                self._task = self._loop.create_task(self._run(generation))
            elif action is SourceAction.CANCEL_REQUEST:
                if task is not None:
                    task.cancel()
            elif action is SourceAction.RESET_PARSER:
                # A start() handled first already owns the parser.
                if self._generation == generation:
                    self._parser.reset()
            elif action is SourceAction.NOTIFY_STARTED:
                self._notify("started")
            elif action is SourceAction.NOTIFY_STOPPED:
                self._notify("stopped")

    # --------- processing lane ---------

    def _is_current(self, generation: int) -> bool:
        return self._generation == generation and self._state is EventSourceState.STARTED

    async def _run(self, generation: int) -> None:
        try:
            async with self._http.astream_get(self.url) as resp:
                await self._http.araise_for_status(resp)
                self._logger.debug("Event source connected to url %s", self.url)
                async for raw in resp.aiter_bytes():
                    if not self._is_current(generation):
                        return
                    self._process_chunk(raw, generation)
            self._logger.info("Event stream for url %s ended", self.url)
        except asyncio.CancelledError:
            raise
        except ParticleAPIError as e:
            self._logger.warning("Event source for url %s rejected: %s", self.url, e)
        except httpx.HTTPError as e:
            self._logger.warning("Event source for url %s failed: %r", self.url, e)
        except Exception:
            self._logger.exception("Unexpected failure in event source for url %s", self.url)

        if self._is_current(generation):
            self._apply(SourceRequest.TRANSPORT_CLOSED)

    def _process_chunk(self, raw: bytes, generation: int) -> None:
        for event in self._parser.feed_bytes(raw):
            # An observer may have stopped (or restarted) the source mid-chunk.
            if not self._is_current(generation):
                return
            self._notify("received_event", event)

    def _notify(self, hook: str, event: Event | None = None) -> None:
        observer = self.observer
        if observer is None:
            return
        try:
            if event is None:
                getattr(observer, hook)(self)
            else:
                observer.received_event(event, self)
        except Exception:
            self._logger.exception("Observer %r failed in %s", observer, hook)


def _running_on(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
