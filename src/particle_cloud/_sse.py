"""
Incremental parser for the Particle flavour of Server-Sent Events (SSE).

The cloud opens every stream with an `:ok` handshake and then sends frames of
the form

    event: <name>
    data:{"published_at": "...", "ttl": 60, "coreid": "...", "data": "..."}

Chunks arrive with arbitrary boundaries, so the parser keeps the unconsumed
tail of the text between calls and only consumes a token once it is complete.
"""

from __future__ import annotations

import codecs
import enum
import json
import logging
import re

from particle_cloud.events import Event

HANDSHAKE_MARKER = ":ok"
EVENT_TAG = "event: "
DATA_TAG = "data:"

_WHITESPACE_RE = re.compile(r"\s*")
_NEWLINE_RE = re.compile(r"[\r\n]")

_logger = logging.getLogger(__name__)


class ParseState(enum.Enum):
    AWAITING_HANDSHAKE = "awaiting_handshake"
    AWAITING_EVENT_TAG = "awaiting_event_tag"
    AWAITING_EVENT_NAME = "awaiting_event_name"
    AWAITING_DATA_TAG = "awaiting_data_tag"
    AWAITING_DATA_PAYLOAD = "awaiting_data_payload"


class ChunkDecoder:
    """
    Incremental UTF-8 decoder for transport chunks.

    A multibyte character split across two chunks is carried over to the next
    call. A chunk holding invalid bytes is dropped whole and the decoder starts clean.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="strict")

    def decode(self, raw: bytes) -> str | None:
        """
        Returns:
            The text completed by this chunk, or None when there is none yet or
            the chunk was dropped.
        """
        if not raw:
            return None
        try:
            text = self._decoder.decode(raw)
        except UnicodeDecodeError as e:
            self._decoder.reset()
            self._logger.warning("Dropping undecodable chunk of %d bytes: %s", len(raw), e)
            return None
        return text or None

    def reset(self) -> None:
        self._decoder.reset()


class StreamParser:
    """
    Finite state machine turning a stream of text chunks into Events.

    Not safe for concurrent use: callers feed one chunk at a time, in arrival order.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger
        self._state = ParseState.AWAITING_HANDSHAKE
        self._pending = ""
        self._event_name: str | None = None
        self._decoder = ChunkDecoder(logger=self._logger)

    @property
    def state(self) -> ParseState:
        return self._state

    @property
    def pending(self) -> str:
        return self._pending

    def reset(self) -> None:
        self._state = ParseState.AWAITING_HANDSHAKE
        self._pending = ""
        self._event_name = None
        self._decoder.reset()

    def feed(self, chunk: str) -> list[Event]:
        """
        Append a chunk to the pending buffer and parse as far as possible.

        Args:
            chunk: The next piece of decoded stream text.

        Returns:
            The Events whose frames were completed by this chunk, in stream order.
        """
        events: list[Event] = []
        text = self._pending + chunk
        pos = 0

        while True:
            before = self._state
            pos = self._step(text, pos, events)
            if self._state is before or pos >= len(text):
                break

        self._pending = text[pos:]
        return events

    def feed_bytes(self, raw: bytes) -> list[Event]:
        """
        Decode a transport chunk and feed the resulting text.

        Bytes of a character cut by the chunk boundary wait for the next chunk.
        """
        text = self._decoder.decode(raw)
        if text is None:
            return []
        return self.feed(text)

    # --------- states ---------

    def _step(self, text: str, pos: int, events: list[Event]) -> int:
        state = self._state

        if state is ParseState.AWAITING_HANDSHAKE:
            idx = text.find(HANDSHAKE_MARKER, pos)
            if idx < 0:
                return self._keep_marker_prefix(text, pos)
            self._state = ParseState.AWAITING_EVENT_TAG
            return _skip_whitespace(text, idx + len(HANDSHAKE_MARKER))

        # Every other state: leading whitespace is insignificant, and nothing is
        # consumed until the whole token is in the buffer.
        start = _skip_whitespace(text, pos)

        if state is ParseState.AWAITING_EVENT_TAG:
            self._event_name = None
            if not text.startswith(EVENT_TAG, start):
                return pos
            self._state = ParseState.AWAITING_EVENT_NAME
            return _skip_whitespace(text, start + len(EVENT_TAG))

        if state is ParseState.AWAITING_EVENT_NAME:
            line_end = _find_newline(text, start)
            if line_end < 0:
                return pos
            self._event_name = text[start:line_end]
            self._state = ParseState.AWAITING_DATA_TAG
            return line_end

        if state is ParseState.AWAITING_DATA_TAG:
            if not text.startswith(DATA_TAG, start):
                return pos
            self._state = ParseState.AWAITING_DATA_PAYLOAD
            return _skip_whitespace(text, start + len(DATA_TAG))

        # AWAITING_DATA_PAYLOAD
        if not text.startswith("{", start):
            return pos
        line_end = _find_newline(text, start)
        if line_end < 0:
            return pos
        self._state = ParseState.AWAITING_EVENT_TAG
        event = self._build_event(text[start:line_end])
        if event is not None:
            events.append(event)
        return _skip_whitespace(text, line_end)

    def _keep_marker_prefix(self, text: str, pos: int) -> int:
        # Preamble is dropped, except a tail that may be the start of a split marker.
        for size in range(len(HANDSHAKE_MARKER) - 1, 0, -1):
            if len(text) - pos >= size and HANDSHAKE_MARKER.startswith(text[len(text) - size:]):
                return len(text) - size
        return len(text)

    def _build_event(self, payload: str) -> Event | None:
        name = self._event_name
        self._event_name = None
        try:
            obj = json.loads(payload)
        except ValueError as e:
            self._logger.warning("Dropping event %r with malformed JSON payload: %s", name, e)
            return None
        if not isinstance(obj, dict):
            self._logger.warning("Dropping event %r: payload is not a JSON object", name)
            return None

        obj["name"] = name
        event = Event.from_payload(obj)
        if event is None:
            self._logger.warning("Unable to create an Event with name %r and payload %s", name, obj)
            return None
        self._logger.debug("Received event %s with payload %s", name, obj)
        return event


def _skip_whitespace(text: str, pos: int) -> int:
    return _WHITESPACE_RE.match(text, pos).end()


def _find_newline(text: str, pos: int) -> int:
    m = _NEWLINE_RE.search(text, pos)
    return m.start() if m else -1
