from __future__ import annotations

from particle_cloud.cloud import ParticleCloud
from particle_cloud.event_source import EventSource, EventSourceObserver, EventSourceState
from particle_cloud.events import Event, EventSourceConfig
from particle_cloud._client import HttpConfig
from particle_cloud._errors import ParticleAPIError, ParticleError
from particle_cloud._sse import ParseState, StreamParser

__all__ = [
    "Event",
    "EventSource",
    "EventSourceConfig",
    "EventSourceObserver",
    "EventSourceState",
    "HttpConfig",
    "ParseState",
    "ParticleAPIError",
    "ParticleCloud",
    "ParticleError",
    "StreamParser",
]

__version__ = "0.1.0"
