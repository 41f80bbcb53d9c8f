"""Now-playing sources and the status platform client."""

from .contracts import (
    AdapterError,
    Failure,
    FatalAdapterError,
    Idle,
    Playing,
    PollOutcome,
    RecoverableAdapterError,
    SourceAdapter,
    TrackSnapshot,
)

__all__ = [
    "AdapterError",
    "Failure",
    "FatalAdapterError",
    "Idle",
    "Playing",
    "PollOutcome",
    "RecoverableAdapterError",
    "SourceAdapter",
    "TrackSnapshot",
]
