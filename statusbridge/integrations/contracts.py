"""Contracts shared by source adapters, the transition engine and the worker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, TypeAlias


@dataclass(slots=True, frozen=True)
class TrackSnapshot:
    """Normalised (artist, title) pair describing the track currently playing.

    Identity is exact, case-sensitive equality on both fields.
    """

    artist: str
    title: str


class AdapterError(RuntimeError):
    """Base exception describing a failed poll of an upstream source."""

    fatal: bool = False

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
        code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.code = code
        self.cause = cause


class RecoverableAdapterError(AdapterError):
    """Transient upstream failure; polling continues on the next tick."""


class FatalAdapterError(AdapterError):
    """Permanent upstream failure such as invalid credentials or an unknown user."""

    fatal = True


@dataclass(slots=True, frozen=True)
class Playing:
    snapshot: TrackSnapshot


@dataclass(slots=True, frozen=True)
class Idle:
    pass


@dataclass(slots=True, frozen=True)
class Failure:
    error: AdapterError


PollOutcome: TypeAlias = Playing | Idle | Failure


class SourceAdapter(Protocol):
    """Protocol implemented by every now-playing source."""

    name: str
    check_interval: float

    async def poll(self) -> PollOutcome:
        """Query the upstream once and report what is playing.

        Ordinary upstream failures are returned as :class:`Failure`, never raised.
        """

    async def aclose(self) -> None:
        """Release the underlying HTTP resources."""


__all__ = [
    "AdapterError",
    "FatalAdapterError",
    "Failure",
    "Idle",
    "Playing",
    "PollOutcome",
    "RecoverableAdapterError",
    "SourceAdapter",
    "TrackSnapshot",
]
