"""Decide whether a poll outcome requires a status update.

The engine is a pure function of the previously applied snapshot and the
latest poll outcome:

==========================  ==========================  =================
outcome                     previous                    decision
==========================  ==========================  =================
``Failure`` (recoverable)   any                         no intent, continue
``Failure`` (fatal)         any                         no intent, abort
``Playing(s)``              ``s``                       no intent, continue
``Playing(s)``              anything else               render ``s``, continue
``Idle``                    ``None``                    no intent, continue
``Idle``                    a snapshot                  idle text, continue
==========================  ==========================  =================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from statusbridge.integrations.contracts import (
    AdapterError,
    Failure,
    Idle,
    Playing,
    PollOutcome,
    TrackSnapshot,
)

ARTIST_PLACEHOLDER = "%ARTIST%"
NAME_PLACEHOLDER = "%NAME%"
DEFAULT_STATUS_TEMPLATE = f"🎵 Listening to {NAME_PLACEHOLDER} by {ARTIST_PLACEHOLDER}"


class ControlSignal(str, Enum):
    CONTINUE = "continue"
    ABORT = "abort"


@dataclass(slots=True, frozen=True)
class StatusUpdateIntent:
    """A decided, not yet applied status change.

    ``text`` of ``None`` clears the status. ``snapshot`` is what the applied
    state becomes once the write is confirmed (``None`` for idle).
    """

    text: str | None
    snapshot: TrackSnapshot | None


@dataclass(slots=True, frozen=True)
class Decision:
    intent: StatusUpdateIntent | None
    signal: ControlSignal
    error: AdapterError | None = None

    @property
    def should_abort(self) -> bool:
        return self.signal is ControlSignal.ABORT


_CONTINUE = Decision(intent=None, signal=ControlSignal.CONTINUE)


def render_status(template: str, snapshot: TrackSnapshot) -> str:
    """Substitute every ``%ARTIST%`` and ``%NAME%`` occurrence verbatim."""

    return template.replace(ARTIST_PLACEHOLDER, snapshot.artist).replace(
        NAME_PLACEHOLDER, snapshot.title
    )


def decide(
    previous: TrackSnapshot | None,
    outcome: PollOutcome,
    *,
    template: str = DEFAULT_STATUS_TEMPLATE,
    idle_text: str | None = None,
) -> Decision:
    if isinstance(outcome, Failure):
        if outcome.error.fatal:
            return Decision(intent=None, signal=ControlSignal.ABORT, error=outcome.error)
        return Decision(intent=None, signal=ControlSignal.CONTINUE, error=outcome.error)

    if isinstance(outcome, Playing):
        if previous == outcome.snapshot:
            return _CONTINUE
        intent = StatusUpdateIntent(
            text=render_status(template, outcome.snapshot), snapshot=outcome.snapshot
        )
        return Decision(intent=intent, signal=ControlSignal.CONTINUE)

    if isinstance(outcome, Idle):
        if previous is None:
            return _CONTINUE
        return Decision(
            intent=StatusUpdateIntent(text=idle_text, snapshot=None),
            signal=ControlSignal.CONTINUE,
        )

    raise TypeError(f"Unsupported poll outcome: {type(outcome).__name__}")


__all__ = [
    "ControlSignal",
    "DEFAULT_STATUS_TEMPLATE",
    "Decision",
    "StatusUpdateIntent",
    "decide",
    "render_status",
]
