"""Poll scheduling helpers."""

from .scheduler import PollScheduler

__all__ = ["PollScheduler"]
