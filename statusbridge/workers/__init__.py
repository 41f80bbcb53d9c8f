"""Background worker exports."""

from .status_sync_worker import StatusSyncWorker

__all__ = ["StatusSyncWorker"]
