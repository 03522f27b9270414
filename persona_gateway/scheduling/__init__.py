from .cleanup_queue import CleanupResult, CleanupState, DelayedActionScheduler, PendingCleanupTask

__all__ = ["CleanupResult", "CleanupState", "DelayedActionScheduler", "PendingCleanupTask"]
