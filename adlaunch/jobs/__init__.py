"""Scheduled background jobs."""

from .performance_sync import PerformanceSyncScheduler, SyncSummary, sync_performance

__all__ = ["PerformanceSyncScheduler", "SyncSummary", "sync_performance"]
