"""Scheduler service - APScheduler integration and run locks."""

from .locks import LockManager, RunLockedError, default_holder_id, harvest_lock_name
from .service import SchedulerService, build_trigger, execute_scheduled_harvest

__all__ = [
    "LockManager",
    "RunLockedError",
    "default_holder_id",
    "harvest_lock_name",
    "SchedulerService",
    "build_trigger",
    "execute_scheduled_harvest",
]
