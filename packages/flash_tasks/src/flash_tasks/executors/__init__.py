from .base import BaseExecutor
from .delayed import DelayedTaskExecutor, PeriodicMode, ScheduledFuture
from .pool import ThreadPoolTaskExecutor

__all__ = [
    "BaseExecutor",
    "DelayedTaskExecutor",
    "PeriodicMode",
    "ScheduledFuture",
    "ThreadPoolTaskExecutor",
]
