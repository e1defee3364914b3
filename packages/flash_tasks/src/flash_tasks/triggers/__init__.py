"""
Domain - Trigger System.

Triggers are pure functions that compute the next fire time from a
TriggerContext:
- Last scheduled, actual and completion times (all None before the first run)
- The context clock, consulted only when nothing has completed yet

No I/O, no threading, no side effects. Returning None retires the schedule.
"""

from .base import Trigger
from .cron import CronField, CronTrigger
from .date import DateTrigger
from .interval import PeriodicTrigger

__all__ = [
    "CronField",
    "CronTrigger",
    "DateTrigger",
    "PeriodicTrigger",
    "Trigger",
]
