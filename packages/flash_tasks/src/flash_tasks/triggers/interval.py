"""PeriodicTrigger - Fires at fixed time intervals."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .base import Trigger

if TYPE_CHECKING:
    from flash_tasks.context import TriggerContext
    from flash_tasks.schemas import IntervalTriggerConfig


def to_timedelta(value: timedelta | float) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


class PeriodicTrigger(Trigger):
    """
    Trigger that fires at fixed time intervals.

    In fixed-delay mode (the default) the period is measured from the
    completion of the previous run. In fixed-rate mode it is measured from
    the previous scheduled time, so a slow run shortens the next wait.

    Examples:
        >>> # 1. Simple: 30 seconds after each run completes
        >>> trigger = PeriodicTrigger(timedelta(seconds=30))

        >>> # 2. Fixed rate, first run after 5 seconds
        >>> trigger = PeriodicTrigger(60, initial_delay=5, fixed_rate=True)

        >>> # 3. Time window: hourly, only until end_time
        >>> trigger = PeriodicTrigger(timedelta(hours=1), end_time=end)

    Args:
        period: Interval between runs (timedelta or seconds).
        initial_delay: Delay before the first run.
        fixed_rate: Measure between scheduled starts instead of completions.
        start_time: Earliest possible first run.
        end_time: Latest possible run; later runs retire the schedule.
    """

    def __init__(
        self,
        period: timedelta | float,
        initial_delay: timedelta | float = 0,
        fixed_rate: bool = False,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ):
        self.period = to_timedelta(period)
        self.initial_delay = to_timedelta(initial_delay)
        if self.period <= timedelta(0):
            msg = "interval must be positive"
            raise ValueError(msg)
        if self.initial_delay < timedelta(0):
            msg = "initial_delay must not be negative"
            raise ValueError(msg)
        self.fixed_rate = fixed_rate
        self.start_time = start_time
        self.end_time = end_time

    @classmethod
    def from_config(cls, config: IntervalTriggerConfig) -> PeriodicTrigger:
        return cls(
            config.period,
            initial_delay=config.initial_delay,
            fixed_rate=config.fixed_rate,
            start_time=config.start_time,
            end_time=config.end_time,
        )

    def next_execution_time(self, context: TriggerContext) -> datetime | None:
        times = context.snapshot()

        # First run: nothing has completed yet
        if (
            times.last_scheduled_execution_time is None
            or times.last_completion_time is None
        ):
            next_fire = context.now() + self.initial_delay
            if self.start_time and self.start_time > next_fire:
                next_fire = self.start_time
        elif self.fixed_rate:
            next_fire = times.last_scheduled_execution_time + self.period
        else:
            next_fire = times.last_completion_time + self.period

        if self.end_time and next_fire > self.end_time:
            return None

        return next_fire

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PeriodicTrigger):
            return NotImplemented
        return (
            self.period == other.period
            and self.initial_delay == other.initial_delay
            and self.fixed_rate == other.fixed_rate
            and self.start_time == other.start_time
            and self.end_time == other.end_time
        )

    def __hash__(self) -> int:
        return hash((self.period, self.initial_delay, self.fixed_rate))

    def __repr__(self) -> str:
        mode = "fixed_rate" if self.fixed_rate else "fixed_delay"
        return f"PeriodicTrigger(period={self.period}, {mode})"
