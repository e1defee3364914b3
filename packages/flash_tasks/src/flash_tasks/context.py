"""Execution history handed to triggers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExecutionTimes:
    """Immutable record of the latest firing of a task."""

    last_scheduled_execution_time: datetime | None = None
    last_actual_execution_time: datetime | None = None
    last_completion_time: datetime | None = None


class TriggerContext:
    """
    Holds the latest scheduled, actual and completion times of a task.

    The three values are swapped as one immutable record, so a reader on
    another thread sees either the previous firing or the new one, never a
    mix of both.

    Examples:
        >>> ctx = TriggerContext()
        >>> ctx.last_completion_time is None
        True
        >>> ctx.update(scheduled, started, finished)
        >>> ctx.last_completion_time == finished
        True
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or utc_now
        self._times = ExecutionTimes()

    def now(self) -> datetime:
        """Current time according to this context's clock."""
        return self._clock()

    def snapshot(self) -> ExecutionTimes:
        return self._times

    def update(
        self,
        last_scheduled_execution_time: datetime | None,
        last_actual_execution_time: datetime | None,
        last_completion_time: datetime | None,
    ) -> None:
        """Replace all three times at once."""
        self._times = ExecutionTimes(
            last_scheduled_execution_time,
            last_actual_execution_time,
            last_completion_time,
        )

    @property
    def last_scheduled_execution_time(self) -> datetime | None:
        return self._times.last_scheduled_execution_time

    @property
    def last_actual_execution_time(self) -> datetime | None:
        return self._times.last_actual_execution_time

    @property
    def last_completion_time(self) -> datetime | None:
        return self._times.last_completion_time

    def __repr__(self) -> str:
        t = self._times
        return (
            f"TriggerContext(scheduled={t.last_scheduled_execution_time!r}, "
            f"actual={t.last_actual_execution_time!r}, "
            f"completion={t.last_completion_time!r})"
        )
