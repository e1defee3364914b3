"""DateTrigger - Fires once at a specific datetime."""

from __future__ import annotations

from typing import TYPE_CHECKING

from . import base

if TYPE_CHECKING:
    from datetime import datetime

    from flash_tasks.context import TriggerContext
    from flash_tasks.schemas import DateTriggerConfig


class DateTrigger(base.Trigger):
    """
    Trigger that fires exactly once at a specific datetime.

    A ``run_at`` in the past fires immediately.

    Examples:
        >>> from datetime import datetime, timezone
        >>> run_at = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
        >>> trigger = DateTrigger(run_at)

    Args:
        run_at: The exact time the task should run. Must be timezone-aware.
    """

    def __init__(self, run_at: datetime):
        if run_at.tzinfo is None:
            msg = "run_at must be timezone-aware"
            raise ValueError(msg)
        self.run_at = run_at

    @classmethod
    def from_config(cls, config: DateTriggerConfig) -> DateTrigger:
        return cls(config.run_at)

    def next_execution_time(self, context: TriggerContext) -> datetime | None:
        if context.last_scheduled_execution_time is not None:
            return None
        return self.run_at

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DateTrigger) and self.run_at == other.run_at

    def __hash__(self) -> int:
        return hash(self.run_at)

    def __repr__(self) -> str:
        return f"DateTrigger(run_at={self.run_at.isoformat()})"
