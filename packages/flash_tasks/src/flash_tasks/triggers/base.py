from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from flash_tasks.context import TriggerContext


class Trigger(ABC):
    """
    Decides when a task runs next, given its execution history.

    Implementations must be stateless or immutable after construction and
    free of I/O. Returning ``None`` retires the schedule for good.
    """

    @abstractmethod
    def next_execution_time(self, context: TriggerContext) -> datetime | None:
        """Return the next fire time, or None if the task should not run again."""
        ...
