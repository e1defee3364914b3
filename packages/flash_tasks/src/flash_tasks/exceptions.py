from __future__ import annotations

from typing import Any


class FlashTasksError(Exception):
    """Base class for all Flash Tasks exceptions."""


class ExpressionFormatError(FlashTasksError, ValueError):
    """Raised when a trigger expression cannot be parsed or never matches."""


class SchedulerNotInitializedError(FlashTasksError, RuntimeError):
    """Raised when work is scheduled before the scheduler was initialized."""


class RejectedExecutionError(FlashTasksError, RuntimeError):
    """Raised by an executor that cannot accept more work."""


class TaskRejectedError(FlashTasksError, RuntimeError):
    """
    Raised when a scheduler could not hand a task to its executor.

    Attributes:
        task: The rejected callable.
        executor: The executor that refused it.
    """

    def __init__(self, task: Any, executor: Any, reason: str | None = None) -> None:
        self.task = task
        self.executor = executor
        msg = f"Executor [{executor!r}] did not accept task: {task!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
