"""Bounded thread pool executor."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from flash_tasks.config import TaskSettings
from flash_tasks.error_handlers import decorate_task_with_error_handler
from flash_tasks.exceptions import TaskRejectedError
from flash_tasks.schemas import TaskExecutorConfig

from .base import BaseExecutor

logger = logging.getLogger(__name__)


class ThreadPoolTaskExecutor(BaseExecutor):
    """
    Executor with a fixed number of workers and an optional queue bound.

    At most ``max_workers + queue_capacity`` tasks are accepted at a time;
    further submissions are rejected with :class:`TaskRejectedError`
    instead of blocking the caller.

    Examples:
        >>> executor = ThreadPoolTaskExecutor(TaskExecutorConfig(max_workers=4, queue_capacity=100))
        >>> future = executor.submit(lambda: 42)
        >>> future.result()
        42
        >>> executor.shutdown()
    """

    def __init__(self, config: TaskExecutorConfig | None = None) -> None:
        self.config = config or TaskSettings().executor_config()
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix=self.config.thread_name_prefix,
        )
        self._slots: threading.BoundedSemaphore | None = None
        if self.config.queue_capacity is not None:
            self._slots = threading.BoundedSemaphore(
                self.config.max_workers + self.config.queue_capacity
            )

    def submit(self, task: Callable[[], Any]) -> Future[Any]:
        """
        Submit a task and return its future.

        Raises:
            TaskRejectedError: If the pool is saturated or shut down.
        """
        if self._slots is not None and not self._slots.acquire(blocking=False):
            raise TaskRejectedError(task, self, "capacity exhausted")
        run = task if self._slots is None else self._releasing(task)
        try:
            return self._pool.submit(run)
        except RuntimeError as exc:
            if self._slots is not None:
                self._slots.release()
            raise TaskRejectedError(task, self, str(exc)) from exc

    def _releasing(self, task: Callable[[], Any]) -> Callable[[], Any]:
        slots = self._slots

        def run() -> Any:
            try:
                return task()
            finally:
                slots.release()

        return run

    def execute(self, task: Callable[[], Any]) -> None:
        """Fire-and-forget variant of :meth:`submit`; failures are logged."""
        self.submit(decorate_task_with_error_handler(task, is_repeating=False))

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        logger.debug("Shutting down %r", self)
        self._pool.shutdown(wait=wait, cancel_futures=cancel_pending)

    def __repr__(self) -> str:
        return (
            f"<ThreadPoolTaskExecutor max_workers={self.config.max_workers} "
            f"queue_capacity={self.config.queue_capacity}>"
        )
