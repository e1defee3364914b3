"""Self re-arming invocation of a task driven by a Trigger."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from .context import Clock, TriggerContext
from .error_handlers import decorate_task_with_error_handler
from .exceptions import RejectedExecutionError
from .log import task_name_of

if TYPE_CHECKING:
    from .error_handlers import ErrorHandler
    from .executors.delayed import DelayedTaskExecutor, ScheduledFuture
    from .triggers.base import Trigger

logger = logging.getLogger(__name__)


class ReschedulingRunnable:
    """
    Stable, cancellable handle over an endless series of one-shot firings.

    Each firing is submitted to the delay executor as a single delayed
    task. When it completes, the trigger context is updated and the next
    firing is computed and submitted from the same worker thread, so
    firings of one schedule never overlap.

    One lock guards the current future, the trigger context and the
    cancelled flag. A :meth:`cancel` that lands while a firing is finishing
    is therefore either seen by the re-arm decision or applied to the
    freshly armed future; it is never lost.

    ``result()`` only observes the firing that is pending at call time.

    Examples:
        >>> handle = ReschedulingRunnable(job, CronTrigger("0 * * * * ?"), executor, handler).schedule()
        >>> handle.get_delay()
        datetime.timedelta(seconds=41, microseconds=...)
        >>> handle.cancel()
        True
    """

    def __init__(
        self,
        task: Callable[[], Any],
        trigger: Trigger,
        executor: DelayedTaskExecutor,
        error_handler: ErrorHandler | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.name = task_name_of(task)
        self._task = decorate_task_with_error_handler(task, error_handler, is_repeating=True)
        self._trigger = trigger
        self._executor = executor
        self._context = TriggerContext(clock)
        self._lock = threading.RLock()
        self._current: ScheduledFuture | None = None
        self._scheduled_execution_time: datetime | None = None
        self._cancelled = False
        self._fire_count = 0

    @property
    def trigger(self) -> Trigger:
        return self._trigger

    @property
    def context(self) -> TriggerContext:
        return self._context

    @property
    def fire_count(self) -> int:
        """Number of completed firings (equals the number of context updates)."""
        with self._lock:
            return self._fire_count

    @property
    def scheduled_execution_time(self) -> datetime | None:
        """Instant the pending firing is scheduled for."""
        with self._lock:
            return self._scheduled_execution_time

    def schedule(self) -> ReschedulingRunnable | None:
        """
        Arm the next firing.

        Returns:
            self, or None if the trigger has no further execution time.

        Raises:
            RejectedExecutionError: If the executor refuses the firing.
        """
        with self._lock:
            next_time = self._trigger.next_execution_time(self._context)
            if next_time is None:
                logger.debug("Trigger %r has no further runs for %s", self._trigger, self.name)
                return None
            self._scheduled_execution_time = next_time
            delay = (next_time - self._context.now()).total_seconds()
            self._current = self._executor.schedule(self._fire, delay, recurring=True)
            logger.debug("Armed %s for %s (in %.3fs)", self.name, next_time.isoformat(), delay)
            return self

    def _fire(self) -> None:
        actual = self._context.now()
        # A propagating error handler raises here: the current future
        # fails and the schedule ends.
        self._task()
        completion = self._context.now()

        with self._lock:
            self._context.update(self._scheduled_execution_time, actual, completion)
            self._fire_count += 1
            if self._cancelled or self._current.cancelled():
                return
            try:
                self.schedule()
            except RejectedExecutionError as exc:
                logger.warning("Task %s not rescheduled: %s", self.name, exc)
            except Exception:
                logger.exception(
                    "Task %s not rescheduled: %r failed to compute the next run",
                    self.name,
                    self._trigger,
                )

    def cancel(self, may_interrupt_if_running: bool = False) -> bool:
        """Cancel the pending firing and prevent any later re-arm."""
        with self._lock:
            self._cancelled = True
            return self._current.cancel(may_interrupt_if_running)

    def cancelled(self) -> bool:
        with self._lock:
            return self._current.cancelled()

    def done(self) -> bool:
        with self._lock:
            return self._current.done()

    def get_delay(self) -> timedelta:
        with self._lock:
            return self._current.get_delay()

    def compare_to(self, other: Any) -> int:
        if other is self:
            return 0
        diff = self.get_delay() - other.get_delay()
        if diff == timedelta(0):
            return 0
        return -1 if diff < timedelta(0) else 1

    def __lt__(self, other: Any) -> bool:
        return self.compare_to(other) < 0

    def result(self, timeout: float | None = None) -> Any:
        """Wait on whichever firing is pending at call time."""
        with self._lock:
            current = self._current
        return current.result(timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        with self._lock:
            current = self._current
        return current.exception(timeout)

    def __repr__(self) -> str:
        return f"<ReschedulingRunnable {self.name} trigger={self._trigger!r}>"
