"""Delay-scheduling executor backed by a heap of pending futures."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import CancelledError
from datetime import timedelta
from enum import Enum, auto
from typing import Any, Callable

from flash_tasks.exceptions import RejectedExecutionError

from .base import BaseExecutor

logger = logging.getLogger(__name__)


class PeriodicMode(Enum):
    """How the period of a repeating task is measured."""

    FIXED_RATE = auto()
    FIXED_DELAY = auto()


class FutureState(Enum):
    PENDING = auto()
    RUNNING = auto()
    FINISHED = auto()
    CANCELLED = auto()


def to_seconds(value: timedelta | float) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class ScheduledFuture:
    """
    Handle for a task waiting in a :class:`DelayedTaskExecutor`.

    A one-shot future is done once its task ran. A periodic future is
    re-queued after every successful run and only becomes done when it is
    cancelled or a run raises, in which case ``result()`` re-raises.

    Cancelling a running task marks it cancelled and stops later runs; the
    running call itself is not interrupted, ``interrupt_requested`` merely
    records that the caller asked for it.
    """

    def __init__(
        self,
        executor: DelayedTaskExecutor,
        task: Callable[[], Any],
        trigger_time: float,
        period: float | None = None,
        mode: PeriodicMode = PeriodicMode.FIXED_RATE,
        recurring: bool = False,
    ) -> None:
        self._executor = executor
        self.task = task
        self._trigger_time = trigger_time
        self._period = period
        self._mode = mode
        self._recurring = recurring or period is not None
        self._condition = threading.Condition()
        self._state = FutureState.PENDING
        self._result: Any = None
        self._exception: BaseException | None = None
        self.interrupt_requested = False

    @property
    def trigger_time(self) -> float:
        """Monotonic clock reading at which the task becomes due."""
        return self._trigger_time

    @property
    def is_periodic(self) -> bool:
        return self._period is not None

    @property
    def is_recurring(self) -> bool:
        """True for periodic futures and for single firings of a recurring schedule."""
        return self._recurring

    def get_delay(self) -> timedelta:
        """Remaining time until the task is due; negative when overdue."""
        return timedelta(seconds=self._trigger_time - time.monotonic())

    def compare_to(self, other: Any) -> int:
        if other is self:
            return 0
        diff = self.get_delay() - other.get_delay()
        if diff == timedelta(0):
            return 0
        return -1 if diff < timedelta(0) else 1

    def __lt__(self, other: Any) -> bool:
        return self.compare_to(other) < 0

    def cancel(self, may_interrupt_if_running: bool = False) -> bool:
        """
        Attempt to cancel the task.

        Returns:
            False if the task already completed or was cancelled, else True.
        """
        with self._condition:
            if self._state in (FutureState.FINISHED, FutureState.CANCELLED):
                return False
            was_pending = self._state is FutureState.PENDING
            self._state = FutureState.CANCELLED
            self.interrupt_requested = may_interrupt_if_running
            self._condition.notify_all()
        if was_pending:
            self._executor._remove(self)
        return True

    def cancelled(self) -> bool:
        with self._condition:
            return self._state is FutureState.CANCELLED

    def running(self) -> bool:
        with self._condition:
            return self._state is FutureState.RUNNING

    def done(self) -> bool:
        with self._condition:
            return self._state in (FutureState.FINISHED, FutureState.CANCELLED)

    def _wait(self, timeout: float | None) -> None:
        if not self._condition.wait_for(
            lambda: self._state in (FutureState.FINISHED, FutureState.CANCELLED),
            timeout,
        ):
            msg = f"Task did not complete within {timeout} seconds"
            raise TimeoutError(msg)

    def result(self, timeout: float | None = None) -> Any:
        """
        Wait for the task and return its value.

        Raises:
            CancelledError: If the task was cancelled.
            TimeoutError: If the timeout elapsed first.
            Exception: Whatever the task raised.
        """
        with self._condition:
            self._wait(timeout)
            if self._state is FutureState.CANCELLED:
                raise CancelledError()
            if self._exception is not None:
                raise self._exception
            return self._result

    def exception(self, timeout: float | None = None) -> BaseException | None:
        with self._condition:
            self._wait(timeout)
            if self._state is FutureState.CANCELLED:
                raise CancelledError()
            return self._exception

    def _run(self) -> None:
        """Run the task once on the calling worker thread."""
        with self._condition:
            if self._state is not FutureState.PENDING:
                return
            self._state = FutureState.RUNNING

        try:
            value = self.task()
        except Exception as exc:
            with self._condition:
                if self._state is FutureState.RUNNING:
                    self._exception = exc
                    self._state = FutureState.FINISHED
                    self._condition.notify_all()
            return

        with self._condition:
            if self._state is not FutureState.RUNNING:
                return
            if self._period is None:
                self._result = value
                self._state = FutureState.FINISHED
                self._condition.notify_all()
                return
            self._state = FutureState.PENDING
            self._condition.notify_all()
            if self._mode is PeriodicMode.FIXED_RATE:
                self._trigger_time += self._period
            else:
                self._trigger_time = time.monotonic() + self._period

        try:
            self._executor._requeue(self)
        except RejectedExecutionError:
            logger.debug("Periodic task %r stopped: executor shut down", self.task)
            with self._condition:
                if self._state is FutureState.PENDING:
                    self._state = FutureState.CANCELLED
                    self._condition.notify_all()

    def __repr__(self) -> str:
        return f"<ScheduledFuture state={self._state.name} task={self.task!r}>"


class DelayedTaskExecutor(BaseExecutor):
    """
    Runs tasks after a delay or periodically on a fixed set of threads.

    Worker threads take the earliest due task straight from a shared heap;
    there is no separate dispatcher thread. Threads are started lazily, up
    to ``pool_size``.

    Examples:
        >>> executor = DelayedTaskExecutor(pool_size=2)
        >>> future = executor.schedule(job, delay=5.0)
        >>> ticker = executor.schedule_periodic(tick, 0, 1.0, PeriodicMode.FIXED_RATE)
        >>> executor.shutdown()

    Args:
        pool_size: Number of worker threads.
        thread_name_prefix: Prefix for worker thread names.
        max_pending: Maximum number of queued tasks; unlimited when None.
    """

    def __init__(
        self,
        pool_size: int = 1,
        thread_name_prefix: str = "flash-scheduler-",
        max_pending: int | None = None,
    ) -> None:
        if pool_size < 1:
            msg = "pool_size must be 1 or higher"
            raise ValueError(msg)
        self.pool_size = pool_size
        self.thread_name_prefix = thread_name_prefix
        self.max_pending = max_pending

        self._queue: list[tuple[float, int, ScheduledFuture]] = []
        self._condition = threading.Condition()
        self._sequence = itertools.count()
        self._threads: list[threading.Thread] = []
        self._running: dict[ScheduledFuture, threading.Thread] = {}
        self._shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    @property
    def pending_count(self) -> int:
        with self._condition:
            return len(self._queue)

    def schedule(
        self,
        task: Callable[[], Any],
        delay: timedelta | float,
        recurring: bool = False,
    ) -> ScheduledFuture:
        """
        Run ``task`` once after ``delay`` (zero or negative means now).

        ``recurring`` marks the run as one firing of a longer schedule; such
        runs are dropped on shutdown like periodic tasks.
        """
        future = ScheduledFuture(
            self, task, time.monotonic() + to_seconds(delay), recurring=recurring
        )
        self._enqueue(future)
        return future

    def schedule_periodic(
        self,
        task: Callable[[], Any],
        initial_delay: timedelta | float,
        interval: timedelta | float,
        mode: PeriodicMode = PeriodicMode.FIXED_RATE,
    ) -> ScheduledFuture:
        """Run ``task`` after ``initial_delay`` and then every ``interval``."""
        period = to_seconds(interval)
        if period <= 0:
            msg = "interval must be positive"
            raise ValueError(msg)
        future = ScheduledFuture(
            self,
            task,
            time.monotonic() + to_seconds(initial_delay),
            period=period,
            mode=mode,
        )
        self._enqueue(future)
        return future

    def submit(self, task: Callable[[], Any]) -> ScheduledFuture:
        return self.schedule(task, 0)

    def _enqueue(self, future: ScheduledFuture) -> None:
        with self._condition:
            if self._shutdown:
                msg = f"{self!r} is shut down"
                raise RejectedExecutionError(msg)
            if self.max_pending is not None and len(self._queue) >= self.max_pending:
                msg = f"{self!r} queue capacity of {self.max_pending} exhausted"
                raise RejectedExecutionError(msg)
            self._push(future)
            self._adjust_thread_count()

    def _requeue(self, future: ScheduledFuture) -> None:
        with self._condition:
            if self._shutdown:
                msg = f"{self!r} is shut down"
                raise RejectedExecutionError(msg)
            self._push(future)

    def _push(self, future: ScheduledFuture) -> None:
        heapq.heappush(self._queue, (future.trigger_time, next(self._sequence), future))
        self._condition.notify()

    def _remove(self, future: ScheduledFuture) -> None:
        with self._condition:
            remaining = [entry for entry in self._queue if entry[2] is not future]
            if len(remaining) != len(self._queue):
                heapq.heapify(remaining)
                self._queue = remaining

    def _adjust_thread_count(self) -> None:
        if len(self._threads) >= self.pool_size:
            return
        thread = threading.Thread(
            target=self._worker,
            name=f"{self.thread_name_prefix}{len(self._threads) + 1}",
            daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def _take(self) -> ScheduledFuture | None:
        """Block until a task is due; None once shut down and drained."""
        with self._condition:
            while True:
                if self._queue:
                    trigger_time = self._queue[0][0]
                    remaining = trigger_time - time.monotonic()
                    if remaining <= 0:
                        future = heapq.heappop(self._queue)[2]
                        self._running[future] = threading.current_thread()
                        return future
                    self._condition.wait(remaining)
                elif self._shutdown:
                    return None
                else:
                    self._condition.wait()

    def _worker(self) -> None:
        while True:
            future = self._take()
            if future is None:
                return
            try:
                future._run()
            except BaseException:
                logger.exception("Worker %s crashed running %r", threading.current_thread().name, future)
                raise
            finally:
                with self._condition:
                    self._running.pop(future, None)
                    self._condition.notify_all()

    def shutdown(self, wait: bool = True, cancel_pending: bool = True) -> list[ScheduledFuture]:
        """
        Stop accepting work.

        Periodic tasks and firings of recurring schedules never run again
        after shutdown. Delayed one-shot
        tasks are cancelled when ``cancel_pending`` is True; otherwise they
        still run when due.

        Args:
            wait: Block until the worker threads have exited.
            cancel_pending: Cancel queued one-shot tasks as well.

        Returns:
            The futures that were cancelled.
        """
        with self._condition:
            self._shutdown = True
            dropped = [
                entry[2]
                for entry in self._queue
                if cancel_pending or entry[2].is_recurring
            ]
            self._queue = [entry for entry in self._queue if entry[2] not in dropped]
            heapq.heapify(self._queue)
            self._condition.notify_all()

        for future in dropped:
            future.cancel()

        if wait:
            self.await_termination()
        return dropped

    def await_termination(self, timeout: timedelta | float | None = None) -> bool:
        """
        Wait for the worker threads to exit after shutdown.

        Returns:
            True if every worker exited within the timeout.
        """
        deadline = None if timeout is None else time.monotonic() + to_seconds(timeout)
        current = threading.current_thread()
        for thread in list(self._threads):
            if thread is current:
                continue
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(t.is_alive() for t in self._threads if t is not current)

    def await_running(self, timeout: timedelta | float | None = None) -> bool:
        """
        Wait for the tasks running right now to finish.

        Queued tasks, due or not, are not waited for. A task running on the
        calling thread is skipped.

        Returns:
            True if those tasks finished within the timeout.
        """
        current = threading.current_thread()
        seconds = None if timeout is None else to_seconds(timeout)
        with self._condition:
            running = {f for f, thread in self._running.items() if thread is not current}
            return self._condition.wait_for(
                lambda: not running.intersection(self._running), seconds
            )

    def __repr__(self) -> str:
        state = "shutdown" if self._shutdown else "running"
        return (
            f"<DelayedTaskExecutor {state} pool_size={self.pool_size} "
            f"threads={len(self._threads)}>"
        )
