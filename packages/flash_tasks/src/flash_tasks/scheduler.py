"""
Main Scheduler entry point.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, Type, TypeVar

from pydantic import BaseModel

from .config import TaskSettings
from .context import utc_now
from .error_handlers import decorate_task_with_error_handler, get_default_error_handler
from .exceptions import (
    RejectedExecutionError,
    SchedulerNotInitializedError,
    TaskRejectedError,
)
from .executors.base import BaseExecutor
from .executors.delayed import DelayedTaskExecutor, PeriodicMode, ScheduledFuture, to_seconds
from .log import task_name_of
from .rescheduling import ReschedulingRunnable
from .schemas import (
    CronTriggerConfig,
    DateTriggerConfig,
    IntervalTriggerConfig,
    SchedulerConfig,
    TriggerConfig,
)
from .triggers import CronTrigger, DateTrigger, PeriodicTrigger, Trigger

if TYPE_CHECKING:
    from .context import Clock
    from .error_handlers import ErrorHandler

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRIGGER_REGISTRY: Dict[Type[Any], Callable[[Any], Trigger]] = {
    CronTriggerConfig: CronTrigger.from_config,
    IntervalTriggerConfig: PeriodicTrigger.from_config,
    DateTriggerConfig: DateTrigger.from_config,
}


def create_trigger(config: BaseModel) -> Trigger:
    """
    Create a Trigger implementation from a trigger configuration.

    Args:
        config: Trigger configuration model.

    Returns:
        Trigger implementation instance.

    Raises:
        TypeError: If the configuration type is not supported.
        ExpressionFormatError: If a cron expression is malformed.

    Examples:
        >>> trigger = create_trigger(CronTriggerConfig(expression="0 0 12 * * ?"))
        >>> isinstance(trigger, CronTrigger)
        True
    """
    factory = _TRIGGER_REGISTRY.get(type(config))
    if not factory:
        msg = f"Unsupported trigger config: {type(config).__name__}"
        raise TypeError(msg)
    return factory(config)


class ThreadPoolTaskScheduler(BaseExecutor):
    """
    Thread-based task scheduler with trigger-driven recurring tasks.

    Delayed, fixed-rate and fixed-delay tasks are handed straight to a
    :class:`DelayedTaskExecutor`. Trigger-driven tasks are wrapped in a
    :class:`ReschedulingRunnable` that re-arms itself after every firing,
    so the trigger is evaluated on the worker thread that finished the
    previous run.

    Failures of repeating tasks are logged and suppressed; failures of
    one-shot tasks are logged and surface through the returned future.
    A custom ``error_handler`` replaces both defaults.

    Examples:
        >>> from flash_tasks import ThreadPoolTaskScheduler, CronTrigger
        >>>
        >>> with ThreadPoolTaskScheduler(SchedulerConfig(pool_size=4)) as scheduler:
        ...     handle = scheduler.schedule(send_digest, CronTrigger("0 0 8 * * MON-FRI"))
        ...     scheduler.schedule_at_fixed_rate(heartbeat, timedelta(seconds=5))
        ...     ...
        ...     handle.cancel()
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        error_handler: ErrorHandler | None = None,
        clock: Clock | None = None,
    ) -> None:
        """
        Args:
            config: Pool and shutdown settings. Defaults to TaskSettings from the environment.
            error_handler: Handler used for every task instead of the defaults.
            clock: Wall clock for trigger contexts and start times. Defaults to UTC now.
        """
        self.config = config or TaskSettings().scheduler_config()
        self.error_handler = error_handler
        self._clock = clock or utc_now
        self._executor: DelayedTaskExecutor | None = None
        self._lock = threading.Lock()
        self._pending_tasks: list[tuple[str, Callable[[], Any], Trigger]] = []
        self.scheduled_tasks: dict[str, ReschedulingRunnable | None] = {}

    # Lifecycle

    def initialize(self) -> None:
        """Create the delay executor and arm tasks registered via :meth:`scheduled`."""
        with self._lock:
            if self._executor is not None:
                return
            logger.info(
                "Initializing scheduler with pool_size=%d", self.config.pool_size
            )
            self._executor = DelayedTaskExecutor(
                pool_size=self.config.pool_size,
                thread_name_prefix=self.config.thread_name_prefix,
                max_pending=self.config.max_pending,
            )
            pending, self._pending_tasks = self._pending_tasks, []

        for name, task, trigger in pending:
            self.scheduled_tasks[name] = self.schedule(task, trigger)

    def shutdown(self, wait: bool = True) -> None:
        """
        Shut down the delay executor.

        Recurring schedules are always stopped. Pending one-shot tasks are
        cancelled unless ``wait_for_tasks_to_complete_on_shutdown`` is set, in
        which case they still run when due.

        With ``wait`` the call blocks until the worker threads exit, bounded by
        ``await_termination``. When pending tasks are kept and no
        ``await_termination`` is configured, only the tasks running at this
        moment are waited for.
        """
        executor = self._executor
        if executor is None or executor.is_shutdown:
            return

        logger.info("Shutting down scheduler")
        cancel_pending = not self.config.wait_for_tasks_to_complete_on_shutdown
        executor.shutdown(wait=False, cancel_pending=cancel_pending)

        if not wait:
            return
        timeout = self.config.await_termination
        if timeout is None and not cancel_pending:
            # Kept one-shot tasks may be due far in the future.
            executor.await_running()
            return
        if not executor.await_termination(timeout):
            logger.warning(
                "Timed out after %s while waiting for scheduler threads to terminate",
                timeout,
            )

    def __enter__(self) -> ThreadPoolTaskScheduler:
        self.initialize()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    @property
    def is_running(self) -> bool:
        return self._executor is not None and not self._executor.is_shutdown

    @property
    def executor(self) -> DelayedTaskExecutor:
        if self._executor is None:
            msg = "ThreadPoolTaskScheduler not initialized"
            raise SchedulerNotInitializedError(msg)
        return self._executor

    # Submission

    def _submit(self, task: Callable[[], Any], action: Callable[[DelayedTaskExecutor], T]) -> T:
        executor = self.executor
        try:
            return action(executor)
        except RejectedExecutionError as exc:
            raise TaskRejectedError(task, executor, str(exc)) from exc

    def _error_handling_task(self, task: Callable[[], Any], is_repeating: bool) -> Callable[[], Any]:
        return decorate_task_with_error_handler(
            task, self.error_handler, is_repeating=is_repeating
        )

    def _initial_delay(self, start_time: datetime | None) -> float:
        if start_time is None:
            return 0.0
        return (start_time - self._clock()).total_seconds()

    def execute(self, task: Callable[[], Any]) -> None:
        """Run ``task`` once as soon as a worker is free."""
        self.submit(task)

    def submit(self, task: Callable[[], Any]) -> ScheduledFuture:
        """Run ``task`` once as soon as a worker is free and return its future."""
        wrapped = self._error_handling_task(task, is_repeating=False)
        return self._submit(task, lambda ex: ex.submit(wrapped))

    def schedule(
        self,
        task: Callable[[], Any],
        when: Trigger | TriggerConfig | datetime,
    ) -> ReschedulingRunnable | ScheduledFuture | None:
        """
        Schedule ``task`` by trigger or at a single point in time.

        Args:
            task: Zero-argument callable.
            when: A Trigger (or trigger config) for recurring runs, or an
                aware datetime for a single run. A past datetime runs now.

        Returns:
            A ReschedulingRunnable for triggers, or None when the trigger
            never fires; a ScheduledFuture for a datetime.

        Raises:
            TaskRejectedError: If the executor does not accept the task.
            SchedulerNotInitializedError: If initialize() was not called.
        """
        if isinstance(when, datetime):
            wrapped = self._error_handling_task(task, is_repeating=False)
            delay = self._initial_delay(when)
            return self._submit(task, lambda ex: ex.schedule(wrapped, delay))

        trigger = create_trigger(when) if isinstance(when, BaseModel) else when
        if not isinstance(trigger, Trigger):
            msg = f"Expected a Trigger, trigger config or datetime, got {type(when).__name__}"
            raise TypeError(msg)

        handler = self.error_handler or get_default_error_handler(True)
        return self._submit(
            task,
            lambda ex: ReschedulingRunnable(
                task, trigger, ex, handler, clock=self._clock
            ).schedule(),
        )

    def schedule_at_fixed_rate(
        self,
        task: Callable[[], Any],
        period: timedelta | float,
        start_time: datetime | None = None,
    ) -> ScheduledFuture:
        """
        Run ``task`` every ``period`` measured between start times.

        The first run happens at ``start_time``, or immediately when omitted.
        """
        return self._schedule_periodic(task, period, start_time, PeriodicMode.FIXED_RATE)

    def schedule_with_fixed_delay(
        self,
        task: Callable[[], Any],
        delay: timedelta | float,
        start_time: datetime | None = None,
    ) -> ScheduledFuture:
        """
        Run ``task`` repeatedly, waiting ``delay`` after each completion.

        The first run happens at ``start_time``, or immediately when omitted.
        """
        return self._schedule_periodic(task, delay, start_time, PeriodicMode.FIXED_DELAY)

    def _schedule_periodic(
        self,
        task: Callable[[], Any],
        interval: timedelta | float,
        start_time: datetime | None,
        mode: PeriodicMode,
    ) -> ScheduledFuture:
        if to_seconds(interval) <= 0:
            msg = "period must be positive"
            raise ValueError(msg)
        wrapped = self._error_handling_task(task, is_repeating=True)
        initial_delay = self._initial_delay(start_time)
        return self._submit(
            task,
            lambda ex: ex.schedule_periodic(wrapped, initial_delay, interval, mode),
        )

    # Registration

    def scheduled(
        self,
        trigger: Trigger | TriggerConfig,
        name: str | None = None,
    ):
        """
        Register a function to run on ``trigger`` via decorator.

        Functions registered before :meth:`initialize` are armed when the
        scheduler starts; afterwards they are armed immediately. The handle
        is available in ``scheduled_tasks`` under ``name`` (default: the
        function's qualified name).

        Examples:
            >>> @scheduler.scheduled(CronTriggerConfig(expression="0 */5 * * * ?"))
            ... def refresh_cache():
            ...     ...
        """
        resolved = create_trigger(trigger) if isinstance(trigger, BaseModel) else trigger

        def decorator(func: Callable[[], Any]) -> Callable[[], Any]:
            task_name = name or task_name_of(func)
            with self._lock:
                running = self._executor is not None
                if not running:
                    self._pending_tasks.append((task_name, func, resolved))
            if running:
                self.scheduled_tasks[task_name] = self.schedule(func, resolved)
            return func

        return decorator

    def __repr__(self) -> str:
        state = "running" if self.is_running else "stopped"
        return f"<ThreadPoolTaskScheduler {state} pool_size={self.config.pool_size}>"
