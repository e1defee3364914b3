"""Error handling strategies for scheduled work."""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Protocol, runtime_checkable

from .log import scoped_task_name, task_name_of

logger = logging.getLogger(__name__)


@runtime_checkable
class ErrorHandler(Protocol):
    """
    Strategy invoked with any exception raised by a scheduled task.

    Implementations decide whether the failure is swallowed (the schedule
    keeps running) or re-raised (the current handle fails).
    """

    def handle_error(self, exc: BaseException) -> None: ...


class LoggingErrorHandler:
    """
    Logs the failure at error level and performs no further handling.

    Useful when suppressing errors is the intended behaviour, e.g. for
    repeating tasks that must keep their cadence.
    """

    def handle_error(self, exc: BaseException) -> None:
        logger.error("Unexpected error occurred in scheduled task.", exc_info=exc)

    def __repr__(self) -> str:
        return "LoggingErrorHandler()"


class PropagatingErrorHandler(LoggingErrorHandler):
    """Logs the failure at error level and then re-raises it."""

    def handle_error(self, exc: BaseException) -> None:
        super().handle_error(exc)
        raise exc

    def __repr__(self) -> str:
        return "PropagatingErrorHandler()"


LOG_AND_SUPPRESS_ERROR_HANDLER: ErrorHandler = LoggingErrorHandler()
LOG_AND_PROPAGATE_ERROR_HANDLER: ErrorHandler = PropagatingErrorHandler()


def get_default_error_handler(is_repeating: bool) -> ErrorHandler:
    """
    Return the default handler for a task.

    Repeating tasks suppress errors so later runs are not prevented;
    one-shot tasks propagate them so they surface through the returned
    future. Both log first.
    """
    if is_repeating:
        return LOG_AND_SUPPRESS_ERROR_HANDLER
    return LOG_AND_PROPAGATE_ERROR_HANDLER


class DelegatingErrorHandlingRunnable:
    """
    Callable wrapper that routes any exception of the delegate to a handler.

    Every call runs under the delegate's task name, so log records emitted
    by the task and by the handler are tagged with it.

    Examples:
        >>> wrapped = DelegatingErrorHandlingRunnable(job, LOG_AND_SUPPRESS_ERROR_HANDLER)
        >>> wrapped()  # returns None instead of raising if job() fails
    """

    def __init__(self, delegate: Callable[[], Any], error_handler: ErrorHandler):
        if not callable(delegate):
            msg = "Delegate must be callable"
            raise TypeError(msg)
        if error_handler is None:
            msg = "ErrorHandler must not be None"
            raise TypeError(msg)
        self.delegate = delegate
        self.error_handler = error_handler
        self.task_name = task_name_of(delegate)
        functools.update_wrapper(self, delegate, updated=())

    def __call__(self) -> Any:
        with scoped_task_name(self.task_name):
            try:
                return self.delegate()
            except Exception as exc:
                self.error_handler.handle_error(exc)
                return None

    def __repr__(self) -> str:
        return f"DelegatingErrorHandlingRunnable for {self.delegate!r}"


def decorate_task_with_error_handler(
    task: Callable[[], Any],
    error_handler: ErrorHandler | None = None,
    *,
    is_repeating: bool,
) -> DelegatingErrorHandlingRunnable:
    """
    Decorate a task for error handling.

    An explicit ``error_handler`` always wins. Otherwise the default is
    chosen by :func:`get_default_error_handler`. Tasks that are already
    decorated are returned unchanged.

    Args:
        task: Zero-argument callable to protect.
        error_handler: Optional handler overriding the default.
        is_repeating: Whether the task is scheduled more than once.

    Returns:
        The wrapped callable.
    """
    if isinstance(task, DelegatingErrorHandlingRunnable):
        return task
    handler = error_handler if error_handler is not None else get_default_error_handler(is_repeating)
    return DelegatingErrorHandlingRunnable(task, handler)
