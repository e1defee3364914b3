from .config import TaskSettings
from .context import TriggerContext
from .error_handlers import (
    LOG_AND_PROPAGATE_ERROR_HANDLER,
    LOG_AND_SUPPRESS_ERROR_HANDLER,
    ErrorHandler,
    decorate_task_with_error_handler,
    get_default_error_handler,
)
from .exceptions import (
    ExpressionFormatError,
    FlashTasksError,
    RejectedExecutionError,
    SchedulerNotInitializedError,
    TaskRejectedError,
)
from .executors import DelayedTaskExecutor, PeriodicMode, ScheduledFuture, ThreadPoolTaskExecutor
from .log import scoped_task_name, setup_logging
from .rescheduling import ReschedulingRunnable
from .scheduler import ThreadPoolTaskScheduler, create_trigger
from .schemas import (
    CronTriggerConfig,
    DateTriggerConfig,
    IntervalTriggerConfig,
    SchedulerConfig,
    TaskExecutorConfig,
)
from .triggers import CronTrigger, DateTrigger, PeriodicTrigger, Trigger

__all__ = [
    "LOG_AND_PROPAGATE_ERROR_HANDLER",
    "LOG_AND_SUPPRESS_ERROR_HANDLER",
    "CronTrigger",
    "CronTriggerConfig",
    "DateTrigger",
    "DateTriggerConfig",
    "DelayedTaskExecutor",
    "ErrorHandler",
    "ExpressionFormatError",
    "FlashTasksError",
    "IntervalTriggerConfig",
    "PeriodicMode",
    "PeriodicTrigger",
    "RejectedExecutionError",
    "ReschedulingRunnable",
    "ScheduledFuture",
    "SchedulerConfig",
    "SchedulerNotInitializedError",
    "TaskExecutorConfig",
    "TaskRejectedError",
    "TaskSettings",
    "ThreadPoolTaskExecutor",
    "ThreadPoolTaskScheduler",
    "Trigger",
    "TriggerContext",
    "create_trigger",
    "decorate_task_with_error_handler",
    "get_default_error_handler",
    "scoped_task_name",
    "setup_logging",
]
