"""
Environment-driven settings for the task scheduler.
"""

from datetime import timedelta
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas import SchedulerConfig, TaskExecutorConfig


class TaskSettings(BaseSettings):
    """
    Defaults for schedulers and executors, read from ``FLASH_TASKS_*``
    environment variables or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLASH_TASKS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Scheduler ---
    POOL_SIZE: int = 1
    THREAD_NAME_PREFIX: str = "flash-scheduler-"
    MAX_PENDING: Optional[int] = None
    WAIT_FOR_TASKS_TO_COMPLETE_ON_SHUTDOWN: bool = False
    AWAIT_TERMINATION_SECONDS: Optional[float] = None

    # --- Worker pool ---
    EXECUTOR_MAX_WORKERS: int = 10
    EXECUTOR_QUEUE_CAPACITY: Optional[int] = None

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def validate_sizes(self) -> "TaskSettings":
        if self.POOL_SIZE < 1:
            raise ValueError("POOL_SIZE must be 1 or higher")
        if self.EXECUTOR_MAX_WORKERS < 1:
            raise ValueError("EXECUTOR_MAX_WORKERS must be 1 or higher")
        return self

    def scheduler_config(self) -> SchedulerConfig:
        await_termination = None
        if self.AWAIT_TERMINATION_SECONDS is not None:
            await_termination = timedelta(seconds=self.AWAIT_TERMINATION_SECONDS)
        return SchedulerConfig(
            pool_size=self.POOL_SIZE,
            thread_name_prefix=self.THREAD_NAME_PREFIX,
            max_pending=self.MAX_PENDING,
            wait_for_tasks_to_complete_on_shutdown=self.WAIT_FOR_TASKS_TO_COMPLETE_ON_SHUTDOWN,
            await_termination=await_termination,
        )

    def executor_config(self) -> TaskExecutorConfig:
        return TaskExecutorConfig(
            max_workers=self.EXECUTOR_MAX_WORKERS,
            queue_capacity=self.EXECUTOR_QUEUE_CAPACITY,
        )
