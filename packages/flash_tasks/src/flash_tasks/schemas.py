"""Pydantic schemas/data contracts for triggers and executors."""

import zoneinfo
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


def validate_timezone(v: Any) -> Any:
    """Ensure the value is a valid timezone or ZoneInfo object."""
    if isinstance(v, (timezone, zoneinfo.ZoneInfo)):
        return v
    if isinstance(v, str):
        try:
            return zoneinfo.ZoneInfo(v)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as z:
            msg = f"Invalid timezone name: {v}"
            raise ValueError(msg) from z
    msg = f"Invalid timezone type: {type(v).__name__}"
    raise ValueError(msg)


# Pydantic cannot build a core schema for datetime.timezone, so the
# BeforeValidator does the type enforcement.
TzType = Annotated[Any, BeforeValidator(validate_timezone)]


def serialize_tz(v: Any) -> str | None:
    if isinstance(v, zoneinfo.ZoneInfo):
        return v.key
    if isinstance(v, timezone):
        return str(v)
    if v is None:
        return None
    msg = f"Expected str, ZoneInfo, or timezone, got {type(v).__name__}"
    raise ValueError(msg)


class CronTriggerConfig(BaseModel):
    """Configuration for cron-based triggers.

    The expression has six space-separated fields:
    second minute hour day-of-month month day-of-week

    Examples:
        - "0 */15 * * * ?" - every 15 minutes at :00
        - "30 0 9 * * MON-FRI" - 9:00:30 AM on weekdays
        - "0 0 0 1 JAN,JUL ?" - midnight on the first of January and July
    """

    trigger_type: Literal["cron"] = "cron"
    expression: str
    tz: TzType | None = None

    @field_validator("expression")
    @classmethod
    def strip_expression(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "expression must not be empty"
            raise ValueError(msg)
        return v

    @field_serializer("tz")
    def serialize_timezone(self, v: Any) -> str | None:
        """Convert ZoneInfo or timezone object to string for JSON serialization."""
        return serialize_tz(v)


class IntervalTriggerConfig(BaseModel):
    """Configuration for periodic triggers.

    ``fixed_rate`` measures the period between scheduled start times;
    otherwise it is measured from the completion of the previous run.
    """

    trigger_type: Literal["interval"] = "interval"
    weeks: int = 0
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    interval: timedelta | None = None
    initial_delay: timedelta = Field(default=timedelta(0))
    fixed_rate: bool = False
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def period(self) -> timedelta:
        if self.interval is not None:
            return self.interval
        return timedelta(
            weeks=self.weeks,
            days=self.days,
            hours=self.hours,
            minutes=self.minutes,
            seconds=self.seconds,
        )

    @model_validator(mode="after")
    def validate_interval(self) -> "IntervalTriggerConfig":
        if self.period <= timedelta(0):
            msg = "interval must be positive"
            raise ValueError(msg)
        if self.initial_delay < timedelta(0):
            msg = "initial_delay must not be negative"
            raise ValueError(msg)
        return self


class DateTriggerConfig(BaseModel):
    """Configuration for one-time date triggers."""

    trigger_type: Literal["date"] = "date"
    run_at: datetime

    @field_validator("run_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            msg = "run_at must be timezone-aware"
            raise ValueError(msg)
        return v


TriggerConfig = CronTriggerConfig | IntervalTriggerConfig | DateTriggerConfig


class SchedulerConfig(BaseModel):
    """Configuration for the task scheduler and its delay executor."""

    pool_size: int = Field(default=1, ge=1)
    thread_name_prefix: str = "flash-scheduler-"
    max_pending: int | None = Field(default=None, ge=1)
    wait_for_tasks_to_complete_on_shutdown: bool = False
    await_termination: timedelta | None = None

    @field_validator("await_termination")
    @classmethod
    def validate_await_termination(cls, v: timedelta | None) -> timedelta | None:
        if v is not None and v < timedelta(0):
            msg = "await_termination must not be negative"
            raise ValueError(msg)
        return v


class TaskExecutorConfig(BaseModel):
    """Configuration for the bounded worker pool."""

    max_workers: int = Field(default=10, ge=1)
    queue_capacity: int | None = Field(default=None, ge=0)
    thread_name_prefix: str = "flash-executor-"
