import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar, Token
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Generator, Optional, Union

from .config import TaskSettings

# Name of the scheduled task firing on the current worker thread
current_task_name: ContextVar[Optional[str]] = ContextVar("current_task_name", default=None)


class TaskFormatter(logging.Formatter):
    """
    Formatter that injects the firing task's name and enforces UTC.
    """

    def __init__(self, fmt: str | None = None, datefmt: str | None = None):
        super().__init__(fmt, datefmt)
        self.converter = time.gmtime

    def formatTime(self, record, datefmt=None):
        """Strict ISO-8601 UTC timestamps."""
        ct = self.converter(record.created)
        if datefmt:
            return time.strftime(datefmt, ct)
        t = time.strftime("%Y-%m-%d %H:%M:%S", ct)
        return "%s.%03dZ" % (t, record.msecs)

    def format(self, record: logging.LogRecord) -> str:
        name = current_task_name.get()
        record.task_str = f"[{name}] " if name else ""
        return super().format(record)


def task_name_of(task: Any) -> str:
    """Human readable name for a scheduled callable."""
    name = getattr(task, "__qualname__", None) or getattr(task, "__name__", None)
    return name if name else repr(task)


def setup_logging(
    level: Union[int, str, None] = None,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10_485_760,  # 10MB
    backup_count: int = 10,
    capture_roots: bool = False,
    module_name: str = "flash_tasks",
) -> None:
    """
    Configure logging for the scheduler.

    Args:
        level: Logging level (INFO, DEBUG, etc.). Defaults to FLASH_TASKS_LOG_LEVEL.
        log_file: Path to write logs to.
        capture_roots: If True, configures the root logger.
                       If False, only configures 'flash_tasks.*' loggers.
    """
    if level is None:
        level = TaskSettings().LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    target_logger = (
        logging.getLogger() if capture_roots else logging.getLogger(module_name)
    )

    # Allows reconfiguration during tests
    target_logger.handlers.clear()
    target_logger.setLevel(level)

    log_format = "%(asctime)s %(levelname)-8s %(threadName)s %(task_str)s%(name)s: %(message)s"
    formatter = TaskFormatter(log_format)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    target_logger.addHandler(console)

    if log_file:
        file_path = Path(log_file).resolve()
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            target_logger.addHandler(file_handler)
        except OSError as e:
            # Read-only file systems keep the stdout handler only
            sys.stderr.write(f"Failed to setup log file: {e}\n")

    if not capture_roots:
        target_logger.propagate = False


def set_task_name(value: str) -> Token:
    return current_task_name.set(value)


def reset_task_name(token: Token) -> None:
    current_task_name.reset(token)


@contextmanager
def scoped_task_name(value: str) -> Generator[None, None, None]:
    """
    Context manager tagging every log record emitted inside with a task name.

    >>> with scoped_task_name("nightly_report"):
    ...     logger.info("running")  # -> "... [nightly_report] ..."
    """
    token = set_task_name(value)
    try:
        yield
    finally:
        reset_task_name(token)
