import logging
from logging.handlers import RotatingFileHandler

import pytest
from flash_tasks.log import (
    TaskFormatter,
    current_task_name,
    scoped_task_name,
    setup_logging,
    task_name_of,
)


@pytest.fixture
def restore_logger():
    """setup_logging mutates the package logger; put it back afterwards."""
    logger = logging.getLogger("flash_tasks")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def make_record(msg="hello"):
    return logging.LogRecord("flash_tasks.test", logging.INFO, __file__, 1, msg, None, None)


def test_formatter_injects_task_name():
    formatter = TaskFormatter("%(task_str)s%(message)s")

    with scoped_task_name("nightly_report"):
        assert formatter.format(make_record()) == "[nightly_report] hello"
    assert formatter.format(make_record()) == "hello"


def test_formatter_utc_timestamp():
    formatter = TaskFormatter("%(asctime)s")
    record = make_record()
    record.created = 0
    record.msecs = 5

    assert formatter.format(record) == "1970-01-01 00:00:00.005Z"


def test_scoped_task_name_resets():
    with scoped_task_name("outer"):
        with scoped_task_name("inner"):
            assert current_task_name.get() == "inner"
        assert current_task_name.get() == "outer"
    assert current_task_name.get() is None


def test_task_name_of():
    def job():
        pass

    class Job:
        def __call__(self):
            pass

    assert task_name_of(job).endswith("job")
    assert "Job object" in task_name_of(Job())


def test_setup_logging_console_only(restore_logger):
    setup_logging(level="DEBUG")

    assert restore_logger.level == logging.DEBUG
    assert len(restore_logger.handlers) == 1
    assert isinstance(restore_logger.handlers[0].formatter, TaskFormatter)
    assert restore_logger.propagate is False


def test_setup_logging_with_file(restore_logger, tmp_path):
    log_file = tmp_path / "logs" / "tasks.log"

    setup_logging(log_file=log_file)
    logging.getLogger("flash_tasks.scheduler").info("started")
    for handler in restore_logger.handlers:
        handler.flush()

    assert any(isinstance(h, RotatingFileHandler) for h in restore_logger.handlers)
    assert "flash_tasks.scheduler: started" in log_file.read_text()


def test_setup_logging_level_from_environment(restore_logger, monkeypatch):
    monkeypatch.setenv("FLASH_TASKS_LOG_LEVEL", "warning")

    setup_logging()

    assert restore_logger.level == logging.WARNING
