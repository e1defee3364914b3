import logging
import threading

import pytest
from flash_tasks.exceptions import TaskRejectedError
from flash_tasks.executors.pool import ThreadPoolTaskExecutor
from flash_tasks.schemas import TaskExecutorConfig


@pytest.fixture
def pool():
    executor = ThreadPoolTaskExecutor(TaskExecutorConfig(max_workers=2, thread_name_prefix="pool-"))
    yield executor
    executor.shutdown(wait=True)


def test_submit_returns_future(pool):
    assert pool.submit(lambda: 7).result(timeout=2) == 7


def test_threads_use_prefix(pool):
    name = pool.submit(lambda: threading.current_thread().name).result(timeout=2)

    assert name.startswith("pool-")


def test_execute_logs_failures(pool, caplog):
    done = threading.Event()

    def boom():
        try:
            raise ValueError("pool boom")
        finally:
            done.set()

    with caplog.at_level(logging.ERROR, logger="flash_tasks.error_handlers"):
        pool.execute(boom)
        assert done.wait(2)
        pool.shutdown(wait=True)

    assert "Unexpected error occurred in scheduled task." in caplog.text


def test_rejects_when_capacity_exhausted():
    executor = ThreadPoolTaskExecutor(TaskExecutorConfig(max_workers=1, queue_capacity=1))
    release = threading.Event()
    try:
        executor.submit(release.wait)
        executor.submit(release.wait)

        with pytest.raises(TaskRejectedError, match="capacity exhausted") as exc:
            executor.submit(lambda: None)
        assert exc.value.executor is executor
    finally:
        release.set()
        executor.shutdown(wait=True)


def test_capacity_is_released_after_completion():
    executor = ThreadPoolTaskExecutor(TaskExecutorConfig(max_workers=1, queue_capacity=0))
    try:
        executor.submit(lambda: 1).result(timeout=2)
        assert executor.submit(lambda: 2).result(timeout=2) == 2
    finally:
        executor.shutdown(wait=True)


def test_rejects_after_shutdown():
    executor = ThreadPoolTaskExecutor()
    executor.shutdown()

    def task():
        return None

    with pytest.raises(TaskRejectedError) as exc:
        executor.submit(task)
    assert exc.value.task is task
