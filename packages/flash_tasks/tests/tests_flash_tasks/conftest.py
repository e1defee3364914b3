import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
from flash_tasks.context import TriggerContext
from flash_tasks.executors.delayed import DelayedTaskExecutor
from flash_tasks.scheduler import ThreadPoolTaskScheduler
from flash_tasks.schemas import SchedulerConfig


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class Recorder:
    """Callable task that records its runs and can be told to fail."""

    def __init__(self, fail: bool = False, result=None):
        self.fail = fail
        self.result = result
        self.calls = 0
        self.threads: list[str] = []
        self._lock = threading.Lock()
        self.called = threading.Event()

    def __call__(self):
        with self._lock:
            self.calls += 1
            self.threads.append(threading.current_thread().name)
        self.called.set()
        if self.fail:
            raise ValueError("task failed")
        return self.result

    def wait_for_calls(self, n: int, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.calls >= n:
                return True
            time.sleep(0.005)
        return self.calls >= n


@pytest.fixture
def utc():
    return timezone.utc


@pytest.fixture
def fake_clock():
    """Clock frozen at Thursday, Jan 1st 2026 00:00:00 UTC."""
    return FakeClock(datetime(2026, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def make_context():
    """Build a TriggerContext with a fixed clock and optional history."""

    def _make(now, scheduled=None, actual=None, completion=None):
        ctx = TriggerContext(clock=lambda: now)
        if scheduled or actual or completion:
            ctx.update(scheduled, actual, completion)
        return ctx

    return _make


@pytest.fixture
def make_recorder():
    """Factory for Recorder tasks."""
    return Recorder


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def failing_recorder():
    return Recorder(fail=True)


@pytest.fixture
def executor():
    """Two-thread delay executor, shut down after the test."""
    ex = DelayedTaskExecutor(pool_size=2, thread_name_prefix="test-delay-")
    yield ex
    ex.shutdown(wait=True)


@pytest.fixture
def scheduler():
    """Initialized scheduler with two workers."""
    sched = ThreadPoolTaskScheduler(
        SchedulerConfig(pool_size=2, thread_name_prefix="test-sched-")
    )
    sched.initialize()
    yield sched
    sched.shutdown()
