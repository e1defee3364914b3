import logging
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
from flash_tasks.error_handlers import LOG_AND_PROPAGATE_ERROR_HANDLER
from flash_tasks.exceptions import ExpressionFormatError, RejectedExecutionError
from flash_tasks.executors.delayed import DelayedTaskExecutor
from flash_tasks.rescheduling import ReschedulingRunnable
from flash_tasks.triggers import CronTrigger, DateTrigger, PeriodicTrigger, Trigger


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class TestArming:
    def test_schedule_returns_self(self, executor, recorder):
        handle = ReschedulingRunnable(recorder, PeriodicTrigger(60, initial_delay=30), executor)

        assert handle.schedule() is handle
        assert handle.scheduled_execution_time is not None
        assert timedelta(seconds=29) < handle.get_delay() <= timedelta(seconds=30)

    def test_first_time_comes_from_trigger_and_clock(self, executor, recorder, fake_clock):
        handle = ReschedulingRunnable(
            recorder, CronTrigger("* * * * * *"), executor, clock=fake_clock
        ).schedule()

        assert handle.scheduled_execution_time == datetime(2026, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
        assert timedelta(0) < handle.get_delay() <= timedelta(seconds=1)
        handle.cancel()

    def test_retired_trigger_returns_none(self, executor, recorder):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        trigger = PeriodicTrigger(10, end_time=past)

        assert ReschedulingRunnable(recorder, trigger, executor).schedule() is None
        assert executor.pending_count == 0

    def test_rejected_when_executor_shut_down(self, recorder):
        ex = DelayedTaskExecutor()
        ex.shutdown()

        with pytest.raises(RejectedExecutionError):
            ReschedulingRunnable(recorder, PeriodicTrigger(1), ex).schedule()

    def test_ordering_by_delay(self, executor, recorder):
        sooner = ReschedulingRunnable(recorder, PeriodicTrigger(60, initial_delay=5), executor).schedule()
        later = ReschedulingRunnable(recorder, PeriodicTrigger(60, initial_delay=50), executor).schedule()

        assert sooner < later
        assert later.compare_to(sooner) == 1
        assert sooner.compare_to(sooner) == 0


class TestFiring:
    def test_every_firing_updates_context(self, executor, recorder):
        handle = ReschedulingRunnable(recorder, PeriodicTrigger(0.01), executor).schedule()

        assert recorder.wait_for_calls(3)
        handle.cancel()
        assert wait_until(lambda: handle.fire_count == recorder.calls)

        times = handle.context.snapshot()
        assert times.last_scheduled_execution_time is not None
        assert times.last_completion_time >= times.last_actual_execution_time

    def test_firings_never_overlap(self, executor):
        active = 0
        overlaps = 0
        lock = threading.Lock()

        def task():
            nonlocal active, overlaps
            with lock:
                active += 1
                if active > 1:
                    overlaps += 1
            time.sleep(0.01)
            with lock:
                active -= 1

        handle = ReschedulingRunnable(
            task, PeriodicTrigger(0.001, fixed_rate=True), executor
        ).schedule()
        assert wait_until(lambda: handle.fire_count >= 5)
        handle.cancel()

        assert overlaps == 0

    def test_one_time_trigger_fires_once(self, executor, recorder):
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        handle = ReschedulingRunnable(recorder, DateTrigger(past), executor).schedule()

        assert recorder.wait_for_calls(1)
        assert wait_until(handle.done)
        time.sleep(0.05)
        assert recorder.calls == 1
        assert not handle.cancelled()

    def test_failing_task_keeps_rescheduling(self, executor, failing_recorder, caplog):
        with caplog.at_level(logging.ERROR, logger="flash_tasks.error_handlers"):
            handle = ReschedulingRunnable(failing_recorder, PeriodicTrigger(0.01), executor).schedule()
            assert failing_recorder.wait_for_calls(3)
            handle.cancel()

        assert "Unexpected error occurred in scheduled task." in caplog.text

    def test_propagating_handler_ends_schedule(self, executor, failing_recorder):
        handle = ReschedulingRunnable(
            failing_recorder, PeriodicTrigger(0.01), executor, LOG_AND_PROPAGATE_ERROR_HANDLER
        ).schedule()

        with pytest.raises(ValueError, match="task failed"):
            handle.result(timeout=2)
        assert handle.done()
        assert isinstance(handle.exception(), ValueError)
        time.sleep(0.05)
        assert failing_recorder.calls == 1

    def test_result_observes_current_firing(self, executor, make_recorder):
        task = make_recorder(result="value")
        handle = ReschedulingRunnable(task, PeriodicTrigger(0.05), executor).schedule()

        assert task.wait_for_calls(1)
        # The first firing is already replaced by the next pending one
        assert wait_until(lambda: handle.fire_count >= 1)
        with pytest.raises(TimeoutError):
            handle.result(timeout=0.001)
        handle.cancel()

    def test_rearm_after_shutdown_is_logged(self, caplog):
        ex = DelayedTaskExecutor()
        started = threading.Event()
        release = threading.Event()

        def task():
            started.set()
            release.wait(2)

        with caplog.at_level(logging.WARNING, logger="flash_tasks.rescheduling"):
            handle = ReschedulingRunnable(task, PeriodicTrigger(0.01), ex).schedule()
            assert started.wait(2)
            ex.shutdown(wait=False)
            release.set()
            assert ex.await_termination(2)

        assert handle.fire_count == 1
        assert "not rescheduled" in caplog.text

    def test_trigger_failure_on_rearm_is_logged(self, executor, recorder, caplog):
        class BrokenAfterFirstRun(Trigger):
            def next_execution_time(self, context):
                if context.last_completion_time is not None:
                    raise ExpressionFormatError("led to runaway search")
                return context.now()

        with caplog.at_level(logging.ERROR, logger="flash_tasks.rescheduling"):
            handle = ReschedulingRunnable(recorder, BrokenAfterFirstRun(), executor).schedule()
            assert wait_until(lambda: handle.fire_count == 1)
            assert wait_until(handle.done)

        assert recorder.calls == 1
        assert handle.result(timeout=1) is None
        assert "not rescheduled" in caplog.text
        assert caplog.records[-1].exc_info[0] is ExpressionFormatError


class TestCancel:
    def test_cancel_before_first_firing(self, executor, recorder):
        handle = ReschedulingRunnable(recorder, PeriodicTrigger(60, initial_delay=0.2), executor).schedule()

        assert handle.cancel() is True
        assert handle.cancelled()
        assert handle.done()
        time.sleep(0.3)
        assert recorder.calls == 0

    def test_cancel_stops_rearming(self, executor, recorder):
        handle = ReschedulingRunnable(recorder, PeriodicTrigger(0.01), executor).schedule()
        assert recorder.wait_for_calls(2)

        handle.cancel()
        calls = recorder.calls
        time.sleep(0.1)

        assert recorder.calls <= calls + 1
        assert handle.cancelled()

    def test_cancel_from_inside_task(self, executor):
        runs = []
        holder = {}

        def task():
            runs.append(1)
            holder["handle"].cancel()

        handle = ReschedulingRunnable(task, PeriodicTrigger(0.01), executor)
        holder["handle"] = handle
        handle.schedule()

        assert wait_until(lambda: handle.fire_count == 1)
        time.sleep(0.05)
        assert runs == [1]
        assert handle.cancelled()
