from datetime import timedelta

import pytest
from flash_tasks import TaskSettings


class TestTaskSettings:
    def test_defaults(self):
        settings = TaskSettings()
        assert settings.POOL_SIZE == 1
        assert settings.THREAD_NAME_PREFIX == "flash-scheduler-"
        assert settings.MAX_PENDING is None
        assert settings.WAIT_FOR_TASKS_TO_COMPLETE_ON_SHUTDOWN is False
        assert settings.LOG_LEVEL == "INFO"

    def test_env_variable_overrides(self, monkeypatch):
        """Verify that FLASH_TASKS_* variables override the defaults."""
        monkeypatch.setenv("FLASH_TASKS_POOL_SIZE", "4")
        monkeypatch.setenv("FLASH_TASKS_WAIT_FOR_TASKS_TO_COMPLETE_ON_SHUTDOWN", "true")
        monkeypatch.setenv("FLASH_TASKS_EXECUTOR_QUEUE_CAPACITY", "50")

        settings = TaskSettings()
        assert settings.POOL_SIZE == 4
        assert settings.WAIT_FOR_TASKS_TO_COMPLETE_ON_SHUTDOWN is True
        assert settings.EXECUTOR_QUEUE_CAPACITY == 50

    def test_unprefixed_variables_ignored(self, monkeypatch):
        monkeypatch.setenv("POOL_SIZE", "8")

        assert TaskSettings().POOL_SIZE == 1

    def test_pool_size_must_be_positive(self):
        with pytest.raises(ValueError, match="POOL_SIZE must be 1 or higher"):
            TaskSettings(POOL_SIZE=0)

    def test_executor_workers_must_be_positive(self):
        with pytest.raises(ValueError, match="EXECUTOR_MAX_WORKERS must be 1 or higher"):
            TaskSettings(EXECUTOR_MAX_WORKERS=0)

    def test_scheduler_config(self):
        config = TaskSettings(
            POOL_SIZE=3,
            MAX_PENDING=100,
            AWAIT_TERMINATION_SECONDS=2.5,
        ).scheduler_config()

        assert config.pool_size == 3
        assert config.max_pending == 100
        assert config.await_termination == timedelta(seconds=2.5)

    def test_scheduler_config_without_termination_timeout(self):
        assert TaskSettings().scheduler_config().await_termination is None

    def test_executor_config(self):
        config = TaskSettings(EXECUTOR_MAX_WORKERS=2, EXECUTOR_QUEUE_CAPACITY=5).executor_config()

        assert config.max_workers == 2
        assert config.queue_capacity == 5
