"""Abstract base class for task executors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from concurrent.futures import Future


class BaseExecutor(ABC):
    """
    Interface for classes that run tasks on worker threads.

    Executors are responsible for:
    1. Accepting a zero-argument callable.
    2. Running it on one of their threads.
    3. Exposing the outcome through a future.
    4. Refusing work once they are shut down or out of capacity.

    Examples:
        >>> class InlineExecutor(BaseExecutor):
        ...     def submit(self, task): ...
        ...     def shutdown(self, wait=True): ...
    """

    @abstractmethod
    def submit(self, task: Callable[[], Any]) -> Future[Any] | Any:
        """
        Submit a task to run as soon as a worker is free.

        Raises:
            RejectedExecutionError | TaskRejectedError: If the task cannot be accepted.
        """
        ...

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting work.

        Args:
            wait: If True, block until running tasks have finished.
        """
        ...
