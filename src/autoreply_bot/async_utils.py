"""Tracking of in-flight message handler tasks."""

import asyncio
import logging
from typing import Coroutine, Optional, Set

logger = logging.getLogger(__name__)


class HandlerTasks:
    """
    In-flight handler tasks of one session.

    Handlers for different messages run concurrently; the session drains
    them with ``wait_all`` or aborts them with ``cancel_all`` on shutdown.

    Example:
        >>> tasks = HandlerTasks()
        >>> tasks.spawn(handler(message), name="message-ABC")
        >>> await tasks.wait_all(timeout=5)
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def closed(self) -> bool:
        return self._closed

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """
        Run ``coro`` as a tracked task.

        Raises:
            RuntimeError: After ``cancel_all``
        """
        if self._closed:
            coro.close()
            raise RuntimeError("Handler tasks are closed")

        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def cancel_all(self) -> None:
        """Cancel every in-flight task and refuse new ones."""
        self._closed = True
        pending = [task for task in self._tasks if not task.done()]
        if not pending:
            return

        logger.info(f"Cancelling {len(pending)} in-flight handler(s)")
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    async def wait_all(self, timeout: Optional[float] = None) -> None:
        """
        Wait for the tasks in flight now.

        Raises:
            asyncio.TimeoutError: If they are still running after ``timeout``
        """
        if not self._tasks:
            return

        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} handler(s) still running after {timeout}s")
            raise asyncio.TimeoutError()
