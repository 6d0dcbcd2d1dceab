"""Tracked fire-and-forget execution of message handlers.

Every handler invocation runs in its own ``asyncio.Task`` owned by a
``HandlerGroup``, so the server can count, drain or cancel them on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any


class HandlerGroup:
    """Owns in-flight handler tasks.

    Parameters
    ----------
    max_concurrency : int or None
        Maximum number of tasks running at once. ``spawn`` waits for a free
        slot when the ceiling is reached. ``None`` for unbounded.
    logger : logging.Logger or None
        Receives handler failures. Defaults to ``udpserve.dispatch``.

    Examples
    --------
    >>> group = HandlerGroup(max_concurrency=8)
    >>> # await group.spawn(handler, transport, peer, message)
    >>> # await group.drain(timeout=5.0)
    """

    def __init__(
        self,
        max_concurrency: int | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            msg = f"max_concurrency must be >= 1, got {max_concurrency}"
            raise ValueError(msg)
        self._max_concurrency = max_concurrency
        self._slots = (
            asyncio.Semaphore(max_concurrency) if max_concurrency is not None else None
        )
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self._logger = logger or logging.getLogger("udpserve.dispatch")

    @property
    def max_concurrency(self) -> int | None:
        return self._max_concurrency

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._tasks)

    def close(self) -> None:
        """Refuse new work. Tasks already running are left alone."""
        self._closed = True

    async def spawn(
        self, fn: Callable[..., Awaitable[None]], *args: Any
    ) -> asyncio.Task[None] | None:
        """Start ``fn(*args)`` as a tracked task without awaiting it.

        Returns ``None`` without running *fn* once the group is closed,
        including when it closed while waiting for a free slot.
        """
        if self._closed:
            return None
        if self._slots is not None:
            await self._slots.acquire()
            if self._closed:
                self._slots.release()
                return None
        task = asyncio.get_running_loop().create_task(self._run(fn, args))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, fn: Callable[..., Awaitable[None]], args: tuple[Any, ...]) -> None:
        try:
            await fn(*args)
        except Exception:
            self._logger.exception("Handler %s failed", getattr(fn, "__qualname__", fn))

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if self._slots is not None:
            self._slots.release()

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight tasks to finish.

        Tasks spawned while draining are waited for as well.

        Parameters
        ----------
        timeout : float or None
            Upper bound in seconds, ``None`` to wait indefinitely.

        Returns
        -------
        bool
            ``True`` if no task is left running.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                break
            await asyncio.wait(set(self._tasks), timeout=remaining)
        return not self._tasks

    async def cancel_all(self) -> None:
        """Cancel every in-flight task and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
