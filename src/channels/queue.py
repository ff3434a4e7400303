"""
Single-concurrency FIFO job queue for a channel.

Jobs run one at a time in submission order, so turns that arrive on the
same channel never interleave their memory and ledger updates. A failing
job only fails its own submitter; the worker keeps going.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from src.utils.logging import get_logger

logger = get_logger("serial_queue")

T = TypeVar("T")


class SerialQueue:
    """
    Usage:
        queue = SerialQueue(name="whatsapp")
        result = await queue.submit(lambda: brain.handle_message(key, text))
        await queue.close()
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._queue: asyncio.Queue[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] | None = None
        self._worker: asyncio.Task | None = None
        self._processed = 0

    async def submit(self, job: Callable[[], Awaitable[T]]) -> T:
        """Enqueue a job and wait for its result (or its exception)."""
        self._ensure_worker()
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put((job, future))
        return await future

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def processed(self) -> int:
        return self._processed

    async def close(self) -> None:
        """Finish queued jobs, then stop the worker."""
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("serial_queue_closed", name=self.name, processed=self._processed)

    def _ensure_worker(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            job, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                try:
                    result = await job()
                except Exception as e:
                    logger.warning("serial_job_failed", name=self.name, error=str(e))
                    if not future.cancelled():
                        future.set_exception(e)
                else:
                    if not future.cancelled():
                        future.set_result(result)
                self._processed += 1
            finally:
                self._queue.task_done()
