from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Tuple

log = logging.getLogger(__name__)


class WorkerPool:
    """
    Bounded offload of blocking calls (network, disk) to threads.

    At most `max_workers` calls run at once; the rest wait their turn.
    """

    def __init__(self, max_workers: int = 4) -> None:
        self.max_workers = max(1, int(max_workers))
        self._semaphore = asyncio.Semaphore(self.max_workers)

    async def run(self, fn: Callable[..., Any], *args: Any) -> Any:
        async with self._semaphore:
            return await asyncio.to_thread(fn, *args)


class ControlContext:
    """
    Single consumer for actions that touch the game server's live sessions.

    `call()` enqueues a callable (sync or async) and waits for its result.
    Actions run one at a time in submission order on the event loop.
    """

    def __init__(self) -> None:
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._consumer = asyncio.get_running_loop().create_task(self._consume(self._queue))

    async def stop(self) -> None:
        consumer, queue = self._consumer, self._queue
        self._consumer = None
        self._queue = None
        if consumer is None:
            return
        consumer.cancel()
        try:
            await consumer
        except asyncio.CancelledError:
            pass
        while queue is not None and not queue.empty():
            _, _, future = queue.get_nowait()
            if not future.done():
                future.set_exception(RuntimeError("control context stopped"))

    async def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        if not self.running:
            self.start()
        queue = self._queue
        if queue is None:
            raise RuntimeError("control context is not running")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await queue.put((fn, args, future))
        return await future

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            item: Tuple[Callable[..., Any], Tuple[Any, ...], asyncio.Future] = await queue.get()
            fn, args, future = item
            try:
                result = fn(*args)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:  # noqa: BLE001
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                queue.task_done()
