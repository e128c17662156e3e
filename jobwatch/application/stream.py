"""状态流：无缓冲的单生产者交接通道，支持取消与一次性关闭。"""

from __future__ import annotations

import asyncio
from collections import deque

from jobwatch.domain.models import JobStatus


class StreamClosedError(RuntimeError):
    """状态流已关闭且没有剩余快照。"""


class StatusStream:
    """作业状态快照的交接通道。

    生产者（监控循环）通过 send/offer 交付快照，只有生产者可以 close；
    消费者通过 receive 或 async for 读取，通过 cancel 请求停止后台轮询。
    通道本身不缓存快照：offer 只在有消费者等待时成功。
    """

    def __init__(self, cancel_event: asyncio.Event | None = None) -> None:
        self._receivers: deque[asyncio.Future[JobStatus]] = deque()
        self._receiver_arrived = asyncio.Event()
        # 消费者在交接瞬间被取消时，已交出的快照暂存于此，下一次 receive 优先返回。
        self._returned: deque[JobStatus] = deque()
        self._cancel_event = cancel_event if cancel_event is not None else asyncio.Event()
        self._closed = asyncio.Event()
        self.task: asyncio.Task[JobStatus | None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel_event

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """请求停止后台轮询；流随后由生产者关闭，不再交付终态快照。"""
        self._cancel_event.set()

    async def send(self, status: JobStatus) -> None:
        """阻塞直到某个消费者取走快照。"""
        await self._handoff(status, deadline=None)

    async def offer(self, status: JobStatus, deadline: float) -> bool:
        """在事件循环时间 deadline 之前尝试交付快照，返回是否交付成功。"""
        return await self._handoff(status, deadline=deadline)

    async def _handoff(self, status: JobStatus, deadline: float | None) -> bool:
        if self.closed:
            raise StreamClosedError("cannot publish to a closed status stream")
        loop = asyncio.get_running_loop()
        while True:
            while self._receivers:
                waiter = self._receivers.popleft()
                if not waiter.done():
                    waiter.set_result(status)
                    return True
            self._receiver_arrived.clear()
            if deadline is None:
                await self._receiver_arrived.wait()
                continue
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            try:
                await asyncio.wait_for(self._receiver_arrived.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return False

    async def receive(self) -> JobStatus:
        """读取下一个快照；流关闭且无剩余快照时抛出 StreamClosedError。"""
        if self._returned:
            return self._returned.popleft()
        if self.closed:
            raise StreamClosedError("status stream is closed")
        waiter: asyncio.Future[JobStatus] = asyncio.get_running_loop().create_future()
        self._receivers.append(waiter)
        self._receiver_arrived.set()
        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                self._returned.append(waiter.result())
            raise

    def close(self) -> None:
        """关闭状态流，可重复调用；仍在等待的消费者会收到 StreamClosedError。"""
        if self.closed:
            return
        self._closed.set()
        while self._receivers:
            waiter = self._receivers.popleft()
            if not waiter.done():
                waiter.set_exception(StreamClosedError("status stream is closed"))

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def __aiter__(self) -> StatusStream:
        return self

    async def __anext__(self) -> JobStatus:
        try:
            return await self.receive()
        except StreamClosedError:
            raise StopAsyncIteration from None
