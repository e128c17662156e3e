"""轮询节拍控制：固定间隔的异步 ticker，最多缓存一个未消费的节拍。"""

from __future__ import annotations

import asyncio


class CadenceTicker:
    """固定间隔节拍源，节拍落在 start + n*interval 的网格上，错过的节拍直接丢弃。"""

    def __init__(self, interval: float) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")
        self._interval = float(interval)
        self._fired = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._next_at = 0.0
        self._stopped = False
        self.ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._stopped

    def start(self) -> CadenceTicker:
        """启动节拍并返回自身作为节拍源；每个 ticker 只能启动一次。"""
        if self._task is not None:
            raise RuntimeError("CadenceTicker is already started")
        loop = asyncio.get_running_loop()
        self._next_at = loop.time() + self._interval
        self._task = loop.create_task(self._run(), name="cadence-ticker")
        return self

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(max(0.0, self._next_at - loop.time()))
            self._fired.set()
            self.ticks += 1
            now = loop.time()
            self._next_at += self._interval
            while self._next_at <= now:
                self._next_at += self._interval

    async def wait(self) -> None:
        """等待并消费下一个节拍；已有未消费节拍时立即返回。"""
        if self._task is None:
            raise RuntimeError("CadenceTicker is not started")
        await self._fired.wait()
        self._fired.clear()

    def deadline(self) -> float:
        """返回待消费节拍（若有）或下一个节拍对应的事件循环时间。"""
        if self._fired.is_set():
            return asyncio.get_running_loop().time()
        return self._next_at

    def stop(self) -> None:
        """停止节拍，可重复调用。"""
        if self._stopped:
            return
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
