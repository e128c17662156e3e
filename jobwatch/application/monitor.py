"""作业状态监控：后台轮询循环、终态识别与状态流交付。"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar
from uuid import uuid4

from jobwatch.application.cadence import CadenceTicker
from jobwatch.application.stream import StatusStream
from jobwatch.domain.enums import MonitorState
from jobwatch.domain.models import JobStatus
from jobwatch.infra.http.session import AuthSession
from jobwatch.infra.jobs.fetcher import StatusFetcher, StatusFetchError
from jobwatch.infra.logging.context import bind_log_context

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MonitorCancelledError(RuntimeError):
    """监控在观察到终态之前被取消。"""


class MonitorLoop:
    """单个作业的轮询状态机。

    每个周期先查询一次状态：
    - 终态（COMPLETED/ERROR）：阻塞交付给消费者，随后停止节拍并关闭状态流；
    - 非终态：在下一个节拍到来前尝试交付，交付与否都要等到节拍后才发起下一次查询。
    查询失败只记录日志，快照保持不变，永远不会结束循环。
    """

    def __init__(
        self,
        *,
        session: AuthSession,
        initial_status: JobStatus,
        ticker: CadenceTicker,
        stream: StatusStream,
        fetcher: StatusFetcher | None = None,
    ) -> None:
        self._session = session
        self._snapshot = initial_status
        self._ticker = ticker
        self._stream = stream
        self._fetcher = fetcher or StatusFetcher()
        self.state = MonitorState.polling
        self.attempts = 0
        self.failures = 0
        self.published = 0

    @property
    def snapshot(self) -> JobStatus:
        return self._snapshot

    async def run(self) -> JobStatus | None:
        """运行至终态并返回终态快照；被取消时返回 None。"""
        self._ticker.start()
        logger.info(
            "job monitor started",
            extra={
                "event": "job.monitor.started",
                "payload_preview": {
                    "callback_url": self._snapshot.callback_url,
                    "interval_seconds": self._ticker.interval,
                },
            },
        )
        try:
            while True:
                await self._poll()
                snapshot = self._snapshot
                if snapshot.is_terminal:
                    await self._wait_cancellable(self._stream.send(snapshot))
                    self.published += 1
                    self.state = MonitorState.terminated
                    logger.info(
                        "job monitor finished",
                        extra={
                            "event": "job.monitor.terminated",
                            "attempt": self.attempts,
                            "payload_preview": {"status": snapshot.status, "failures": self.failures},
                        },
                    )
                    return snapshot

                delivered = await self._wait_cancellable(self._stream.offer(snapshot, self._ticker.deadline()))
                if delivered:
                    self.published += 1
                await self._wait_cancellable(self._ticker.wait())
        except MonitorCancelledError:
            self.state = MonitorState.cancelled
            logger.info(
                "job monitor cancelled",
                extra={"event": "job.monitor.cancelled", "attempt": self.attempts},
            )
            return None
        except asyncio.CancelledError:
            self.state = MonitorState.cancelled
            logger.info(
                "job monitor task cancelled",
                extra={"event": "job.monitor.cancelled", "attempt": self.attempts},
            )
            raise
        except Exception as exc:
            logger.exception(
                "job monitor crashed",
                extra={"event": "job.monitor.failed", "error_type": type(exc).__name__, "error": str(exc)},
            )
            raise
        finally:
            self._ticker.stop()
            self._stream.close()

    async def _poll(self) -> None:
        self.attempts += 1
        try:
            self._snapshot = await self._wait_cancellable(self._fetcher.query(self._session, self._snapshot))
        except StatusFetchError as exc:
            self.failures += 1
            logger.warning(
                "job status poll failed, retrying on next tick",
                extra={
                    "event": "job.monitor.poll.failed",
                    "attempt": self.attempts,
                    "status_code": getattr(exc, "status_code", None),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    async def _wait_cancellable(self, aw: Awaitable[T]) -> T:
        """等待 aw 完成，期间若状态流被取消则中止并抛出 MonitorCancelledError。"""
        cancel_task = asyncio.ensure_future(self._stream.cancel_event.wait())
        main_task = asyncio.ensure_future(aw)
        try:
            done, _pending = await asyncio.wait([main_task, cancel_task], return_when=asyncio.FIRST_COMPLETED)
            if main_task in done:
                return main_task.result()
            raise MonitorCancelledError("job monitor was cancelled")
        finally:
            for task in (main_task, cancel_task):
                if not task.done():
                    task.cancel()


def monitor(
    session: AuthSession,
    initial_status: JobStatus,
    interval: float,
    *,
    fetcher: StatusFetcher | None = None,
    cancel_event: asyncio.Event | None = None,
) -> StatusStream:
    """在后台启动轮询并返回状态流，必须在运行中的事件循环内调用。

    interval 为秒。cancel_event 被置位或调用 stream.cancel() 都会停止轮询。
    """
    stream = StatusStream(cancel_event)
    loop = MonitorLoop(
        session=session,
        initial_status=initial_status,
        ticker=CadenceTicker(interval),
        stream=stream,
        fetcher=fetcher,
    )
    # 任务创建时复制当前 contextvars，后台轮询日志自动带上 job_id。
    with bind_log_context(job_id=initial_status.job_id, monitor_id=uuid4().hex[:12]):
        stream.task = asyncio.get_running_loop().create_task(
            loop.run(),
            name=f"job-monitor-{initial_status.job_id}",
        )
    return stream


async def wait_for_terminal(stream: StatusStream) -> JobStatus:
    """读完状态流并返回终态快照；流在无终态的情况下关闭时抛出 MonitorCancelledError。"""
    last: JobStatus | None = None
    async for status in stream:
        last = status
    if last is None or not last.is_terminal:
        raise MonitorCancelledError("status stream closed before a terminal status was observed")
    return last
