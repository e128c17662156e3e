"""监控注册表：按 job_id 管理多个并发监控任务，支持取消与整体关闭。"""

from __future__ import annotations

import asyncio
import logging

from jobwatch.application.monitor import monitor
from jobwatch.application.stream import StatusStream
from jobwatch.domain.models import JobStatus
from jobwatch.infra.http.session import AuthSession
from jobwatch.infra.jobs.fetcher import StatusFetcher

logger = logging.getLogger(__name__)


class MonitorRegistry:
    """多作业监控协调器，所有监控共享同一个会话与 HTTP 客户端。"""

    def __init__(
        self,
        *,
        session: AuthSession,
        default_interval: float,
        fetcher: StatusFetcher | None = None,
    ) -> None:
        self._session = session
        self._default_interval = default_interval
        self._fetcher = fetcher or StatusFetcher()
        self._streams: dict[str, StatusStream] = {}

    def start(self, initial_status: JobStatus, interval: float | None = None) -> StatusStream:
        """为作业启动监控；同一 job_id 已有活跃监控时抛出 ValueError。"""
        job_id = initial_status.job_id
        existing = self._streams.get(job_id)
        if existing is not None and not existing.closed:
            raise ValueError(f"job {job_id} is already being monitored")

        stream = monitor(
            self._session,
            initial_status,
            interval if interval is not None else self._default_interval,
            fetcher=self._fetcher,
        )
        self._streams[job_id] = stream
        logger.info(
            "job monitor registered",
            extra={"event": "job.monitor.registered", "job_id": job_id},
        )
        return stream

    def get(self, job_id: str) -> StatusStream:
        stream = self._streams.get(job_id)
        if stream is None:
            raise KeyError(f"job not monitored: {job_id}")
        return stream

    def cancel(self, job_id: str) -> None:
        """请求停止指定作业的监控。"""
        self.get(job_id).cancel()
        logger.info("job monitor cancel requested", extra={"event": "job.monitor.cancel", "job_id": job_id})

    def active_jobs(self) -> list[str]:
        return [job_id for job_id, stream in self._streams.items() if not stream.closed]

    def discard_finished(self) -> list[str]:
        """移除已关闭的监控条目并返回被移除的 job_id。"""
        finished = [job_id for job_id, stream in self._streams.items() if stream.closed]
        for job_id in finished:
            del self._streams[job_id]
        return finished

    async def shutdown(self) -> None:
        """取消全部监控并等待后台任务退出。"""
        logger.info("shutting down job monitors", extra={"event": "job.monitor.shutdown.started"})
        for stream in self._streams.values():
            stream.cancel()
        running = [(job_id, stream.task) for job_id, stream in self._streams.items() if stream.task is not None]
        if running:
            results = await asyncio.gather(*(task for _, task in running), return_exceptions=True)
            for (job_id, _task), result in zip(running, results):
                if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                    logger.error(
                        "job monitor exited with error",
                        extra={
                            "event": "job.monitor.shutdown.error",
                            "job_id": job_id,
                            "error_type": type(result).__name__,
                            "error": str(result),
                        },
                    )
        self._streams.clear()
        logger.info("job monitors shut down", extra={"event": "job.monitor.shutdown.succeeded"})
