"""作业状态查询：对 callback URL 发起单次 GET 并返回更新后的快照。"""

from __future__ import annotations

import json
import logging
import time

import httpx
from pydantic import ValidationError

from jobwatch.domain.models import JobStatus
from jobwatch.infra.http.session import AuthSession

logger = logging.getLogger(__name__)

SUCCESS_STATUS_CODES = frozenset({200, 202})


class StatusFetchError(RuntimeError):
    """状态查询失败的基类，监控循环会吸收此类错误并在下个周期重试。"""

    def __init__(self, message: str, *, callback_url: str) -> None:
        super().__init__(message)
        self.callback_url = callback_url


class StatusTransportError(StatusFetchError):
    """请求未能得到可用响应：网络错误、响应体解码失败等。"""


class StatusHTTPError(StatusFetchError):
    """响应码不在成功集合内。"""

    def __init__(self, *, callback_url: str, status_code: int, body: str) -> None:
        super().__init__(f"Error Polling Job Status ({status_code}): {body}", callback_url=callback_url)
        self.status_code = status_code
        self.body = body


class StatusDecodeError(StatusFetchError):
    """响应体不是合法 JSON，或结构不符合 JobStatus。"""


class StatusFetcher:
    """作业状态查询器，不做任何重试，重试节奏由监控循环决定。"""

    async def query(self, session: AuthSession, snapshot: JobStatus) -> JobStatus:
        """查询最新状态，成功时返回合并了响应字段的新快照。"""
        callback_url = snapshot.callback_url
        headers = {"Accept": "application/json", "X-Auth-Token": session.session_id}
        started = time.perf_counter()
        try:
            response = await session.http_client.get(callback_url, headers=headers)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            # RequestError 覆盖传输层错误、响应体解压失败与重定向过多。
            self._log_failure(snapshot, started, status_code=None, exc=exc)
            raise StatusTransportError(str(exc) or type(exc).__name__, callback_url=callback_url) from exc

        if response.status_code not in SUCCESS_STATUS_CODES:
            exc = StatusHTTPError(callback_url=callback_url, status_code=response.status_code, body=response.text)
            self._log_failure(snapshot, started, status_code=response.status_code, exc=exc)
            raise exc

        try:
            payload = json.loads(response.content)
            if not isinstance(payload, dict):
                raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
            updated = snapshot.merged_with(payload)
        except (ValueError, ValidationError) as exc:
            # json.JSONDecodeError 与 UnicodeDecodeError 均是 ValueError 子类。
            self._log_failure(snapshot, started, status_code=response.status_code, exc=exc)
            raise StatusDecodeError(f"invalid job status body: {exc}", callback_url=callback_url) from exc

        logger.debug(
            "job status polled",
            extra={
                "event": "job.status.polled",
                "external_service": "job-status",
                "op": "job.status.get",
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "status_code": response.status_code,
                "payload_preview": {"status": updated.status, "job_id": updated.job_id},
            },
        )
        return updated

    @staticmethod
    def _log_failure(snapshot: JobStatus, started: float, *, status_code: int | None, exc: Exception) -> None:
        logger.info(
            "job status request failed",
            extra={
                "event": "job.status.request.failed",
                "external_service": "job-status",
                "op": "job.status.get",
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "status_code": status_code,
                "error_type": type(exc).__name__,
                "error": str(exc),
                "payload_preview": {"callback_url": snapshot.callback_url},
            },
        )
