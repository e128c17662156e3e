"""测试公共设施：脚本化的状态端点与基于 MockTransport 的认证会话。"""

from __future__ import annotations

import time
from typing import AsyncIterator, Callable

import httpx
import pytest_asyncio

from jobwatch.domain.models import JobStatus
from jobwatch.infra.http.session import StaticAuthSession

CALLBACK_URL = "https://dns.api.example.com/v1.0/123/status/job-1"

Reply = httpx.Response | Callable[[httpx.Request], httpx.Response]


def status_response(status: str, *, job_id: str = "job-1", callback_url: str = CALLBACK_URL) -> httpx.Response:
    """构造服务端状态响应。
    参数:
    - status: 响应中的作业状态取值。
    - job_id: 响应中的作业 ID。
    - callback_url: 响应中回写的状态查询地址。
    返回:
    - 状态码 200、JSON 体为 status/jobId/callbackUrl 的响应对象。
    """
    return httpx.Response(200, json={"status": status, "jobId": job_id, "callbackUrl": callback_url})


def corrupt_gzip_reply(request: httpx.Request) -> httpx.Response:
    """构造声明 gzip 编码但内容无法解压的响应。
    参数:
    - request: 触发该响应的请求。
    返回:
    - 读取响应体时会触发 httpx.DecodingError 的响应对象。
    """
    return httpx.Response(200, headers={"Content-Encoding": "gzip"}, stream=httpx.ByteStream(b"not-gzip"))


def initial_status(job_id: str = "job-1", callback_url: str = CALLBACK_URL) -> JobStatus:
    return JobStatus(status="RUNNING", job_id=job_id, callback_url=callback_url)


class ScriptedEndpoint:
    """按顺序返回预设响应的端点，脚本耗尽后重复最后一个响应。"""

    def __init__(self, replies: list[Reply]) -> None:
        """记录响应脚本并初始化调用记录。
        参数:
        - replies: 响应对象或按请求构造响应的函数，按调用顺序使用。
        """
        self._replies = list(replies)
        self.calls: list[float] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(time.monotonic())
        self.requests.append(request)
        index = min(len(self.calls), len(self._replies)) - 1
        reply = self._replies[index]
        if callable(reply):
            return reply(request)
        # 每次请求返回新的 Response，避免复用已读取过的响应对象。
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)


@pytest_asyncio.fixture
async def make_session() -> AsyncIterator[Callable[..., StaticAuthSession]]:
    """按 handler 构造会话，测试结束时关闭全部客户端。
    返回:
    - 工厂函数 factory(handler, token)，返回挂载 MockTransport 的 StaticAuthSession。
    """
    clients: list[httpx.AsyncClient] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response], token: str = "token-abc") -> StaticAuthSession:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return StaticAuthSession(token, client, expires="2030-01-01T00:00:00Z")

    yield factory
    for client in clients:
        await client.aclose()
