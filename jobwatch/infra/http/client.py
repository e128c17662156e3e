"""共享 HTTP 客户端构造：所有监控任务复用同一个连接池。"""

from __future__ import annotations

import httpx

from jobwatch.config import Settings


def build_http_client(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """按配置创建异步 HTTP 客户端；测试可注入自定义 transport。"""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        limits=httpx.Limits(
            max_connections=settings.http_max_connections,
            max_keepalive_connections=settings.http_max_keepalive_connections,
        ),
        transport=transport,
    )
