"""依赖容器模块，负责单例化创建共享 HTTP 客户端、认证会话与监控注册表。"""

from __future__ import annotations

from functools import lru_cache

import httpx

from jobwatch.application.registry import MonitorRegistry
from jobwatch.config import get_settings
from jobwatch.infra.http.client import build_http_client
from jobwatch.infra.http.session import AuthSession, StaticAuthSession
from jobwatch.infra.jobs.fetcher import StatusFetcher


@lru_cache(maxsize=1)
def get_http_client() -> httpx.AsyncClient:
    """获取共享异步 HTTP 客户端单例。"""
    return build_http_client(get_settings())


@lru_cache(maxsize=1)
def get_auth_session() -> AuthSession:
    """基于配置中的令牌获取认证会话单例。"""
    settings = get_settings()
    if not settings.auth_token:
        raise RuntimeError("auth_token is not configured")
    return StaticAuthSession(
        settings.auth_token,
        get_http_client(),
        expires=settings.auth_token_expires,
    )


@lru_cache(maxsize=1)
def get_status_fetcher() -> StatusFetcher:
    return StatusFetcher()


@lru_cache(maxsize=1)
def get_monitor_registry() -> MonitorRegistry:
    """获取监控注册表单例。"""
    settings = get_settings()
    return MonitorRegistry(
        session=get_auth_session(),
        default_interval=settings.poll_interval_seconds,
        fetcher=get_status_fetcher(),
    )


async def shutdown_container_resources() -> None:
    """停止全部监控、关闭共享客户端并清理依赖容器缓存。"""
    if get_monitor_registry.cache_info().currsize:
        await get_monitor_registry().shutdown()
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()

    # 按依赖顺序清理缓存，确保后续调用可重新构建全新实例。
    for provider in (
        get_monitor_registry,
        get_status_fetcher,
        get_auth_session,
        get_http_client,
    ):
        provider.cache_clear()
