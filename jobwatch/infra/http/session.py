"""认证会话抽象：向状态查询方暴露令牌、过期时间、服务目录与 HTTP 执行能力。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

import httpx


class AuthSession(ABC):
    """认证会话能力集合，监控方只读使用，不负责续期。"""

    @property
    @abstractmethod
    def session_id(self) -> str:
        """作为 X-Auth-Token 发送的会话令牌。"""

    @property
    @abstractmethod
    def expires(self) -> str | None:
        """令牌过期时间，原样透传服务端取值。"""

    @property
    @abstractmethod
    def service_catalog(self) -> Mapping[str, Any]:
        """服务目录，内容对监控方不透明。"""

    @property
    @abstractmethod
    def http_client(self) -> httpx.AsyncClient:
        """共享的异步 HTTP 客户端。"""


class StaticAuthSession(AuthSession):
    """持有已签发令牌的会话实现。"""

    def __init__(
        self,
        token: str,
        http_client: httpx.AsyncClient,
        *,
        expires: str | None = None,
        service_catalog: Mapping[str, Any] | None = None,
    ) -> None:
        if not token:
            raise ValueError("auth token must not be empty")
        self._token = token
        self._http_client = http_client
        self._expires = expires
        self._service_catalog = dict(service_catalog or {})

    def __repr__(self) -> str:
        # 令牌不进入 repr，避免被日志带出。
        return f"StaticAuthSession(expires={self._expires!r}, catalog={sorted(self._service_catalog)!r})"

    @property
    def session_id(self) -> str:
        return self._token

    @property
    def expires(self) -> str | None:
        return self._expires

    @property
    def service_catalog(self) -> Mapping[str, Any]:
        return self._service_catalog

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client
