"""日志上下文：基于 contextvars 透传 job/monitor 标识。"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Iterator

_UNSET = object()

_job_id_var: ContextVar[str | None] = ContextVar("log_job_id", default=None)
_monitor_id_var: ContextVar[str | None] = ContextVar("log_monitor_id", default=None)


def get_log_context() -> dict[str, str | None]:
    """返回当前协程下的日志上下文字段。"""
    return {
        "job_id": _job_id_var.get(),
        "monitor_id": _monitor_id_var.get(),
    }


@contextmanager
def bind_log_context(
    *,
    job_id: str | None | object = _UNSET,
    monitor_id: str | None | object = _UNSET,
) -> Iterator[None]:
    """在上下文范围内绑定日志字段，并在退出时自动恢复。

    在此范围内创建的 asyncio 任务会复制当前上下文，监控任务据此携带 job_id。
    """
    tokens: list[tuple[ContextVar[Any], Token[Any]]] = []
    if job_id is not _UNSET:
        tokens.append((_job_id_var, _job_id_var.set(job_id)))
    if monitor_id is not _UNSET:
        tokens.append((_monitor_id_var, _monitor_id_var.set(monitor_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
