"""日志初始化：监控进程的 JSONL 输出、令牌脱敏与按 job_id 放行 DEBUG。"""

from __future__ import annotations

import json
import logging
import logging.config
import re
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue
from typing import Any

from jobwatch.config import Settings
from jobwatch.infra.logging.context import get_log_context

_listener: QueueListener | None = None

_CONTEXT_KEYS = ("job_id", "monitor_id")
_NUMERIC_KEYS = ("duration_ms", "status_code", "attempt")
_TEXT_KEYS = ("event", "external_service", "op", "error_type")

_SENSITIVE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)(x-auth-token['\"]?\s*[:=]\s*['\"]?)[^\s,;'\"}]+"), r"\1***"),
    (re.compile(r"(?i)(authorization\s*[:=]\s*bearer\s+)[^\s,;]+"), r"\1***"),
    (re.compile(r"(?i)(?<![-\w])(token\s*[:=]\s*)[^\s,;]+"), r"\1***"),
)


def redact_text(value: str | None, mode: str) -> str | None:
    """脱敏令牌类字段；mode 为 off 时原样返回。"""
    if value is None:
        return None
    text = str(value)
    if mode.lower() == "off":
        return text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class DebugRoutingFilter(logging.Filter):
    """低于 min_level 的记录默认丢弃，指定模块或 job_id 的 DEBUG 记录例外。"""

    def __init__(self, *, min_level: int, debug_modules: set[str], debug_job_ids: set[str]) -> None:
        super().__init__()
        self._min_level = min_level
        self._debug_modules = debug_modules
        self._debug_job_ids = debug_job_ids

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self._min_level:
            return True
        if record.levelno != logging.DEBUG:
            return False
        if any(record.name == item or record.name.startswith(f"{item}.") for item in self._debug_modules):
            return True
        job_id = getattr(record, "job_id", None) or get_log_context().get("job_id")
        return bool(job_id and job_id in self._debug_job_ids)


class ContextInjectionFilter(logging.Filter):
    """入队前把 contextvars 中的 job_id/monitor_id 写入 record，监听线程里读不到协程上下文。"""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_log_context()
        for key in _CONTEXT_KEYS:
            if getattr(record, key, None) is None and ctx.get(key) is not None:
                setattr(record, key, ctx[key])
        return True


class MonitorJsonFormatter(logging.Formatter):
    """把 LogRecord 及其结构化 extra 字段输出为单行 JSON。"""

    def __init__(self, *, process_role: str, redaction_mode: str, payload_preview_chars: int) -> None:
        super().__init__()
        self._process_role = process_role
        self._redaction_mode = redaction_mode
        self._payload_preview_chars = payload_preview_chars

    def _preview(self, payload: Any) -> str | None:
        if payload is None:
            return None
        try:
            serialized = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False, sort_keys=True)
        except TypeError:
            serialized = str(payload)
        redacted = redact_text(serialized, self._redaction_mode) or ""
        if len(redacted) <= self._payload_preview_chars:
            return redacted
        return f"{redacted[:self._payload_preview_chars]}...(truncated)"

    def format(self, record: logging.LogRecord) -> str:
        error_text = getattr(record, "error", None)
        if error_text is None and record.exc_info:
            error_text = self.formatException(record.exc_info)

        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": "jobwatch",
            "process_role": self._process_role,
            "module": record.name,
            "message": redact_text(record.getMessage(), self._redaction_mode),
        }
        ctx = get_log_context()
        for key in _CONTEXT_KEYS:
            entry[key] = getattr(record, key, None) or ctx.get(key)
        for key in _TEXT_KEYS:
            entry[key] = getattr(record, key, None)
        for key in _NUMERIC_KEYS:
            value = getattr(record, key, None)
            entry[key] = value if isinstance(value, (int, float)) or value is None else str(value)
        entry["error"] = redact_text(str(error_text), self._redaction_mode) if error_text is not None else None
        entry["payload_preview"] = self._preview(getattr(record, "payload_preview", None))
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(settings: Settings, *, process_role: str = "monitor") -> Path:
    """初始化全局日志：根 logger 经队列写入 JSONL 文件，ERROR 同步输出到 stderr。"""
    global _listener
    shutdown_logging()

    log_root = settings.log_dir if settings.log_dir.is_absolute() else (Path.cwd() / settings.log_dir).resolve()
    role_dir = log_root / process_role
    role_dir.mkdir(parents=True, exist_ok=True)
    log_file = role_dir / "jobwatch.jsonl"

    queue_obj: SimpleQueue[logging.LogRecord] = SimpleQueue()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "handlers": {"queue": {"class": "logging.handlers.QueueHandler", "queue": queue_obj}},
            "root": {"level": "DEBUG", "handlers": ["queue"]},
        }
    )
    queue_handler = next((item for item in logging.getLogger().handlers if isinstance(item, QueueHandler)), None)
    if queue_handler is None:
        raise RuntimeError("queue logging handler is not configured")
    queue_handler.addFilter(ContextInjectionFilter())
    queue_handler.addFilter(
        DebugRoutingFilter(
            min_level=getattr(logging, settings.log_level.upper(), logging.INFO),
            debug_modules=set(settings.log_debug_modules_list()),
            debug_job_ids=set(settings.log_debug_job_ids_list()),
        )
    )

    formatter = MonitorJsonFormatter(
        process_role=process_role,
        redaction_mode=settings.log_redaction_mode,
        payload_preview_chars=settings.log_payload_preview_chars,
    )
    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    _listener = QueueListener(queue_obj, file_handler, stderr_handler, respect_handler_level=True)
    _listener.start()

    # 请求日志由 fetcher 自行记录，httpx/httpcore 只保留告警。
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return log_file


def shutdown_logging() -> None:
    """停止队列监听器并关闭底层句柄，可重复调用。"""
    global _listener
    if _listener is None:
        return
    listener, _listener = _listener, None
    listener.stop()
    for handler in listener.handlers:
        handler.close()
