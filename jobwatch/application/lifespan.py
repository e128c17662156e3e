"""监控进程生命周期：初始化日志与依赖，退出时停止全部监控并释放资源。"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from jobwatch.application.container import get_monitor_registry, shutdown_container_resources
from jobwatch.application.registry import MonitorRegistry
from jobwatch.config import get_settings
from jobwatch.infra.logging.setup import configure_logging, shutdown_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def monitor_lifespan(*, process_role: str = "monitor") -> AsyncIterator[MonitorRegistry]:
    """在上下文范围内提供已配置好的监控注册表。

    用法::

        async with monitor_lifespan() as registry:
            stream = registry.start(initial_status)
            final = await wait_for_terminal(stream)
    """
    settings = get_settings()
    log_file = configure_logging(settings, process_role=process_role)
    logger.info(
        "job monitor runtime started",
        extra={"event": "runtime.startup.succeeded", "payload_preview": {"log_file": str(log_file)}},
    )
    try:
        yield get_monitor_registry()
    finally:
        logger.info("job monitor runtime stopping", extra={"event": "runtime.shutdown.started"})
        await shutdown_container_resources()
        shutdown_logging()
