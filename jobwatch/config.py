"""全局配置加载模块：从环境变量构建轮询、HTTP 与日志参数并提供缓存访问。"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _csv_to_list(value: str) -> list[str]:
    """将逗号分隔字符串转换为去空白列表。"""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """监控运行配置对象，从环境变量读取并提供类型化访问。"""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Job Status Monitor"
    environment: str = "dev"

    poll_interval_seconds: float = Field(default=5.0, gt=0)

    http_timeout_seconds: float = 30.0
    http_max_connections: int = 100
    http_max_keepalive_connections: int = 20

    # 已签发的令牌由外部换取，这里只负责携带。
    auth_token: str | None = None
    auth_token_expires: str | None = None

    log_dir: Path = Field(default=Path("./data/logs"))
    log_level: str = "INFO"
    log_debug_modules: str = ""
    log_debug_job_ids: str = ""
    log_redaction_mode: str = "basic"
    log_payload_preview_chars: int = 512
    log_max_bytes: int = 20 * 1024 * 1024
    log_backup_count: int = 5

    def log_debug_modules_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_modules)

    def log_debug_job_ids_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_job_ids)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """构建并缓存 Settings。"""
    return Settings()
