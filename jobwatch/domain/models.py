"""领域数据结构定义：作业状态快照值对象。"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from jobwatch.domain.enums import is_terminal_status


class JobStatus(BaseModel):
    """作业状态快照，字段与服务端 JSON 的 jobId/callbackUrl 命名对应。"""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    status: str
    job_id: str = Field(alias="jobId")
    callback_url: str = Field(alias="callbackUrl")

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    def merged_with(self, payload: dict[str, Any]) -> JobStatus:
        """用响应负载覆盖当前快照，响应缺失的字段保留原值。"""
        data = self.model_dump(by_alias=True)
        data.update(payload)
        return JobStatus.model_validate(data)
