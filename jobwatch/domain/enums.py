"""领域枚举定义：统一远端作业状态与监控循环状态取值。"""

from __future__ import annotations

from enum import Enum


class JobState(str, Enum):
    """远端作业已知状态；服务端可能返回此处未列出的取值。"""
    running = "RUNNING"
    completed = "COMPLETED"
    error = "ERROR"


class MonitorState(str, Enum):
    """监控循环生命周期状态枚举。"""
    polling = "polling"
    terminated = "terminated"
    cancelled = "cancelled"


TERMINAL_STATES = frozenset({JobState.completed.value, JobState.error.value})


def is_terminal_status(status: str) -> bool:
    """判断状态是否为终态。

    未识别的状态与 RUNNING 一样按"仍在运行"处理，不做额外校验。
    """
    return str(status) in TERMINAL_STATES
