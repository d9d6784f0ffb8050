"""이 파일은 .py 코어 패키지 초기화 모듈로 주요 심볼을 재노출합니다."""

from .config import STORAGE_ROOT, TASKS_FILE
from .config_store import ConfigurationStore
from .diff import diff
from .logging import StructuredLogger, setup_logging
from .task_base import BaseAction, BaseDetector, TaskContext
from .task_registry import TaskRegistry
from .types import (
    ConfigEntry,
    DetectionRecord,
    DiffEntry,
    ExecutionResult,
    Mode,
    SessionContext,
    TaskDescriptor,
)

__all__ = [
    "BaseAction",
    "BaseDetector",
    "ConfigEntry",
    "ConfigurationStore",
    "DetectionRecord",
    "DiffEntry",
    "ExecutionResult",
    "Mode",
    "SessionContext",
    "STORAGE_ROOT",
    "StructuredLogger",
    "TASKS_FILE",
    "TaskContext",
    "TaskDescriptor",
    "TaskRegistry",
    "diff",
    "setup_logging",
]
