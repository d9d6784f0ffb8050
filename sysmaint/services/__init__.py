"""이 파일은 .py 서비스 패키지 초기화 모듈로 핵심 서비스를 노출합니다."""

from .aggregator import aggregate
from .log_processor import process
from .orchestrator import Orchestrator, RunOutcome, RunState
from .reporting import ReportRenderer
from .task_runner import TaskRunner

__all__ = [
    "Orchestrator",
    "ReportRenderer",
    "RunOutcome",
    "RunState",
    "TaskRunner",
    "aggregate",
    "process",
]
