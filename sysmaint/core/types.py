"""이 파일은 .py 타입 정의 모듈로 세션 컨텍스트와 결과 모델을 제공합니다."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TYPE_CHECKING

from .errors import ValidationError

if TYPE_CHECKING:
    from .task_base import BaseAction, BaseDetector


class Mode(str, Enum):
    # 실행 모드는 호스트 변경 여부를 결정한다.
    DRY_RUN = "dry-run"
    LIVE = "live"


class LogLevel(str, Enum):
    # 로그 레벨은 닫힌 열거형이며 그 외 값은 계약 위반이다.
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"
    SUCCESS = "SUCCESS"
    TRACE = "TRACE"

    @classmethod
    def parse(cls, value: Any) -> "LogLevel":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized in cls.__members__:
                return cls[normalized]
        raise ValidationError(f"invalid log level: {value!r}", document="log_entry", field="level")


class LogResult(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    IN_PROGRESS = "InProgress"

    @classmethod
    def parse(cls, value: Any) -> "LogResult":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        raise ValidationError(f"invalid log result: {value!r}", document="log_entry", field="result")


class DiffAction(str, Enum):
    ADD = "Add"
    REMOVE = "Remove"
    MODIFY = "Modify"


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    DETECTION = "DetectionError"
    ACTION = "ActionError"
    FATAL = "FatalError"


class MatchPolicy(str, Enum):
    # exact: 대소문자 무시 일치, pattern: glob, regex: 정규식
    EXACT = "exact"
    PATTERN = "pattern"
    REGEX = "regex"


@dataclass(frozen=True)
class TaskDescriptor:
    # 태스크 레지스트리의 한 항목이며 순서가 곧 실행 순서다.
    name: str
    category: str
    detector: Type["BaseDetector"]
    action: Type["BaseAction"]
    list_document: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class PathRoots:
    # 세션 단위로 생성되는 저장 경로 묶음이다.
    root: Path
    data: Path
    logs: Path
    processed: Path
    reports: Path


@dataclass(frozen=True)
class ConfigSnapshot:
    # 검증이 끝난 설정의 읽기 전용 스냅샷이다.
    settings: Mapping[str, Any]
    lists: Mapping[str, Tuple["ConfigEntry", ...]]
    invalid_documents: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    profile: Optional[str] = None

    def entries_for(self, document: Optional[str]) -> Tuple["ConfigEntry", ...]:
        if not document:
            return ()
        return self.lists.get(document, ())

    def task_enabled(self, task_name: str) -> bool:
        tasks = self.settings.get("tasks", {}) or {}
        task_settings = tasks.get(task_name, {}) or {}
        return bool(task_settings.get("enabled", True))

    def task_options(self, task_name: str) -> Mapping[str, Any]:
        tasks = self.settings.get("tasks", {}) or {}
        task_settings = tasks.get(task_name, {}) or {}
        return task_settings.get("options", {}) or {}


@dataclass(frozen=True)
class SessionContext:
    # 실행당 한 번 생성되고 이후 읽기 전용으로 모든 컴포넌트에 전달된다.
    session_id: str
    start_time: datetime
    mode: Mode
    config: ConfigSnapshot
    paths: PathRoots

    @property
    def dry_run(self) -> bool:
        return self.mode is Mode.DRY_RUN


@dataclass(frozen=True)
class ConfigEntry:
    # 원하는 상태 한 항목(match_key로 탐지 결과와 비교한다).
    match_key: str
    state: str = "present"
    attributes: Mapping[str, Any] = field(default_factory=dict)
    note: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConfigEntry":
        return cls(
            match_key=str(data["match_key"]),
            state=str(data.get("state", "present")),
            attributes=MappingProxyType(dict(data.get("attributes", {}) or {})),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class DetectionRecord:
    # 호스트에서 관찰된 항목이며 source는 중복 제거 우선순위에 쓰인다.
    match_key: str
    source: str = "default"
    present: bool = True
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_key": self.match_key,
            "source": self.source,
            "present": self.present,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DetectionRecord":
        return cls(
            match_key=str(data["match_key"]),
            source=str(data.get("source", "default")),
            present=bool(data.get("present", True)),
            attributes=dict(data.get("attributes", {}) or {}),
        )


@dataclass(frozen=True)
class DiffEntry:
    detection: DetectionRecord
    config: ConfigEntry
    action: DiffAction

    @property
    def target(self) -> str:
        return self.detection.match_key


@dataclass(frozen=True)
class TaskError:
    kind: ErrorKind
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TaskError":
        return cls(kind=ErrorKind(data["kind"]), message=str(data.get("message", "")))


@dataclass(frozen=True)
class ExecutionResult:
    # 모든 조치 모듈이 반환해야 하는 유일한 결과 형태다.
    task_name: str
    success: bool
    items_detected: int
    items_processed: int
    dry_run: bool
    duration_ms: int
    session_id: str
    error: Optional[TaskError] = None

    def __post_init__(self) -> None:
        if self.items_detected < 0 or self.items_processed < 0:
            raise ValueError("item counts must be non-negative")
        if self.items_processed > self.items_detected:
            raise ValueError(
                f"{self.task_name}: items_processed ({self.items_processed}) "
                f"exceeds items_detected ({self.items_detected})"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_name": self.task_name,
            "success": self.success,
            "items_detected": self.items_detected,
            "items_processed": self.items_processed,
            "dry_run": self.dry_run,
            "duration_ms": self.duration_ms,
            "error": self.error.to_dict() if self.error else None,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExecutionResult":
        error = data.get("error")
        return cls(
            task_name=str(data["task_name"]),
            success=bool(data["success"]),
            items_detected=int(data["items_detected"]),
            items_processed=int(data["items_processed"]),
            dry_run=bool(data["dry_run"]),
            duration_ms=int(data.get("duration_ms", 0)),
            session_id=str(data["session_id"]),
            error=TaskError.from_dict(error) if error else None,
        )


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    level: LogLevel
    component: str
    message: str
    session_id: str
    operation: Optional[str] = None
    target: Optional[str] = None
    result: Optional[LogResult] = None
    metrics: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class SessionResultSet:
    session_id: str
    results: Tuple[ExecutionResult, ...]

    def __len__(self) -> int:
        return len(self.results)

    def get(self, task_name: str) -> Optional[ExecutionResult]:
        for result in self.results:
            if result.task_name == task_name:
                return result
        return None


@dataclass(frozen=True)
class TaskMetrics:
    # 보고서의 태스크별 섹션에 쓰이는 행이다.
    name: str
    category: str
    status: str
    items_detected: int
    items_processed: int
    dry_run: bool
    duration_ms: int
    error: Optional[TaskError] = None
    log_path: Optional[str] = None

    @property
    def summary_line(self) -> str:
        suffix = " (dry-run)" if self.dry_run else ""
        return f"{self.items_detected} detected / {self.items_processed} processed{suffix}"


@dataclass(frozen=True)
class ProcessedMetrics:
    # 원본 로그/결과에서 매번 새로 계산되는 파생 지표다.
    session_id: str
    generated_at: datetime
    total_tasks: int
    successful_tasks: int
    failed_tasks: int
    success_rate: float
    health_scores: Mapping[str, float]
    errors_by_category: Mapping[str, int]
    errors_by_task: Mapping[str, List[str]]
    total_duration_ms: int
    average_duration_ms: float
    duration_by_category: Mapping[str, int]
    items_detected: int
    items_processed: int
    log_levels: Mapping[str, int]
    rejected_log_entries: int
    tasks: Tuple[TaskMetrics, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "generated_at": self.generated_at.isoformat(),
            "total_tasks": self.total_tasks,
            "successful_tasks": self.successful_tasks,
            "failed_tasks": self.failed_tasks,
            "success_rate": self.success_rate,
            "health_scores": dict(self.health_scores),
            "errors_by_category": dict(self.errors_by_category),
            "errors_by_task": {key: list(value) for key, value in self.errors_by_task.items()},
            "total_duration_ms": self.total_duration_ms,
            "average_duration_ms": self.average_duration_ms,
            "duration_by_category": dict(self.duration_by_category),
            "items_detected": self.items_detected,
            "items_processed": self.items_processed,
            "log_levels": dict(self.log_levels),
            "rejected_log_entries": self.rejected_log_entries,
            "tasks": [
                {
                    "name": task.name,
                    "category": task.category,
                    "status": task.status,
                    "items_detected": task.items_detected,
                    "items_processed": task.items_processed,
                    "dry_run": task.dry_run,
                    "duration_ms": task.duration_ms,
                    "error": task.error.to_dict() if task.error else None,
                    "log_path": task.log_path,
                    "summary": task.summary_line,
                }
                for task in self.tasks
            ],
        }


@dataclass(frozen=True)
class ReportArtifact:
    format: str
    path: Path
    used_fallback_template: bool = False
