"""이 파일은 .py 태스크 베이스 모듈로 Detect-Diff-Act 공통 계약을 제공합니다."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

from .diff import deduplicate, diff, identity_key
from .errors import DetectionError, FatalError
from .types import (
    ConfigEntry,
    DetectionRecord,
    DiffEntry,
    ErrorKind,
    ExecutionResult,
    LogResult,
    MatchPolicy,
    Mode,
    SessionContext,
    TaskDescriptor,
    TaskError,
)

if TYPE_CHECKING:
    from sysmaint.adapters.command import CommandRunner

    from .logging import TaskLogger


@dataclass
class TaskContext:
    # 태스크가 실행될 때 전달되는 공통 컨텍스트이다.
    session: SessionContext
    descriptor: TaskDescriptor
    log: "TaskLogger"
    runner: "CommandRunner"
    # 태스크 목록 문서에서 읽은 원하는 상태 항목이다.
    entries: Tuple[ConfigEntry, ...] = ()
    # settings.tasks.<name>.options 값이다.
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def task_name(self) -> str:
        return self.descriptor.name


class BaseDetector(ABC):
    # 같은 항목이 여러 경로로 발견될 때 남길 source 우선순위다.
    source_priority: Sequence[str] = ()
    # 참이면 대소문자만 다른 match_key를 서로 다른 항목으로 본다.
    case_sensitive_keys: bool = False

    def __init__(self, context: TaskContext) -> None:
        self.context = context

    @abstractmethod
    def detect(self) -> List[DetectionRecord]:
        """호스트 상태를 읽기만 하는 스캔. 항목이 없으면 빈 리스트."""
        raise NotImplementedError


class BaseAction(ABC):
    match_policy: MatchPolicy = MatchPolicy.EXACT

    def __init__(self, context: TaskContext, detector: BaseDetector) -> None:
        self.context = context
        self.detector = detector
        self.inventory: List[DetectionRecord] = []
        self.diff_entries: List[DiffEntry] = []
        self._started: Optional[float] = None

    @abstractmethod
    def apply(self, entry: DiffEntry) -> None:
        """Live 모드에서 실제 변경을 수행합니다. 실패 시 예외를 던집니다."""
        raise NotImplementedError

    def simulate(self, entry: DiffEntry) -> str:
        # Dry-run 모드에서 수행될 변경을 설명한다(변경은 하지 않는다).
        return f"Would {entry.action.value.lower()} {entry.target}"

    def execute(self, mode: Mode) -> ExecutionResult:
        # 조치 전에 항상 짝이 되는 탐지 모듈을 먼저 실행한다.
        self._started = time.monotonic()
        self.inventory = self.run_detection()
        self.diff_entries = diff(
            self.inventory,
            self.context.entries,
            self.match_policy,
            self.detector.source_priority,
            self.detector.case_sensitive_keys,
        )
        self.context.log.info(
            f"{len(self.diff_entries)} of {len(self.inventory)} items require action",
            operation="Diff",
            metrics={"detected": len(self.inventory), "actionable": len(self.diff_entries)},
        )
        return self.act(self.diff_entries, mode)

    def run_detection(self) -> List[DetectionRecord]:
        log = self.context.log
        log.info("Detection started", operation="Detect", result=LogResult.IN_PROGRESS)
        try:
            records = self.detector.detect() or []
        except (DetectionError, FatalError):
            raise
        except Exception as exc:
            # 탐지 단계의 모든 예외는 DetectionError로 표준화한다.
            raise DetectionError(f"{type(exc).__name__}: {exc}") from exc
        unique = deduplicate(records, self.detector.source_priority, self.detector.case_sensitive_keys)
        log.info(
            f"Detection finished: {len(unique)} items",
            operation="Detect",
            result=LogResult.SUCCESS,
            metrics={"raw": len(records), "unique": len(unique)},
        )
        return unique

    def act(self, diff_entries: Sequence[DiffEntry], mode: Mode) -> ExecutionResult:
        log = self.context.log
        started = self._started if self._started is not None else time.monotonic()
        dry_run = mode is Mode.DRY_RUN
        processed = 0
        failures: List[str] = []

        for entry in diff_entries:
            operation = entry.action.value
            if dry_run:
                # 항목 수는 Live와 동일하게 세되 외부 변경은 하지 않는다.
                log.info(f"[DRY-RUN] {self.simulate(entry)}", operation=operation, target=entry.target, result=LogResult.SKIPPED)
                processed += 1
                continue
            try:
                self.apply(entry)
            except FatalError:
                raise
            except Exception as exc:
                # 한 항목의 실패가 나머지 항목 처리를 막지 않는다.
                failures.append(f"{entry.target}: {exc}")
                log.error(f"{operation} failed: {exc}", operation=operation, target=entry.target, result=LogResult.FAILED)
                continue
            processed += 1
            log.success(f"{operation} applied", operation=operation, target=entry.target, result=LogResult.SUCCESS)

        error = None
        if failures:
            error = TaskError(
                kind=ErrorKind.ACTION,
                message=f"{len(failures)} of {len(diff_entries)} entries failed; first: {failures[0]}",
            )
        return ExecutionResult(
            task_name=self.context.task_name,
            success=not failures,
            items_detected=self._detected_count(diff_entries),
            items_processed=processed,
            dry_run=dry_run,
            duration_ms=int((time.monotonic() - started) * 1000),
            session_id=self.context.session.session_id,
            error=error,
        )

    def _detected_count(self, diff_entries: Sequence[DiffEntry]) -> int:
        # 인벤토리와 DiffEntry가 가리키는 탐지 레코드의 합집합을 센다.
        # 각 DiffEntry는 탐지 레코드 하나를 가리키므로 처리 수가 탐지 수를 넘지 않는다.
        case_sensitive = self.detector.case_sensitive_keys
        keys = {identity_key(record.match_key, case_sensitive) for record in self.inventory}
        keys.update(identity_key(entry.detection.match_key, case_sensitive) for entry in diff_entries)
        return len(keys)
