"""이 파일은 .py 태스크 실행 모듈로 태스크 하나를 오류 경계 안에서 실행하고 결과를 저장합니다."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from sysmaint.adapters.command import CommandRunner
from sysmaint.core.diff import compile_patterns
from sysmaint.core.errors import DetectionError, FatalError, ValidationError
from sysmaint.core.logging import StructuredLogger, TaskLogger
from sysmaint.core.task_base import BaseAction, TaskContext
from sysmaint.core.types import (
    DetectionRecord,
    DiffEntry,
    ErrorKind,
    ExecutionResult,
    LogResult,
    SessionContext,
    TaskDescriptor,
    TaskError,
)


def build_command_runner(session: SessionContext) -> CommandRunner:
    execution = session.config.settings.get("execution", {}) or {}
    return CommandRunner(
        timeout=int(execution.get("command_timeout", 60)),
        sudo=bool(execution.get("use_sudo", False)),
    )


def write_result_document(
    path: Path,
    result: ExecutionResult,
    descriptor: TaskDescriptor,
    detections: List[DetectionRecord],
    diff_entries: List[DiffEntry],
) -> None:
    # 태스크 결과와 그 근거가 된 탐지 레코드를 하나의 JSON 문서로 저장한다.
    payload = {
        "task": {"name": descriptor.name, "category": descriptor.category},
        "result": result.to_dict(),
        "detections": [record.to_dict() for record in detections],
        "diff": [
            {"match_key": entry.target, "action": entry.action.value, "source": entry.detection.source}
            for entry in diff_entries
        ],
    }
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def read_result_document(path: Path) -> Dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def error_kind_for(exc: BaseException) -> ErrorKind:
    # 설정 위반과 탐지 실패는 그대로 분류하고 나머지는 조치 단계 실패로 본다.
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, DetectionError):
        return ErrorKind.DETECTION
    return ErrorKind.ACTION


class TaskRunner:
    def __init__(
        self,
        session: SessionContext,
        logger: StructuredLogger,
        runner_factory: Optional[Callable[[SessionContext], CommandRunner]] = None,
    ) -> None:
        # 세션 컨텍스트와 로거는 모든 태스크가 참조로 공유한다.
        self.session = session
        self.logger = logger
        self.runner_factory = runner_factory or build_command_runner

    def run(self, descriptor: TaskDescriptor) -> ExecutionResult:
        started = time.monotonic()
        log = self.logger.task_logger(descriptor.name)
        action: Optional[BaseAction] = None
        log.info(f"Task started ({self.session.mode.value})", operation="Task", result=LogResult.IN_PROGRESS)

        try:
            # 1) 의존하는 목록 문서가 잘못되었으면 태스크를 시작하지 않는다.
            self._check_list_document(descriptor)
            # 2) 컨텍스트 구성 및 Detect/Act 인스턴스 생성
            context = self._build_context(descriptor, log)
            try:
                detector = descriptor.detector(context)
                action = descriptor.action(context, detector)
            except FatalError:
                raise
            except Exception as exc:
                raise DetectionError(f"Cannot prepare task: {exc}") from exc
            # 3) Detect -> Diff -> Act
            result = action.execute(self.session.mode)
        except FatalError:
            # 로그 기록 실패는 태스크 결과가 아니라 실행 중단 사유이다.
            raise
        except (ValidationError, DetectionError) as exc:
            result = self._failed(descriptor, error_kind_for(exc), str(exc), started, action)
        except Exception as exc:
            # 조치 단계에서 잡히지 않은 예외도 실패 결과로 변환하고 루프는 계속된다.
            result = self._failed(descriptor, error_kind_for(exc), f"{type(exc).__name__}: {exc}", started, action)

        self._log_result(log, result)
        self._persist(descriptor, result, action, log)
        return result

    def _check_list_document(self, descriptor: TaskDescriptor) -> None:
        document = descriptor.list_document
        if not document:
            return
        invalid = self.session.config.invalid_documents
        if document in invalid:
            raise ValidationError(invalid[document], document=f"lists/{document}.json")
        if document not in self.session.config.lists:
            raise ValidationError("list document not loaded", document=f"lists/{document}.json")
        # regex 항목은 탐지 전에 컴파일해서 잘못된 패턴을 설정 오류로 보고한다.
        compile_patterns(
            self.session.config.entries_for(document),
            descriptor.action.match_policy,
            document=f"lists/{document}.json",
        )

    def _build_context(self, descriptor: TaskDescriptor, log: TaskLogger) -> TaskContext:
        return TaskContext(
            session=self.session,
            descriptor=descriptor,
            log=log,
            runner=self.runner_factory(self.session),
            entries=self.session.config.entries_for(descriptor.list_document),
            options=self.session.config.task_options(descriptor.name),
        )

    def _failed(
        self,
        descriptor: TaskDescriptor,
        kind: ErrorKind,
        message: str,
        started: float,
        action: Optional[BaseAction],
    ) -> ExecutionResult:
        detected = len(action.inventory) if action is not None else 0
        return ExecutionResult(
            task_name=descriptor.name,
            success=False,
            items_detected=detected,
            items_processed=0,
            dry_run=self.session.dry_run,
            duration_ms=int((time.monotonic() - started) * 1000),
            session_id=self.session.session_id,
            error=TaskError(kind=kind, message=message),
        )

    def _log_result(self, log: TaskLogger, result: ExecutionResult) -> None:
        metrics = {
            "detected": result.items_detected,
            "processed": result.items_processed,
            "duration_ms": result.duration_ms,
        }
        if result.success:
            log.success("Task completed", operation="Task", result=LogResult.SUCCESS, metrics=metrics)
            return
        metrics["error_kind"] = result.error.kind.value if result.error else "unknown"
        log.error(
            f"Task failed: {result.error.message if result.error else 'unknown error'}",
            operation="Task",
            result=LogResult.FAILED,
            metrics=metrics,
        )

    def _persist(
        self,
        descriptor: TaskDescriptor,
        result: ExecutionResult,
        action: Optional[BaseAction],
        log: TaskLogger,
    ) -> None:
        path = self.session.paths.data / f"{descriptor.name}.json"
        try:
            write_result_document(
                path,
                result,
                descriptor,
                list(action.inventory) if action is not None else [],
                list(action.diff_entries) if action is not None else [],
            )
        except (OSError, TypeError, ValueError) as exc:
            # 결과 문서 저장 실패는 기록만 하고 실행을 계속한다.
            log.error(f"Cannot write result document {path}: {exc}", operation="Persist", result=LogResult.FAILED)
