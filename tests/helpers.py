"""이 파일은 .py 테스트 도우미 모듈로 가짜 명령 실행기와 가짜 태스크를 제공합니다."""

from __future__ import annotations

import errno
import json
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sysmaint.adapters.command import CommandResult
from sysmaint.core.config import DATA_DIR
from sysmaint.core.config_store import freeze
from sysmaint.core.errors import ActionError, AdapterError, DetectionError
from sysmaint.core.logging import StructuredLogger
from sysmaint.core.storage import ensure_session_dirs
from sysmaint.core.task_base import BaseAction, BaseDetector, TaskContext
from sysmaint.core.types import (
    ConfigEntry,
    ConfigSnapshot,
    DetectionRecord,
    DiffEntry,
    MatchPolicy,
    Mode,
    SessionContext,
    TaskDescriptor,
)

GENERIC_LIST_SCHEMA = {
    "type": "object",
    "required": ["entries"],
    "properties": {
        "entries": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["match_key"],
                "properties": {"match_key": {"type": "string", "min_length": 1}},
            },
        }
    },
}


class FakeRunner:
    """명령 결과를 미리 등록해 두고 호출 기록을 남기는 CommandRunner 대역."""

    def __init__(
        self,
        programs: Sequence[str] = (),
        responses: Optional[Dict[Tuple[str, ...], CommandResult]] = None,
    ) -> None:
        self.programs = set(programs)
        self.responses = responses or {}
        self.calls: List[List[str]] = []

    def available(self, program: str) -> bool:
        return program in self.programs

    def run(self, command: List[str], cwd: Optional[str] = None, elevated: bool = False) -> CommandResult:
        self.calls.append(list(command))
        return self.responses.get(tuple(command), CommandResult(0, "", ""))

    def check(self, command: List[str], elevated: bool = False) -> CommandResult:
        result = self.run(command, elevated=elevated)
        if not result.ok:
            raise AdapterError(f"{' '.join(command)} exited with {result.exit_code}: {result.stderr}")
        return result


class FakeDetector(BaseDetector):
    # options.items의 이름마다 레코드 하나를 돌려준다.
    source_priority = ("primary", "secondary")

    def detect(self) -> List[DetectionRecord]:
        options = self.context.options
        if options.get("detect_error"):
            raise RuntimeError(str(options["detect_error"]))
        return [DetectionRecord(match_key=name, source="primary") for name in options.get("items", ())]


class FakeAction(BaseAction):
    # options.fail_items에 든 대상은 apply에서 실패한다.
    def apply(self, entry: DiffEntry) -> None:
        if entry.target in self.context.options.get("fail_items", ()):
            raise ActionError(f"cannot change {entry.target}")
        applied = self.context.options.get("applied")
        if applied is not None:
            applied.append(entry.target)


class ExplodingDetector(BaseDetector):
    def detect(self) -> List[DetectionRecord]:
        raise DetectionError("scanner crashed")


class NoisyDetector(FakeDetector):
    # options.log_level 레벨로 태스크 로그를 한 줄 남긴 뒤 평소처럼 탐지한다.
    def detect(self) -> List[DetectionRecord]:
        self.context.log.log(self.context.options.get("log_level", "VERBOSE"), "scan details", operation="Detect")
        return super().detect()


class RegexAction(FakeAction):
    match_policy = MatchPolicy.REGEX


class FullDiskHandle:
    """지정한 횟수만큼 쓴 뒤부터 ENOSPC를 던지는 파일 핸들 래퍼."""

    def __init__(self, handle: Any, writes_allowed: int) -> None:
        self.handle = handle
        self.writes_allowed = writes_allowed
        self.writes = 0

    def write(self, text: str) -> int:
        if self.writes >= self.writes_allowed:
            raise OSError(errno.ENOSPC, "No space left on device")
        self.writes += 1
        return self.handle.write(text)

    def flush(self) -> None:
        self.handle.flush()

    def close(self) -> None:
        self.handle.close()


def fill_disk(log: StructuredLogger, writes_allowed: int = 0) -> FullDiskHandle:
    # 세션 로그 싱크의 파일 핸들을 교체한다.
    handle = FullDiskHandle(log._sink._handle, writes_allowed)
    log._sink._handle = handle
    return handle


def make_descriptor(name: str, category: str = "cleanup", detector=FakeDetector, action=FakeAction) -> TaskDescriptor:
    return TaskDescriptor(name=name, category=category, detector=detector, action=action, list_document=name)


def make_snapshot(
    settings: Optional[Mapping[str, Any]] = None,
    lists: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None,
    invalid: Optional[Mapping[str, str]] = None,
) -> ConfigSnapshot:
    entries = {name: tuple(ConfigEntry.from_dict(item) for item in items) for name, items in (lists or {}).items()}
    return ConfigSnapshot(
        settings=freeze(dict(settings or {"mode": "dry-run", "tasks": {}})),
        lists=MappingProxyType(entries),
        invalid_documents=MappingProxyType(dict(invalid or {})),
    )


def make_session(root: Path, snapshot: ConfigSnapshot, mode: Mode = Mode.DRY_RUN, session_id: str = "20240101-000000-test") -> SessionContext:
    return SessionContext(
        session_id=session_id,
        start_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        mode=mode,
        config=snapshot,
        paths=ensure_session_dirs(root, session_id),
    )


def make_context(
    session: SessionContext,
    descriptor: TaskDescriptor,
    runner: Optional[FakeRunner] = None,
    options: Optional[Mapping[str, Any]] = None,
) -> Tuple[TaskContext, StructuredLogger]:
    session_log = StructuredLogger.for_session(session)
    context = TaskContext(
        session=session,
        descriptor=descriptor,
        log=session_log.task_logger(descriptor.name),
        runner=runner or FakeRunner(),
        entries=session.config.entries_for(descriptor.list_document),
        options=options if options is not None else session.config.task_options(descriptor.name),
    )
    return context, session_log


def write_config(
    config_dir: Path,
    settings: Mapping[str, Any],
    lists: Mapping[str, Any],
) -> Path:
    # 가짜 태스크용 최소 설정 디렉터리를 만든다.
    (config_dir / "schemas").mkdir(parents=True, exist_ok=True)
    (config_dir / "lists").mkdir(parents=True, exist_ok=True)
    (config_dir / "settings.json").write_text(json.dumps(settings), encoding="utf-8")
    (config_dir / "schemas" / "settings.schema.json").write_text(
        (DATA_DIR / "schemas" / "settings.schema.json").read_text(encoding="utf-8"), encoding="utf-8"
    )
    for name, document in lists.items():
        (config_dir / "schemas" / f"{name}.schema.json").write_text(json.dumps(GENERIC_LIST_SCHEMA), encoding="utf-8")
        text = document if isinstance(document, str) else json.dumps(document)
        (config_dir / "lists" / f"{name}.json").write_text(text, encoding="utf-8")
    return config_dir
