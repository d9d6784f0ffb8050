"""이 파일은 .py 로깅 모듈로 콘솔 로그 포맷과 세션 구조화 로그를 제공합니다."""

from __future__ import annotations

import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, IO, List, Mapping, Optional, Tuple

from .errors import FatalError, ValidationError
from .types import LogEntry, LogLevel, LogResult, SessionContext

logger = logging.getLogger(__name__)

SESSION_LOG_NAME = "session.log"
FIELD_NAMES = ("operation", "target", "result", "metrics", "session")
_SCALARS = (str, int, float, bool, type(None))

_PYTHON_LEVELS = {
    LogLevel.TRACE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.FATAL: logging.CRITICAL,
}

_LINE_PATTERN = re.compile(
    r"^\[(?P<timestamp>[^\]]+)\] \[(?P<level>[^\]]+)\] \[(?P<component>[^\]]*)\] ?(?P<rest>.*)$"
)
_FIELD_PATTERN = re.compile(r"^(?P<key>" + "|".join(FIELD_NAMES) + r")=(?P<value>.*)$", re.DOTALL)
_UNESCAPE_PATTERN = re.compile(r"\\(.)")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _escape(value: str) -> str:
    # 줄바꿈과 구분자(|)를 이스케이프해 한 엔트리가 한 줄을 유지하게 한다.
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace("|", "\\|")


def _unescape(value: str) -> str:
    return _UNESCAPE_PATTERN.sub(lambda match: "\n" if match.group(1) == "n" else match.group(1), value)


def validate_entry(
    level: Any,
    component: str,
    message: str,
    session_id: str,
    operation: Optional[str] = None,
    target: Optional[str] = None,
    result: Any = None,
    metrics: Optional[Mapping[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> LogEntry:
    """열거형/스칼라 규칙을 검증해 LogEntry를 만듭니다. 위반 시 ValidationError."""
    parsed_level = LogLevel.parse(level)
    parsed_result = LogResult.parse(result) if result is not None else None
    if timestamp is not None and not isinstance(timestamp, datetime):
        raise ValidationError("timestamp must be a datetime", document="log_entry", field="timestamp")
    for name, value in (("operation", operation), ("target", target)):
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{name} must be a string", document="log_entry", field=name)
    if metrics is not None:
        if not isinstance(metrics, Mapping):
            raise ValidationError("metrics must be a mapping", document="log_entry", field="metrics")
        for key, value in metrics.items():
            if not isinstance(key, str) or not isinstance(value, _SCALARS):
                raise ValidationError(
                    f"metrics values must be scalar: {key!r}", document="log_entry", field="metrics"
                )
    return LogEntry(
        timestamp=timestamp or datetime.now(timezone.utc),
        level=parsed_level,
        component=str(component),
        message=str(message),
        session_id=session_id,
        operation=operation,
        target=target,
        result=parsed_result,
        metrics=dict(metrics) if metrics is not None else None,
    )


def format_entry(entry: LogEntry) -> str:
    # [timestamp] [level] [component] message | key=value ... 형식으로 직렬화한다.
    timestamp = entry.timestamp.isoformat(timespec="milliseconds")
    parts = [f"[{timestamp}] [{entry.level.value}] [{entry.component}] {_escape(entry.message)}"]
    if entry.operation:
        parts.append(f"operation={_escape(entry.operation)}")
    if entry.target:
        parts.append(f"target={_escape(entry.target)}")
    if entry.result is not None:
        parts.append(f"result={entry.result.value}")
    if entry.metrics:
        metrics_text = json.dumps(dict(entry.metrics), sort_keys=True, ensure_ascii=False)
        parts.append(f"metrics={_escape(metrics_text)}")
    parts.append(f"session={entry.session_id}")
    return " | ".join(parts)


def parse_log_line(line: str) -> Optional[LogEntry]:
    """와이어 포맷 한 줄을 LogEntry로 되돌립니다.

    형식이 깨졌거나 열거형 밖의 값이 들어 있으면 None을 돌려주며
    예외를 집계 단계로 전파하지 않습니다.
    """
    match = _LINE_PATTERN.match(line.rstrip("\r\n"))
    if not match:
        return None
    segments = match.group("rest").split(" | ")
    message_parts = [segments[0]]
    fields: Dict[str, str] = {}
    for segment in segments[1:]:
        field_match = _FIELD_PATTERN.match(segment)
        if field_match and field_match.group("key") not in fields:
            fields[field_match.group("key")] = _unescape(field_match.group("value"))
        else:
            message_parts.append(segment)
    metrics = None
    try:
        timestamp = datetime.fromisoformat(match.group("timestamp"))
        if "metrics" in fields:
            metrics = json.loads(fields["metrics"])
        return validate_entry(
            level=match.group("level"),
            component=match.group("component"),
            message=_unescape(" | ".join(message_parts)),
            session_id=fields.get("session", ""),
            operation=fields.get("operation"),
            target=fields.get("target"),
            result=fields.get("result"),
            metrics=metrics,
            timestamp=timestamp,
        )
    except (ValueError, json.JSONDecodeError) as exc:
        # ValidationError도 ValueError 하위 타입이다.
        logger.debug("Unparseable log line skipped: %s", exc)
        return None


def read_log(path: Path) -> Tuple[List[LogEntry], int]:
    # 로그 파일을 읽어 (엔트리 목록, 파싱 실패 줄 수)를 반환한다.
    entries: List[LogEntry] = []
    malformed = 0
    if not Path(path).exists():
        return entries, malformed
    with Path(path).open("r", encoding="utf-8") as handle:
        for line in handle:
            if not line.strip():
                continue
            entry = parse_log_line(line)
            if entry is None:
                malformed += 1
            else:
                entries.append(entry)
    return entries, malformed


class _LogSink:
    # 파일 하나에 대한 추가 전용 쓰기 창구이며 엔트리 단위 원자성을 보장한다.
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._handle: Optional[IO[str]] = self.path.open("a", encoding="utf-8")

    def write(self, line: str) -> None:
        with self._lock:
            if self._handle is None:
                raise ValueError(f"log sink closed: {self.path}")
            # 한 줄 전체를 한 번의 write로 기록한다.
            try:
                self._handle.write(line + "\n")
                self._handle.flush()
            except OSError as exc:
                raise FatalError(f"Cannot write log {self.path}: {exc}") from exc

    def flush(self) -> None:
        with self._lock:
            if self._handle is not None:
                try:
                    self._handle.flush()
                except OSError as exc:
                    raise FatalError(f"Cannot flush log {self.path}: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                handle, self._handle = self._handle, None
                try:
                    handle.close()
                except OSError as exc:
                    raise FatalError(f"Cannot close log {self.path}: {exc}") from exc


class StructuredLogger:
    """세션 전체 로그 작성기.

    모든 엔트리는 기록 전에 level/result 열거형을 검증합니다. 잘못된
    엔트리는 세션 로그로 절대 전달되지 않고, 대신 위반 값을 metrics에
    담은 ERROR 엔트리가 기록됩니다.
    """

    def __init__(self, session_id: str, log_path: Path, component: str = "Orchestrator") -> None:
        self.session_id = session_id
        self.log_path = Path(log_path)
        self.component = component
        self.rejected_count = 0
        self._entries: List[LogEntry] = []
        self._entries_lock = threading.Lock()
        self._task_loggers: Dict[str, "TaskLogger"] = {}
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._sink = _LogSink(self.log_path)
        except OSError as exc:
            raise FatalError(f"Cannot initialize session log {self.log_path}: {exc}") from exc

    @classmethod
    def for_session(cls, session: SessionContext) -> "StructuredLogger":
        return cls(session.session_id, session.paths.logs / SESSION_LOG_NAME)

    @property
    def entries(self) -> List[LogEntry]:
        with self._entries_lock:
            return list(self._entries)

    def log(
        self,
        level: Any,
        message: str,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        target: Optional[str] = None,
        result: Any = None,
        metrics: Optional[Mapping[str, Any]] = None,
    ) -> LogEntry:
        entry = self.build(level, message, component, operation, target, result, metrics)
        self.emit(entry)
        return entry

    def build(
        self,
        level: Any,
        message: str,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        target: Optional[str] = None,
        result: Any = None,
        metrics: Optional[Mapping[str, Any]] = None,
    ) -> LogEntry:
        component = component or self.component
        try:
            return validate_entry(
                level,
                component,
                message,
                self.session_id,
                operation=operation,
                target=target,
                result=result,
                metrics=metrics,
            )
        except ValidationError as exc:
            return self._rejected(exc, component, level, operation, target, result, metrics)

    def _rejected(
        self,
        exc: ValidationError,
        component: str,
        level: Any,
        operation: Optional[str],
        target: Optional[str],
        result: Any,
        metrics: Any,
    ) -> LogEntry:
        # 경계에서 거부하고 위반 값을 데이터로 남긴 ERROR 엔트리로 대체한다.
        logger.debug("Rejected log entry from %s: %s", component, exc)
        with self._entries_lock:
            self.rejected_count += 1
        fields = {"level": level, "result": result, "operation": operation, "target": target}
        offending = fields.get(exc.field or "", None)
        return validate_entry(
            LogLevel.ERROR,
            str(component),
            f"Rejected log entry: {exc.message}",
            self.session_id,
            operation=operation if isinstance(operation, str) else None,
            target=target if isinstance(target, str) else None,
            metrics={
                "rejected_field": exc.field or "unknown",
                "rejected_value": repr(offending) if offending is not None else repr(metrics),
            },
        )

    def _checked(self, entry: LogEntry) -> LogEntry:
        # 직접 만든 LogEntry도 build()와 같은 규칙으로 다시 검증한다.
        try:
            return validate_entry(
                entry.level,
                entry.component,
                entry.message,
                entry.session_id,
                operation=entry.operation,
                target=entry.target,
                result=entry.result,
                metrics=entry.metrics,
                timestamp=entry.timestamp,
            )
        except ValidationError as exc:
            return self._rejected(
                exc, entry.component, entry.level, entry.operation, entry.target, entry.result, entry.metrics
            )

    def emit(self, entry: LogEntry) -> None:
        entry = self._checked(entry)
        self._sink.write(format_entry(entry))
        with self._entries_lock:
            self._entries.append(entry)
        logging.getLogger(f"sysmaint.{entry.component}").log(
            _PYTHON_LEVELS[entry.level], "%s", entry.message
        )

    def debug(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.INFO, message, **fields)

    def warn(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.WARN, message, **fields)

    def error(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.ERROR, message, **fields)

    def success(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.SUCCESS, message, **fields)

    def task_logger(self, task_name: str) -> "TaskLogger":
        # 태스크 로그 파일은 태스크별로 하나만 연다.
        if task_name not in self._task_loggers:
            self._task_loggers[task_name] = TaskLogger(self, task_name, self.log_path.parent / f"{task_name}.log")
        return self._task_loggers[task_name]

    def flush(self) -> None:
        self._sink.flush()
        for task_logger in self._task_loggers.values():
            task_logger.flush()

    def close(self) -> None:
        for task_logger in self._task_loggers.values():
            task_logger.close()
        self._sink.close()


class TaskLogger:
    """태스크 전용 로그 작성기로 태스크 로그와 세션 로그에 동시에 기록합니다."""

    def __init__(self, parent: StructuredLogger, task_name: str, log_path: Path) -> None:
        self.parent = parent
        self.task_name = task_name
        self.log_path = Path(log_path)
        try:
            self._sink = _LogSink(self.log_path)
        except OSError as exc:
            raise FatalError(f"Cannot initialize task log {self.log_path}: {exc}") from exc

    @property
    def session_id(self) -> str:
        return self.parent.session_id

    def log(
        self,
        level: Any,
        message: str,
        operation: Optional[str] = None,
        target: Optional[str] = None,
        result: Any = None,
        metrics: Optional[Mapping[str, Any]] = None,
    ) -> LogEntry:
        entry = self.parent.build(level, message, self.task_name, operation, target, result, metrics)
        self._sink.write(format_entry(entry))
        self.parent.emit(entry)
        return entry

    def debug(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.INFO, message, **fields)

    def warn(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.WARN, message, **fields)

    def error(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.ERROR, message, **fields)

    def success(self, message: str, **fields: Any) -> LogEntry:
        return self.log(LogLevel.SUCCESS, message, **fields)

    def flush(self) -> None:
        self._sink.flush()

    def close(self) -> None:
        self._sink.close()
