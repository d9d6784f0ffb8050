"""이 파일은 .py 테스트 모듈로 구조화 로그의 와이어 포맷과 경계 검증을 확인합니다."""

import threading
from datetime import datetime, timezone
from pathlib import Path

from helpers import FullDiskHandle, fill_disk

from sysmaint.core.errors import FatalError, ValidationError
from sysmaint.core.logging import (
    StructuredLogger,
    format_entry,
    parse_log_line,
    read_log,
    validate_entry,
)
from sysmaint.core.types import LogEntry, LogLevel, LogResult


def test_format_and_parse_preserve_fields() -> None:
    entry = validate_entry(
        "warn",
        "temp_cleanup",
        "line one\nline | two",
        "sess-1",
        operation="Remove",
        target="/tmp/a|b.tmp",
        result="skipped",
        metrics={"count": 3, "ratio": 0.5, "note": "x|y"},
        timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )
    line = format_entry(entry)
    assert "\n" not in line
    assert line.startswith("[2024-05-01T12:00:00.000+00:00] [WARN] [temp_cleanup] ")
    parsed = parse_log_line(line)
    assert parsed is not None
    assert parsed.level is LogLevel.WARN
    assert parsed.result is LogResult.SKIPPED
    assert parsed.message == "line one\nline | two"
    assert parsed.target == "/tmp/a|b.tmp"
    assert parsed.metrics == {"count": 3, "ratio": 0.5, "note": "x|y"}
    assert parsed.session_id == "sess-1"


def test_validate_entry_rejects_unknown_level() -> None:
    try:
        validate_entry("NOTICE", "Orchestrator", "hello", "sess-1")
    except ValidationError as exc:
        assert exc.field == "level"
    else:
        raise AssertionError("ValidationError not raised")


def test_validate_entry_rejects_nested_metrics() -> None:
    try:
        validate_entry("INFO", "Orchestrator", "hello", "sess-1", metrics={"nested": {"a": 1}})
    except ValidationError as exc:
        assert exc.field == "metrics"
    else:
        raise AssertionError("ValidationError not raised")


def test_invalid_entry_is_replaced_by_error_entry(tmp_path: Path) -> None:
    log = StructuredLogger("sess-1", tmp_path / "session.log")
    log.log("LOUD", "secret payload", operation="Check")
    log.close()

    entries, malformed = read_log(tmp_path / "session.log")
    assert malformed == 0
    assert len(entries) == 1
    assert entries[0].level is LogLevel.ERROR
    assert entries[0].metrics["rejected_field"] == "level"
    assert "LOUD" in entries[0].metrics["rejected_value"]
    assert "secret payload" not in (tmp_path / "session.log").read_text(encoding="utf-8")
    assert log.rejected_count == 1


def test_invalid_result_value_is_rejected(tmp_path: Path) -> None:
    log = StructuredLogger("sess-1", tmp_path / "session.log")
    entry = log.info("done", result="Maybe")
    log.close()
    assert entry.level is LogLevel.ERROR
    assert entry.metrics["rejected_field"] == "result"


def test_task_logger_writes_task_and_session_logs(tmp_path: Path) -> None:
    log = StructuredLogger("sess-1", tmp_path / "session.log")
    task_log = log.task_logger("system_updates")
    task_log.info("Detection started", operation="Detect")
    log.close()

    task_entries, _ = read_log(tmp_path / "system_updates.log")
    session_entries, _ = read_log(tmp_path / "session.log")
    assert [entry.component for entry in task_entries] == ["system_updates"]
    assert [entry.message for entry in session_entries] == ["Detection started"]


def test_concurrent_writers_never_interleave(tmp_path: Path) -> None:
    log = StructuredLogger("sess-1", tmp_path / "session.log")

    def writer(name: str) -> None:
        task_log = log.task_logger(name)
        for index in range(50):
            task_log.info(f"{name} message {index} " + "x" * 200, operation="Act")

    names = ["alpha", "beta", "gamma", "delta"]
    for name in names:
        log.task_logger(name)
    threads = [threading.Thread(target=writer, args=(name,)) for name in names]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    log.close()

    entries, malformed = read_log(tmp_path / "session.log")
    assert malformed == 0
    assert len(entries) == 200
    assert len(log.entries) == 200


def test_malformed_lines_are_counted(tmp_path: Path) -> None:
    path = tmp_path / "session.log"
    path.write_text(
        "garbage line\n[2024-05-01T12:00:00+00:00] [BOGUS] [x] msg | session=s\n", encoding="utf-8"
    )
    entries, malformed = read_log(path)
    assert entries == []
    assert malformed == 2


def test_unwritable_log_is_fatal(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    try:
        StructuredLogger("sess-1", blocker / "session.log")
    except FatalError:
        pass
    else:
        raise AssertionError("FatalError not raised")


def test_emit_revalidates_prebuilt_entries(tmp_path: Path) -> None:
    log = StructuredLogger("sess-1", tmp_path / "session.log")
    log.emit(
        LogEntry(
            timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
            level="VERBOSE",
            component="temp_cleanup",
            message="hand built",
            session_id="sess-1",
            operation="Detect",
        )
    )
    log.close()

    entries, malformed = read_log(tmp_path / "session.log")
    assert malformed == 0
    assert [entry.level for entry in entries] == [LogLevel.ERROR]
    assert entries[0].metrics["rejected_field"] == "level"
    assert "VERBOSE" in entries[0].metrics["rejected_value"]
    assert entries[0].operation == "Detect"
    assert log.rejected_count == 1


def test_emit_rejects_non_string_target(tmp_path: Path) -> None:
    log = StructuredLogger("sess-1", tmp_path / "session.log")
    log.emit(
        LogEntry(
            timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
            level=LogLevel.INFO,
            component="Orchestrator",
            message="odd target",
            session_id="sess-1",
            target=42,
        )
    )
    log.close()
    assert log.entries[0].level is LogLevel.ERROR
    assert log.entries[0].metrics["rejected_field"] == "target"
    assert log.entries[0].target is None


def test_write_failure_mid_session_is_fatal(tmp_path: Path) -> None:
    log = StructuredLogger("sess-1", tmp_path / "session.log")
    fill_disk(log, writes_allowed=1)
    log.info("first line fits")
    try:
        log.info("second line does not")
    except FatalError as exc:
        assert "No space left" in str(exc)
    else:
        raise AssertionError("FatalError not raised")
    finally:
        log.close()
    assert len(log.entries) == 1


def test_task_log_write_failure_is_fatal(tmp_path: Path) -> None:
    log = StructuredLogger("sess-1", tmp_path / "session.log")
    task_log = log.task_logger("temp_cleanup")
    task_log._sink._handle = FullDiskHandle(task_log._sink._handle, writes_allowed=0)
    try:
        task_log.info("Detection started", operation="Detect")
    except FatalError:
        pass
    else:
        raise AssertionError("FatalError not raised")
    finally:
        log.close()
