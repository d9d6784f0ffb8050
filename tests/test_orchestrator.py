"""이 파일은 .py 테스트 모듈로 세션 전체 실행 흐름과 상태 전이를 확인합니다."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from helpers import FakeDetector, FakeRunner, NoisyDetector, fill_disk, make_descriptor, make_session, make_snapshot, write_config

from sysmaint.core.countdown import Countdown
from sysmaint.core.errors import ValidationError
from sysmaint.core.logging import SESSION_LOG_NAME, StructuredLogger, read_log
from sysmaint.core.task_registry import TaskRegistry
from sysmaint.core.types import ErrorKind, LogLevel, Mode
from sysmaint.services.orchestrator import Orchestrator, RunState


def _settings(**overrides: Any) -> Dict[str, Any]:
    settings: Dict[str, Any] = {
        "mode": "dry-run",
        "tasks": {
            "alpha": {"options": {"items": ["a1", "a2", "a3"]}},
            "beta": {"options": {"items": ["b1", "b2"]}},
            "gamma": {"options": {"items": ["g1"]}},
        },
        "reporting": {"formats": ["json", "txt"]},
    }
    settings.update(overrides)
    return settings


def _lists() -> Dict[str, Any]:
    return {
        "alpha": {"entries": [{"match_key": "a1", "state": "absent"}, {"match_key": "a3", "state": "absent"}]},
        "beta": {"entries": [{"match_key": "B1", "state": "absent"}, {"match_key": "b2", "state": "absent"}]},
        "gamma": {"entries": [{"match_key": "g1", "state": "absent"}]},
    }


def _orchestrator(
    tmp_path: Path,
    settings: Dict[str, Any],
    lists: Optional[Dict[str, Any]] = None,
    runner: Optional[FakeRunner] = None,
    interrupted: bool = False,
    alpha_detector=FakeDetector,
    **kwargs: Any,
) -> Orchestrator:
    config_dir = write_config(tmp_path / "config", settings, lists if lists is not None else _lists())
    registry = TaskRegistry(
        [
            make_descriptor("alpha", category="cleanup", detector=alpha_detector),
            make_descriptor("beta", category="security"),
            make_descriptor("gamma", category="updates"),
        ]
    )
    fake_runner = runner or FakeRunner()
    return Orchestrator(
        config_dir=config_dir,
        root=tmp_path / "storage",
        registry=registry,
        runner_factory=lambda _session: fake_runner,
        countdown_factory=lambda seconds, poll: Countdown(
            seconds, poll, interrupted=lambda: interrupted, sleep=lambda _seconds: None
        ),
        **kwargs,
    )


def test_all_tasks_succeed_in_dry_run(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, _settings())
    outcome = orchestrator.run()

    assert outcome.state is RunState.DONE
    assert outcome.exit_code == 0
    assert orchestrator.history == [
        RunState.IDLE,
        RunState.LOADING,
        RunState.EXECUTING,
        RunState.AGGREGATING,
        RunState.REPORTING,
        RunState.DONE,
    ]
    results = outcome.result_set.results
    assert [result.task_name for result in results] == ["alpha", "beta", "gamma"]
    assert [(result.items_detected, result.items_processed) for result in results] == [(3, 2), (2, 2), (1, 1)]
    assert all(result.dry_run and result.success for result in results)
    assert outcome.metrics.success_rate == 1.0
    assert [artifact.format for artifact in outcome.artifacts] == ["json", "txt"]

    paths = outcome.session.paths
    assert (paths.processed / "metrics.json").exists()
    assert sorted(path.name for path in paths.data.glob("*.json")) == ["alpha.json", "beta.json", "gamma.json"]
    entries, malformed = read_log(paths.logs / SESSION_LOG_NAME)
    assert malformed == 0
    assert {entry.session_id for entry in entries} == {outcome.session.session_id}


def test_detection_failure_does_not_stop_other_tasks(tmp_path: Path) -> None:
    settings = _settings()
    settings["tasks"]["beta"] = {"options": {"detect_error": "package database locked"}}
    outcome = _orchestrator(tmp_path, settings).run()

    assert outcome.state is RunState.DONE
    assert outcome.exit_code == 0
    alpha, beta, gamma = outcome.result_set.results
    assert alpha.success and gamma.success
    assert beta.success is False
    assert beta.error.kind is ErrorKind.DETECTION
    assert "package database locked" in beta.error.message
    assert abs(outcome.metrics.success_rate - 2 / 3) < 1e-9
    assert outcome.metrics.errors_by_task["beta"][0].startswith("DetectionError: ")

    summary = (outcome.session.paths.reports / "report.txt").read_text(encoding="utf-8")
    assert "- beta [FAILED]" in summary


def test_live_parallel_run_keeps_registry_order(tmp_path: Path) -> None:
    settings = _settings(mode="live", execution={"max_workers": 3})
    settings["tasks"]["alpha"]["options"]["fail_items"] = ["a3"]
    outcome = _orchestrator(tmp_path, settings).run()

    assert outcome.state is RunState.DONE
    assert [result.task_name for result in outcome.result_set.results] == ["alpha", "beta", "gamma"]
    alpha = outcome.result_set.get("alpha")
    assert alpha.dry_run is False
    assert (alpha.items_detected, alpha.items_processed) == (3, 1)
    assert alpha.error.kind is ErrorKind.ACTION
    assert outcome.result_set.get("beta").success is True


def test_mode_argument_overrides_settings(tmp_path: Path) -> None:
    outcome = _orchestrator(tmp_path, _settings(mode="live")).run(mode=Mode.DRY_RUN)
    assert outcome.session.mode is Mode.DRY_RUN
    assert all(result.dry_run for result in outcome.result_set.results)


def test_invalid_settings_abort_before_any_task(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, _settings(mode="sometimes"))
    outcome = orchestrator.run()

    assert outcome.state is RunState.ABORTED
    assert outcome.exit_code == 1
    assert outcome.session is None
    assert "mode" in outcome.error
    assert orchestrator.history == [RunState.IDLE, RunState.LOADING, RunState.ABORTED]
    assert not (tmp_path / "storage" / "data").exists()


def test_invalid_list_document_fails_only_its_task(tmp_path: Path) -> None:
    lists = _lists()
    lists["gamma"] = {"entries": [{"state": "absent"}]}
    outcome = _orchestrator(tmp_path, _settings(), lists).run()

    assert outcome.state is RunState.DONE
    gamma = outcome.result_set.get("gamma")
    assert gamma.success is False
    assert gamma.error.kind is ErrorKind.VALIDATION
    assert (gamma.items_detected, gamma.items_processed) == (0, 0)
    assert outcome.result_set.get("alpha").success is True


def test_unknown_task_id_aborts(tmp_path: Path) -> None:
    outcome = _orchestrator(tmp_path, _settings()).run(task_ids=["alpha", "omega"])
    assert outcome.state is RunState.ABORTED
    assert "omega" in outcome.error


def test_selected_and_disabled_tasks(tmp_path: Path) -> None:
    settings = _settings()
    settings["tasks"]["gamma"]["enabled"] = False
    outcome = _orchestrator(tmp_path, settings).run(task_ids=["gamma", "beta"])

    assert [result.task_name for result in outcome.result_set.results] == ["beta"]
    entries, _ = read_log(outcome.session.paths.logs / SESSION_LOG_NAME)
    assert any(entry.target == "gamma" and entry.message == "Task disabled in settings" for entry in entries)


def test_post_run_action_in_dry_run_only_logs(tmp_path: Path) -> None:
    runner = FakeRunner()
    settings = _settings(post_run={"action": "reboot", "countdown_seconds": 30})
    outcome = _orchestrator(tmp_path, settings, runner=runner).run(interactive=False)

    assert outcome.countdown is not None
    assert outcome.countdown.fired is True
    assert ["systemctl", "reboot"] not in runner.calls
    entries, _ = read_log(outcome.session.paths.logs / SESSION_LOG_NAME)
    assert any(entry.message == "[DRY-RUN] Would run systemctl reboot" for entry in entries)


def test_post_run_action_fires_once_in_live_mode(tmp_path: Path) -> None:
    runner = FakeRunner()
    settings = _settings(mode="live", post_run={"action": "poweroff", "countdown_seconds": 30})
    outcome = _orchestrator(tmp_path, settings, runner=runner).run(interactive=False)

    assert outcome.countdown.fired is True
    assert runner.calls.count(["systemctl", "poweroff"]) == 1


def test_post_run_action_can_be_cancelled(tmp_path: Path) -> None:
    runner = FakeRunner()
    settings = _settings(mode="live", post_run={"action": "reboot", "countdown_seconds": 30})
    outcome = _orchestrator(tmp_path, settings, runner=runner, interrupted=True).run(interactive=True)

    assert outcome.countdown.cancelled is True
    assert outcome.countdown.fired is False
    assert ["systemctl", "reboot"] not in runner.calls


def test_metrics_file_matches_outcome(tmp_path: Path) -> None:
    outcome = _orchestrator(tmp_path, _settings()).run()
    data = json.loads((outcome.session.paths.processed / "metrics.json").read_text(encoding="utf-8"))
    assert data["session_id"] == outcome.session.session_id
    assert data["total_tasks"] == 3
    assert data["log_levels"].get(LogLevel.ERROR.value, 0) == 0


def test_malformed_task_registry_aborts(tmp_path: Path) -> None:
    tasks_file = tmp_path / "tasks.yml"
    tasks_file.write_text("tasks: [\n  - id: x\n", encoding="utf-8")
    orchestrator = Orchestrator(
        config_dir=write_config(tmp_path / "config", _settings(), _lists()),
        root=tmp_path / "storage",
        tasks_file=tasks_file,
    )
    outcome = orchestrator.run()

    assert outcome.state is RunState.ABORTED
    assert outcome.exit_code == 1
    assert "Invalid task registry" in outcome.error
    assert orchestrator.history == [RunState.IDLE, RunState.LOADING, RunState.ABORTED]


def _full_disk_logger(writes_allowed: int):
    def factory(session):
        session_log = StructuredLogger.for_session(session)
        fill_disk(session_log, writes_allowed)
        return session_log

    return factory


def test_session_log_write_failure_aborts_run(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, _settings(), logger_factory=_full_disk_logger(2))
    outcome = orchestrator.run()

    assert outcome.state is RunState.ABORTED
    assert outcome.exit_code == 1
    assert "No space left on device" in outcome.error
    assert orchestrator.history == [RunState.IDLE, RunState.LOADING, RunState.EXECUTING, RunState.ABORTED]
    assert not list((tmp_path / "storage" / "data").rglob("*.json"))


def test_session_log_write_failure_aborts_parallel_run(tmp_path: Path) -> None:
    settings = _settings(execution={"max_workers": 3})
    outcome = _orchestrator(tmp_path, settings, logger_factory=_full_disk_logger(2)).run()
    assert outcome.state is RunState.ABORTED
    assert outcome.exit_code == 1


def test_invalid_task_log_level_is_counted_and_run_completes(tmp_path: Path) -> None:
    settings = _settings()
    settings["tasks"]["alpha"]["options"]["log_level"] = "VERBOSE"
    outcome = _orchestrator(tmp_path, settings, alpha_detector=NoisyDetector).run()

    assert outcome.state is RunState.DONE
    assert outcome.exit_code == 0
    assert outcome.result_set.get("alpha").success is True
    assert outcome.metrics.rejected_log_entries == 1
    entries, malformed = read_log(outcome.session.paths.logs / SESSION_LOG_NAME)
    assert malformed == 0
    assert "VERBOSE" not in {entry.level.value for entry in entries}
    rejected = [entry for entry in entries if entry.metrics and "rejected_field" in entry.metrics]
    assert [(entry.component, entry.metrics["rejected_field"]) for entry in rejected] == [("alpha", "level")]


class _RaisingRunner:
    def __init__(self, session, exc: Exception) -> None:
        self.session = session
        self.exc = exc

    def run(self, descriptor):
        raise self.exc


def test_task_boundary_labels_error_by_exception_type(tmp_path: Path) -> None:
    session = make_session(tmp_path, make_snapshot())
    session_log = StructuredLogger.for_session(session)
    orchestrator = Orchestrator(config_dir=tmp_path, root=tmp_path)
    descriptor = make_descriptor("alpha")

    invalid = orchestrator._run_task(
        _RaisingRunner(session, ValidationError("bad entry", document="lists/alpha.json")), descriptor, session_log
    )
    crashed = orchestrator._run_task(_RaisingRunner(session, KeyError("lost")), descriptor, session_log)
    session_log.close()

    assert invalid.success is False
    assert invalid.error.kind is ErrorKind.VALIDATION
    assert invalid.error.message.startswith("ValidationError: lists/alpha.json")
    assert crashed.error.kind is ErrorKind.ACTION
    assert (crashed.items_detected, crashed.items_processed) == (0, 0)
