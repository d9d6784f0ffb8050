"""이 파일은 .py 오케스트레이터 서비스 모듈로 세션 전체 실행 흐름을 제공합니다."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from sysmaint.adapters.command import CommandRunner
from sysmaint.core.config import STORAGE_ROOT, TEMPLATES_DIR
from sysmaint.core.config_store import ConfigurationStore
from sysmaint.core.countdown import Countdown, CountdownOutcome
from sysmaint.core.errors import AdapterError, FatalError, TaskRegistryError, ValidationError
from sysmaint.core.logging import SESSION_LOG_NAME, StructuredLogger, read_log
from sysmaint.core.session import create_session
from sysmaint.core.task_registry import TaskRegistry
from sysmaint.core.types import (
    ConfigSnapshot,
    ExecutionResult,
    LogResult,
    Mode,
    ProcessedMetrics,
    ReportArtifact,
    SessionContext,
    SessionResultSet,
    TaskDescriptor,
    TaskError,
)

from .aggregator import aggregate
from .log_processor import load_detection_docs, process, write_metrics
from .reporting import SUPPORTED_FORMATS, ReportRenderer, summarize_results
from .task_runner import TaskRunner, build_command_runner, error_kind_for

logger = logging.getLogger(__name__)

POST_RUN_COMMANDS = {
    "reboot": ["systemctl", "reboot"],
    "poweroff": ["systemctl", "poweroff"],
}


class RunState(str, Enum):
    IDLE = "Idle"
    LOADING = "Loading"
    EXECUTING = "Executing"
    AGGREGATING = "Aggregating"
    REPORTING = "Reporting"
    DONE = "Done"
    ABORTED = "Aborted"


@dataclass
class RunOutcome:
    state: RunState
    session: Optional[SessionContext] = None
    result_set: Optional[SessionResultSet] = None
    metrics: Optional[ProcessedMetrics] = None
    artifacts: List[ReportArtifact] = field(default_factory=list)
    countdown: Optional[CountdownOutcome] = None
    error: Optional[str] = None

    @property
    def exit_code(self) -> int:
        # 실패한 태스크가 있어도 Done이면 0, 중단되면 1이다.
        return 0 if self.state is RunState.DONE else 1


class Orchestrator:
    def __init__(
        self,
        config_dir: Optional[Path] = None,
        root: Optional[Path] = None,
        profile: Optional[str] = None,
        registry: Optional[TaskRegistry] = None,
        tasks_file: Optional[Path] = None,
        store: Optional[ConfigurationStore] = None,
        templates_dir: Optional[Path] = None,
        runner_factory: Optional[Callable[[SessionContext], CommandRunner]] = None,
        logger_factory: Callable[[SessionContext], StructuredLogger] = StructuredLogger.for_session,
        countdown_factory: Optional[Callable[[float, float], Countdown]] = None,
        console_level: Optional[str] = None,
    ) -> None:
        self.store = store or ConfigurationStore(config_dir, profile=profile)
        self.root = Path(root or STORAGE_ROOT)
        self.registry = registry
        self.tasks_file = tasks_file
        self.templates_dir = templates_dir
        self.runner_factory = runner_factory or build_command_runner
        self.logger_factory = logger_factory
        self.countdown_factory = countdown_factory or (lambda seconds, poll: Countdown(seconds, poll))
        self.console_level = console_level
        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]

    def _transition(self, state: RunState) -> None:
        logger.debug("Run state %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def run(
        self,
        mode: Optional[Mode] = None,
        task_ids: Optional[Sequence[str]] = None,
        interactive: bool = False,
    ) -> RunOutcome:
        self._transition(RunState.LOADING)
        session_log: Optional[StructuredLogger] = None
        try:
            # 1) 설정 로드/검증 -> 2) 레지스트리 -> 3) 세션 -> 4) 로거
            snapshot = self.store.load()
            self._apply_console_level(snapshot)
            registry = self.registry if self.registry is not None else TaskRegistry.from_file(self.tasks_file)
            registry = registry.select(task_ids)
            session = create_session(snapshot, self._resolve_mode(mode, snapshot), self.root)
            session_log = self.logger_factory(session)
        except (ValidationError, TaskRegistryError, KeyError, FatalError, OSError) as exc:
            return self._abort(exc, session_log)

        # 이후 어느 단계에서든 세션 로그 기록이 실패하면 FatalError로 중단한다.
        try:
            session_log.info(
                f"Session started: {len(registry)} tasks, mode={session.mode.value}",
                operation="Session",
                result=LogResult.IN_PROGRESS,
                metrics={"tasks": len(registry), "profile": snapshot.profile or ""},
            )
            self._transition(RunState.EXECUTING)
            results = self._execute(session, session_log, registry)

            self._transition(RunState.AGGREGATING)
            result_set = aggregate(results, registry.order(), session.session_id)
            summary = summarize_results(result_set)
            session_log.info(
                f"Aggregated {len(result_set)} results",
                operation="Aggregate",
                metrics={"succeeded": summary["SUCCESS"], "failed": summary["FAILED"]},
            )

            self._transition(RunState.REPORTING)
            metrics, artifacts = self._report(session, session_log, registry, result_set)

            session_log.success(
                "Session completed",
                operation="Session",
                result=LogResult.SUCCESS,
                metrics={"success_rate": metrics.success_rate if metrics else 0.0},
            )
            self._transition(RunState.DONE)
            countdown = self._post_run(session, session_log, interactive)
            session_log.close()
        except FatalError as exc:
            return self._abort(exc, session_log)

        return RunOutcome(
            state=RunState.DONE,
            session=session,
            result_set=result_set,
            metrics=metrics,
            artifacts=artifacts,
            countdown=countdown,
        )

    def _apply_console_level(self, snapshot: ConfigSnapshot) -> None:
        # 명령행 값이 없으면 settings.logging.level을 콘솔 레벨로 쓴다.
        settings_level = (snapshot.settings.get("logging", {}) or {}).get("level", "INFO")
        logging.getLogger("sysmaint").setLevel(self.console_level or settings_level)

    def _resolve_mode(self, mode: Optional[Mode], snapshot: ConfigSnapshot) -> Mode:
        if mode is not None:
            return mode
        return Mode(snapshot.settings.get("mode", Mode.DRY_RUN.value))

    def _execute(
        self,
        session: SessionContext,
        session_log: StructuredLogger,
        registry: TaskRegistry,
    ) -> List[ExecutionResult]:
        runner = TaskRunner(session, session_log, self.runner_factory)
        enabled: List[TaskDescriptor] = []
        for descriptor in registry:
            if session.config.task_enabled(descriptor.name):
                enabled.append(descriptor)
            else:
                session_log.info(
                    "Task disabled in settings",
                    operation="Task",
                    target=descriptor.name,
                    result=LogResult.SKIPPED,
                )

        execution = session.config.settings.get("execution", {}) or {}
        max_workers = int(execution.get("max_workers", 1))
        if max_workers <= 1 or len(enabled) <= 1:
            return [self._run_task(runner, descriptor, session_log) for descriptor in enabled]

        # 태스크는 서로 독립이므로 제한된 풀에서 병렬로 실행할 수 있다.
        session_log.debug(f"Running tasks with {max_workers} workers", operation="Schedule")
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sysmaint-task") as pool:
            futures = [pool.submit(self._run_task, runner, descriptor, session_log) for descriptor in enabled]
            return [future.result() for future in futures]

    def _run_task(
        self,
        runner: TaskRunner,
        descriptor: TaskDescriptor,
        session_log: StructuredLogger,
    ) -> ExecutionResult:
        try:
            return runner.run(descriptor)
        except FatalError:
            raise
        except Exception as exc:
            # 태스크 하나의 실패는 실행 전체를 멈추지 않는다.
            session_log.error(
                f"Task boundary caught {type(exc).__name__}: {exc}",
                operation="Task",
                target=descriptor.name,
                result=LogResult.FAILED,
            )
            return ExecutionResult(
                task_name=descriptor.name,
                success=False,
                items_detected=0,
                items_processed=0,
                dry_run=runner.session.dry_run,
                duration_ms=0,
                session_id=runner.session.session_id,
                error=TaskError(kind=error_kind_for(exc), message=f"{type(exc).__name__}: {exc}"),
            )

    def _report(
        self,
        session: SessionContext,
        session_log: StructuredLogger,
        registry: TaskRegistry,
        result_set: SessionResultSet,
    ):
        # 보고서 단계의 실패는 기록만 하고 실행을 중단시키지 않는다.
        metrics: Optional[ProcessedMetrics] = None
        artifacts: List[ReportArtifact] = []
        try:
            session_log.flush()
            raw_entries, malformed = read_log(session.paths.logs / SESSION_LOG_NAME)
            if malformed:
                session_log.warn(f"{malformed} malformed log lines skipped", operation="Process")
            docs = load_detection_docs(session.paths.data)
            metrics = process(
                result_set,
                raw_entries,
                docs,
                scoring=session.config.settings.get("health_scoring"),
                categories={descriptor.name: descriptor.category for descriptor in registry},
                log_dir=session.paths.logs,
            )
            write_metrics(session.paths.processed / "metrics.json", metrics)
            reporting = session.config.settings.get("reporting", {}) or {}
            templates_dir = self.templates_dir or reporting.get("templates_dir") or TEMPLATES_DIR
            renderer = ReportRenderer(Path(templates_dir), log=session_log)
            artifacts = renderer.render_all(
                session.paths.reports,
                metrics,
                result_set,
                docs,
                session=session,
                formats=tuple(reporting.get("formats", SUPPORTED_FORMATS)),
            )
        except FatalError:
            raise
        except Exception as exc:
            session_log.error(f"Reporting failed: {exc}", operation="Report", result=LogResult.FAILED)
        return metrics, artifacts

    def _post_run(
        self,
        session: SessionContext,
        session_log: StructuredLogger,
        interactive: bool,
    ) -> Optional[CountdownOutcome]:
        post_run = session.config.settings.get("post_run", {}) or {}
        action = str(post_run.get("action", "none"))
        if action == "none":
            return None
        # 비대화형 실행에서는 기다리지 않고 기본 동작을 바로 실행한다.
        seconds = float(post_run.get("countdown_seconds", 30)) if interactive else 0.0
        countdown = self.countdown_factory(seconds, float(post_run.get("poll_interval", 1.0)))
        session_log.info(f"Post-run action '{action}' in {seconds:.0f}s", operation="Countdown", target=action)

        def fire() -> None:
            self._fire_post_run(session, session_log, action)

        outcome = countdown.run(fire)
        if outcome.cancelled:
            session_log.info("Post-run action cancelled", operation="Countdown", target=action, result=LogResult.SKIPPED)
        return outcome

    def _fire_post_run(self, session: SessionContext, session_log: StructuredLogger, action: str) -> None:
        command = POST_RUN_COMMANDS.get(action)
        if command is None:
            session_log.warn(f"Unknown post-run action: {action}", operation="Countdown", target=action)
            return
        if session.dry_run:
            session_log.info(f"[DRY-RUN] Would run {' '.join(command)}", operation="Countdown", target=action, result=LogResult.SKIPPED)
            return
        try:
            self.runner_factory(session).check(command, elevated=True)
        except AdapterError as exc:
            session_log.error(f"Post-run action failed: {exc}", operation="Countdown", target=action, result=LogResult.FAILED)
            return
        session_log.success(f"Post-run action '{action}' started", operation="Countdown", target=action, result=LogResult.SUCCESS)

    def _abort(self, exc: Exception, session_log: Optional[StructuredLogger]) -> RunOutcome:
        self._transition(RunState.ABORTED)
        logger.error("Run aborted: %s", exc)
        if session_log is not None:
            # 남아 있는 로그를 최대한 기록한 뒤 종료한다.
            try:
                session_log.log("FATAL", f"Run aborted: {exc}", operation="Session", result=LogResult.FAILED)
            except (FatalError, ValueError) as flush_exc:
                logger.debug("Best-effort log flush failed: %s", flush_exc)
            try:
                session_log.close()
            except (FatalError, OSError) as close_exc:
                logger.debug("Session log close failed: %s", close_exc)
        return RunOutcome(state=RunState.ABORTED, error=str(exc))
