"""이 파일은 .py 리포팅 모듈로 처리된 지표와 태스크 상세를 보고서 파일로 만듭니다."""

from __future__ import annotations

import csv
import html
import json
import logging
import platform
from datetime import datetime, timezone
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sysmaint.core.config import REPORT_VERSION, TEMPLATES_DIR
from sysmaint.core.logging import StructuredLogger
from sysmaint.core.types import (
    LogResult,
    ProcessedMetrics,
    ReportArtifact,
    SessionContext,
    SessionResultSet,
    TaskMetrics,
)

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("json", "csv", "html", "txt")
MAX_DETECTIONS_PER_MODULE = 200

_FALLBACK_HTML = """<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>$title</title></head>
<body>
<h1>$title</h1>
<p>Session $session_id &middot; $mode &middot; generated $generated_at</p>
<p>Success rate: $success_rate ($successful_tasks/$total_tasks)</p>
<h2>Health</h2>
<ul>$health_rows</ul>
<h2>Tasks</h2>
$module_cards
</body></html>
"""

_FALLBACK_MODULE = """<div class="module-card" data-module="$name" data-status="$status_lower">
<h3>$name <small>[$status]</small></h3>
<p>$summary</p>$error_block
</div>
"""

_FALLBACK_TXT = """$title
Session: $session_id ($mode)
Generated: $generated_at
Success rate: $success_rate ($successful_tasks/$total_tasks tasks)
Health: $health_inline

$task_lines
"""


def summarize_results(result_set: SessionResultSet) -> Dict[str, int]:
    # 성공/실패 개수로 간단한 요약 정보를 만든다.
    summary = {"SUCCESS": 0, "FAILED": 0}
    for result in result_set.results:
        summary["SUCCESS" if result.success else "FAILED"] += 1
    return summary


def build_report_data(
    metrics: ProcessedMetrics,
    result_set: SessionResultSet,
    detection_docs: Mapping[str, Mapping[str, Any]],
    session: Optional[SessionContext] = None,
) -> Dict[str, Any]:
    """모든 형식이 공유하는 보고서 데이터(내보내기 JSON과 같은 구조)."""
    modules = []
    for task in metrics.tasks:
        doc = detection_docs.get(task.name) or {}
        detections = list(doc.get("detections", []) or [])
        modules.append(
            {
                "name": task.name,
                "category": task.category,
                "status": task.status,
                "summary": task.summary_line,
                "itemsDetected": task.items_detected,
                "itemsProcessed": task.items_processed,
                "dryRun": task.dry_run,
                "durationMs": task.duration_ms,
                "error": task.error.to_dict() if task.error else None,
                "logPath": task.log_path,
                "diff": list(doc.get("diff", []) or []),
                "detections": detections[:MAX_DETECTIONS_PER_MODULE],
                "detectionsTruncated": len(detections) > MAX_DETECTIONS_PER_MODULE,
            }
        )
    metadata = {
        "generatedAt": _format_dt(metrics.generated_at),
        "reportVersion": REPORT_VERSION,
        "sessionId": result_set.session_id,
    }
    if session is not None:
        metadata.update(
            {
                "mode": session.mode.value,
                "startTime": _format_dt(session.start_time),
                "profile": session.config.profile,
            }
        )
    return {
        "metadata": metadata,
        "summary": {
            "totalTasks": metrics.total_tasks,
            "successfulTasks": metrics.successful_tasks,
            "failedTasks": metrics.failed_tasks,
            "successRate": metrics.success_rate,
            "itemsDetected": metrics.items_detected,
            "itemsProcessed": metrics.items_processed,
            "totalDurationMs": metrics.total_duration_ms,
            "averageDurationMs": metrics.average_duration_ms,
            "healthScores": dict(metrics.health_scores),
            "errorsByCategory": dict(metrics.errors_by_category),
            "rejectedLogEntries": metrics.rejected_log_entries,
        },
        "modules": modules,
        "errors": {name: list(items) for name, items in metrics.errors_by_task.items()},
        "systemInfo": {
            "hostname": platform.node(),
            "platform": platform.platform(),
            "python": platform.python_version(),
        },
    }


class ReportRenderer:
    def __init__(
        self,
        templates_dir: Optional[Path] = None,
        log: Optional[StructuredLogger] = None,
    ) -> None:
        self.templates_dir = Path(templates_dir or TEMPLATES_DIR)
        self.log = log

    def render_all(
        self,
        output_dir: Path,
        metrics: ProcessedMetrics,
        result_set: SessionResultSet,
        detection_docs: Mapping[str, Mapping[str, Any]],
        session: Optional[SessionContext] = None,
        formats: Sequence[str] = SUPPORTED_FORMATS,
    ) -> List[ReportArtifact]:
        """형식별로 보고서를 만들며, 한 형식의 실패는 기록만 하고 넘어갑니다."""
        data = build_report_data(metrics, result_set, detection_docs, session)
        artifacts: List[ReportArtifact] = []
        for report_format in formats:
            try:
                artifacts.append(self.render(output_dir, report_format, data, metrics))
            except Exception as exc:
                self._log_error(f"Report rendering failed for {report_format}: {exc}", report_format)
        return artifacts

    def render(
        self,
        output_dir: Path,
        report_format: str,
        data: Dict[str, Any],
        metrics: ProcessedMetrics,
    ) -> ReportArtifact:
        # 지원 여부를 확인하고 형식을 정규화한다.
        normalized = report_format.strip().lower()
        if normalized not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported format: {report_format}")
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        file_path = output_dir / f"report.{normalized}"
        fallback = False

        # 형식별로 파일을 작성한다.
        if normalized == "json":
            _write_json(file_path, data)
        elif normalized == "csv":
            _write_csv(file_path, metrics.tasks)
        elif normalized == "html":
            fallback = self._write_html(file_path, data, metrics)
        else:
            fallback = self._write_text(file_path, data, metrics)

        if self.log is not None:
            self.log.info(
                f"Report written: {file_path.name}",
                component="ReportRenderer",
                operation="Render",
                target=str(file_path),
                result=LogResult.SUCCESS,
                metrics={"fallback_template": fallback},
            )
        return ReportArtifact(format=normalized, path=file_path, used_fallback_template=fallback)

    def load_template(self, name: str, fallback: str) -> Tuple[Template, bool]:
        # 템플릿 리소스를 읽지 못하면 내장 최소 템플릿으로 대체한다.
        path = self.templates_dir / name
        try:
            return Template(path.read_text(encoding="utf-8")), False
        except OSError as exc:
            self._log_warning(f"Template {name} unavailable, using built-in fallback: {exc}", name)
            return Template(fallback), True

    def _write_html(self, file_path: Path, data: Dict[str, Any], metrics: ProcessedMetrics) -> bool:
        page, page_fallback = self.load_template("report.html", _FALLBACK_HTML)
        card, card_fallback = self.load_template("module_card.html", _FALLBACK_MODULE)
        cards = "\n".join(_render_module_card(card, module) for module in data["modules"])
        health_rows = "\n".join(
            f"<li>{html.escape(category)}: {score:.1f}</li>" for category, score in metrics.health_scores.items()
        )
        system_rows = "\n".join(
            f'<div class="metadata-item"><span class="metadata-label">{html.escape(key)}</span>'
            f'<span class="metadata-value">{html.escape(str(value))}</span></div>'
            for key, value in data["systemInfo"].items()
        )
        values = _common_values(data, metrics, escape=True)
        values.update(
            {
                "module_cards": cards,
                "health_rows": health_rows,
                "system_info": system_rows,
                "metric_cards": _render_metric_cards(data),
                # script 태그 안에 들어가므로 닫는 태그만 끊어 준다.
                "report_json": json.dumps(data["summary"], ensure_ascii=False).replace("</", "<\\/"),
            }
        )
        file_path.write_text(page.safe_substitute(values), encoding="utf-8")
        return page_fallback or card_fallback

    def _write_text(self, file_path: Path, data: Dict[str, Any], metrics: ProcessedMetrics) -> bool:
        template, fallback = self.load_template("summary.txt", _FALLBACK_TXT)
        values = _common_values(data, metrics, escape=False)
        values["task_lines"] = "\n".join(_task_line(task) for task in metrics.tasks)
        file_path.write_text(template.safe_substitute(values), encoding="utf-8")
        return fallback

    def _log_warning(self, message: str, target: str) -> None:
        logger.warning(message)
        if self.log is not None:
            self.log.warn(message, component="ReportRenderer", operation="Template", target=target)

    def _log_error(self, message: str, target: str) -> None:
        logger.error(message)
        if self.log is not None:
            self.log.error(
                message, component="ReportRenderer", operation="Render", target=target, result=LogResult.FAILED
            )


def _task_line(task: TaskMetrics) -> str:
    # 실패한 태스크도 빠짐없이 표시하고 오류를 함께 적는다.
    line = f"- {task.name} [{task.status}] {task.summary_line}"
    if task.error is not None:
        line += f" :: {task.error.kind.value}: {task.error.message}"
    return line


def _common_values(data: Dict[str, Any], metrics: ProcessedMetrics, escape: bool) -> Dict[str, str]:
    metadata = data["metadata"]
    title = f"System Maintenance Report - {metadata.get('sessionId')}"
    health_inline = ", ".join(f"{key}={value:.1f}" for key, value in metrics.health_scores.items()) or "n/a"
    values = {
        "title": title,
        "session_id": str(metadata.get("sessionId")),
        "mode": str(metadata.get("mode", "unknown")),
        "generated_at": str(metadata.get("generatedAt")),
        "report_version": str(metadata.get("reportVersion")),
        "success_rate": f"{metrics.success_rate * 100:.1f}%",
        "successful_tasks": str(metrics.successful_tasks),
        "failed_tasks": str(metrics.failed_tasks),
        "total_tasks": str(metrics.total_tasks),
        "items_detected": str(metrics.items_detected),
        "items_processed": str(metrics.items_processed),
        "total_duration": f"{metrics.total_duration_ms / 1000:.1f}s",
        "health_inline": health_inline,
    }
    if escape:
        return {key: html.escape(value) for key, value in values.items()}
    return values


def _render_module_card(template: Template, module: Dict[str, Any]) -> str:
    error = module.get("error")
    error_block = ""
    if error:
        error_block = (
            f'\n<p class="module-error">{html.escape(error["kind"])}: {html.escape(error["message"])}</p>'
        )
    return template.safe_substitute(
        {
            "name": html.escape(module["name"]),
            "category": html.escape(module["category"]),
            "status": module["status"],
            "status_lower": module["status"].lower(),
            "summary": html.escape(module["summary"]),
            "duration": f"{module['durationMs'] / 1000:.2f}s",
            "log_path": html.escape(module.get("logPath") or ""),
            "error_block": error_block,
        }
    )


def _render_metric_cards(data: Dict[str, Any]) -> str:
    summary = data["summary"]
    cards = [
        ("Tasks", summary["totalTasks"]),
        ("Successful", summary["successfulTasks"]),
        ("Failed", summary["failedTasks"]),
        ("Success rate", f"{summary['successRate'] * 100:.1f}%"),
        ("Items detected", summary["itemsDetected"]),
        ("Items processed", summary["itemsProcessed"]),
    ]
    return "\n".join(
        f'<div class="metric-card"><span class="metric-label">{label}</span>'
        f'<span class="metric-value">{html.escape(str(value))}</span></div>'
        for label, value in cards
    )


def _write_json(file_path: Path, payload: Dict[str, Any]) -> None:
    # JSON 파일로 직렬화해 저장한다.
    file_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def _write_csv(file_path: Path, tasks: Sequence[TaskMetrics]) -> None:
    # CSV 헤더를 고정하고 태스크별 한 행을 기록한다.
    fieldnames = [
        "name",
        "category",
        "status",
        "items_detected",
        "items_processed",
        "dry_run",
        "duration_ms",
        "error_kind",
        "error_message",
    ]
    with file_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames)
        writer.writeheader()
        for task in tasks:
            writer.writerow(
                {
                    "name": task.name,
                    "category": task.category,
                    "status": task.status,
                    "items_detected": task.items_detected,
                    "items_processed": task.items_processed,
                    "dry_run": task.dry_run,
                    "duration_ms": task.duration_ms,
                    "error_kind": task.error.kind.value if task.error else "",
                    "error_message": task.error.message if task.error else "",
                }
            )


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    # datetime을 ISO 문자열로 변환한다.
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
