"""이 파일은 .py 로그 처리 모듈로 세션 결과/로그/탐지 문서를 정규화된 지표로 변환합니다."""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sysmaint.core.types import (
    ExecutionResult,
    LogEntry,
    ProcessedMetrics,
    SessionResultSet,
    TaskMetrics,
)

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {"success_weight": 70, "coverage_weight": 30}
UNCATEGORIZED = "uncategorized"


def success_rate(results: Sequence[ExecutionResult]) -> float:
    # 성공 수 / 전체 수. 태스크가 없으면 0.0이다.
    if not results:
        return 0.0
    return sum(1 for result in results if result.success) / len(results)


def coverage_ratio(result: ExecutionResult) -> float:
    # 탐지 대비 처리 비율이며 탐지 항목이 없으면 1.0으로 본다.
    if result.items_detected == 0:
        return 1.0
    return result.items_processed / result.items_detected


def category_weights(scoring: Optional[Mapping[str, Any]], category: str) -> Dict[str, Any]:
    scoring = scoring or {}
    weights = dict(DEFAULT_WEIGHTS)
    weights.update(scoring.get("default", {}) or {})
    weights.update((scoring.get("categories", {}) or {}).get(category, {}) or {})
    return weights


def health_score(results: Sequence[ExecutionResult], weights: Mapping[str, Any]) -> float:
    """카테고리 건강 점수(0~100).

    score = 100 * (Ws * 성공비율 + Wc * 처리비율) / (Ws + Wc)
    두 비율은 task_weights로 가중 평균합니다(지정되지 않은 태스크는 1).
    """
    if not results:
        return 100.0
    success_weight = float(weights.get("success_weight", 0))
    coverage_weight = float(weights.get("coverage_weight", 0))
    total_weight = success_weight + coverage_weight
    if total_weight <= 0:
        return 0.0
    task_weights = weights.get("task_weights", {}) or {}
    weight_sum = 0.0
    success_sum = 0.0
    coverage_sum = 0.0
    for result in results:
        weight = float(task_weights.get(result.task_name, 1))
        weight_sum += weight
        success_sum += weight * (1.0 if result.success else 0.0)
        coverage_sum += weight * coverage_ratio(result)
    if weight_sum <= 0:
        return 0.0
    score = 100.0 * (
        success_weight * (success_sum / weight_sum) + coverage_weight * (coverage_sum / weight_sum)
    ) / total_weight
    return round(max(0.0, min(100.0, score)), 1)


def _category_of(
    task_name: str,
    categories: Mapping[str, str],
    detection_docs: Mapping[str, Mapping[str, Any]],
) -> str:
    if task_name in categories:
        return categories[task_name]
    doc = detection_docs.get(task_name) or {}
    task = doc.get("task") or {}
    return str(task.get("category") or UNCATEGORIZED)


def process(
    result_set: SessionResultSet,
    log_entries: Iterable[LogEntry],
    detection_docs: Mapping[str, Mapping[str, Any]],
    scoring: Optional[Mapping[str, Any]] = None,
    categories: Optional[Mapping[str, str]] = None,
    log_dir: Optional[Path] = None,
    generated_at: Optional[datetime] = None,
) -> ProcessedMetrics:
    """입력을 변경하지 않고 매번 새로 지표를 계산합니다."""
    categories = categories or {}
    results = list(result_set.results)
    entries = [entry for entry in log_entries if entry.session_id == result_set.session_id]

    # 1) 카테고리별로 결과를 묶는다(레지스트리 순서를 유지한다).
    by_category: Dict[str, List[ExecutionResult]] = {}
    task_rows: List[TaskMetrics] = []
    for result in results:
        category = _category_of(result.task_name, categories, detection_docs)
        by_category.setdefault(category, []).append(result)
        log_path = log_dir / f"{result.task_name}.log" if log_dir else None
        task_rows.append(
            TaskMetrics(
                name=result.task_name,
                category=category,
                status="SUCCESS" if result.success else "FAILED",
                items_detected=result.items_detected,
                items_processed=result.items_processed,
                dry_run=result.dry_run,
                duration_ms=result.duration_ms,
                error=result.error,
                log_path=str(log_path) if log_path else None,
            )
        )

    # 2) 오류를 ErrorKind와 태스크 이름으로 분류한다.
    errors_by_kind: Counter = Counter()
    errors_by_task: Dict[str, List[str]] = {}
    for result in results:
        if result.error is None:
            continue
        errors_by_kind[result.error.kind.value] += 1
        errors_by_task.setdefault(result.task_name, []).append(
            f"{result.error.kind.value}: {result.error.message}"
        )

    # 3) 로그 레벨 분포와 경계에서 거부된 엔트리 수를 센다.
    level_counts: Counter = Counter(entry.level.value for entry in entries)
    rejected = sum(1 for entry in entries if entry.metrics and "rejected_field" in entry.metrics)

    total_duration = sum(result.duration_ms for result in results)
    successful = sum(1 for result in results if result.success)
    return ProcessedMetrics(
        session_id=result_set.session_id,
        generated_at=generated_at or datetime.now(timezone.utc),
        total_tasks=len(results),
        successful_tasks=successful,
        failed_tasks=len(results) - successful,
        success_rate=success_rate(results),
        health_scores={
            category: health_score(items, category_weights(scoring, category))
            for category, items in by_category.items()
        },
        errors_by_category=dict(errors_by_kind),
        errors_by_task=errors_by_task,
        total_duration_ms=total_duration,
        average_duration_ms=round(total_duration / len(results), 1) if results else 0.0,
        duration_by_category={
            category: sum(item.duration_ms for item in items) for category, items in by_category.items()
        },
        items_detected=sum(result.items_detected for result in results),
        items_processed=sum(result.items_processed for result in results),
        log_levels=dict(level_counts),
        rejected_log_entries=rejected,
        tasks=tuple(task_rows),
    )


def load_detection_docs(data_dir: Path) -> Dict[str, Dict[str, Any]]:
    # data/<session>/*.json 결과 문서를 태스크 이름 기준으로 읽는다.
    docs: Dict[str, Dict[str, Any]] = {}
    data_dir = Path(data_dir)
    if not data_dir.exists():
        return docs
    for path in sorted(data_dir.glob("*.json")):
        try:
            docs[path.stem] = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.debug("Skipping unreadable result document %s: %s", path, exc)
    return docs


def load_results(data_dir: Path) -> List[ExecutionResult]:
    results: List[ExecutionResult] = []
    for name, doc in load_detection_docs(data_dir).items():
        try:
            results.append(ExecutionResult.from_dict(doc["result"]))
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Skipping malformed result document %s: %s", name, exc)
    return results


def write_metrics(path: Path, metrics: ProcessedMetrics) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(metrics.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    return path
