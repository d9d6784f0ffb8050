"""이 파일은 .py API 스키마 모듈로 응답 모델을 정의합니다."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskErrorResponse(BaseModel):
    kind: str
    message: str


class ExecutionResultResponse(BaseModel):
    # ExecutionResult 문서를 그대로 전달한다.
    task_name: str
    success: bool
    items_detected: int = Field(..., ge=0)
    items_processed: int = Field(..., ge=0)
    dry_run: bool
    duration_ms: int
    session_id: str
    error: Optional[TaskErrorResponse] = None

    model_config = ConfigDict(from_attributes=True)


class SessionSummaryResponse(BaseModel):
    # 세션 목록에 표시할 요약 정보이다.
    session_id: str
    total_tasks: int
    failed_tasks: int
    dry_run: Optional[bool] = None
    has_metrics: bool
    reports: List[str] = Field(default_factory=list)


class TaskMetricsResponse(BaseModel):
    name: str
    category: str
    status: str
    items_detected: int
    items_processed: int
    dry_run: bool
    duration_ms: int
    error: Optional[TaskErrorResponse] = None
    log_path: Optional[str] = None
    summary: str


class MetricsResponse(BaseModel):
    session_id: str
    generated_at: datetime
    total_tasks: int
    successful_tasks: int
    failed_tasks: int
    success_rate: float = Field(..., ge=0.0, le=1.0)
    health_scores: Dict[str, float]
    errors_by_category: Dict[str, int]
    errors_by_task: Dict[str, List[str]]
    total_duration_ms: int
    average_duration_ms: float
    duration_by_category: Dict[str, int]
    items_detected: int
    items_processed: int
    log_levels: Dict[str, int]
    rejected_log_entries: int
    tasks: List[TaskMetricsResponse]
