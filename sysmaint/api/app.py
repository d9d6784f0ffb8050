"""이 파일은 .py FastAPI 앱 모듈로 저장된 세션 결과를 읽기 전용 REST 엔드포인트로 제공합니다."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, PlainTextResponse

from sysmaint.core.config import API_PREFIX, STORAGE_ROOT
from sysmaint.core.storage import list_sessions, session_paths
from sysmaint.core.types import PathRoots
from sysmaint.services.log_processor import load_results
from sysmaint.services.reporting import SUPPORTED_FORMATS

from .schemas import ExecutionResultResponse, MetricsResponse, SessionSummaryResponse

# 세션 ID와 파일 이름은 경로 조작을 막기 위해 안전한 문자만 허용한다.
SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")

MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "html": "text/html",
    "txt": "text/plain",
}


def get_root(request: Request) -> Path:
    return request.app.state.storage_root


def _paths(root: Path, session_id: str) -> PathRoots:
    # 존재하지 않거나 안전하지 않은 세션 ID는 404로 처리한다.
    if not SAFE_NAME.match(session_id) or session_id.startswith("."):
        raise HTTPException(status_code=404, detail="Session not found")
    paths = session_paths(root, session_id)
    if not paths.data.is_dir():
        raise HTTPException(status_code=404, detail="Session not found")
    return paths


def create_app(storage_root: Optional[Path] = None) -> FastAPI:
    app = FastAPI(title="sysmaint")
    app.state.storage_root = Path(storage_root or STORAGE_ROOT)

    @app.get(f"{API_PREFIX}/sessions", response_model=List[SessionSummaryResponse])
    def get_sessions(root: Path = Depends(get_root)) -> List[SessionSummaryResponse]:
        summaries: List[SessionSummaryResponse] = []
        for session_id in list_sessions(root):
            paths = session_paths(root, session_id)
            results = load_results(paths.data)
            reports = sorted(path.suffix.lstrip(".") for path in paths.reports.glob("report.*")) if paths.reports.is_dir() else []
            summaries.append(
                SessionSummaryResponse(
                    session_id=session_id,
                    total_tasks=len(results),
                    failed_tasks=sum(1 for result in results if not result.success),
                    dry_run=results[0].dry_run if results else None,
                    has_metrics=(paths.processed / "metrics.json").exists(),
                    reports=reports,
                )
            )
        return summaries

    @app.get(f"{API_PREFIX}/sessions/{{session_id}}/results", response_model=List[ExecutionResultResponse])
    def get_results(session_id: str, root: Path = Depends(get_root)) -> List[ExecutionResultResponse]:
        paths = _paths(root, session_id)
        return [ExecutionResultResponse.model_validate(result.to_dict()) for result in load_results(paths.data)]

    @app.get(f"{API_PREFIX}/sessions/{{session_id}}/metrics", response_model=MetricsResponse)
    def get_metrics(session_id: str, root: Path = Depends(get_root)) -> MetricsResponse:
        paths = _paths(root, session_id)
        metrics_path = paths.processed / "metrics.json"
        if not metrics_path.exists():
            raise HTTPException(status_code=404, detail="Metrics not found")
        return MetricsResponse.model_validate(json.loads(metrics_path.read_text(encoding="utf-8")))

    @app.get(f"{API_PREFIX}/sessions/{{session_id}}/reports/{{report_format}}")
    def get_report(session_id: str, report_format: str, root: Path = Depends(get_root)) -> FileResponse:
        paths = _paths(root, session_id)
        normalized = report_format.strip().lower()
        if normalized not in SUPPORTED_FORMATS:
            raise HTTPException(status_code=400, detail=f"Unsupported format: {report_format}")
        file_path = paths.reports / f"report.{normalized}"
        if not file_path.exists():
            raise HTTPException(status_code=404, detail="Report not found")
        return FileResponse(file_path, media_type=MEDIA_TYPES[normalized], filename=f"{session_id}.{normalized}")

    @app.get(f"{API_PREFIX}/sessions/{{session_id}}/logs/{{name}}", response_class=PlainTextResponse)
    def get_log(session_id: str, name: str, root: Path = Depends(get_root)) -> str:
        paths = _paths(root, session_id)
        if not SAFE_NAME.match(name):
            raise HTTPException(status_code=404, detail="Log not found")
        file_name = name if name.endswith(".log") else f"{name}.log"
        log_path = paths.logs / file_name
        if not log_path.is_file():
            raise HTTPException(status_code=404, detail="Log not found")
        return log_path.read_text(encoding="utf-8")

    return app


app = create_app()
