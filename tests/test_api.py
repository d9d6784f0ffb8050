"""이 파일은 .py 테스트 모듈로 읽기 전용 결과 API를 확인합니다."""

from pathlib import Path

from fastapi.testclient import TestClient
from helpers import make_descriptor

from sysmaint.api.app import create_app
from sysmaint.core.storage import ensure_session_dirs
from sysmaint.core.types import ErrorKind, ExecutionResult, SessionResultSet, TaskError
from sysmaint.services.log_processor import process, write_metrics
from sysmaint.services.reporting import ReportRenderer
from sysmaint.services.task_runner import write_result_document

SESSION_ID = "20240101-000000-abc"


def _seed(root: Path) -> None:
    paths = ensure_session_dirs(root, SESSION_ID)
    results = (
        ExecutionResult("alpha", True, 3, 2, True, 10, SESSION_ID),
        ExecutionResult("beta", False, 0, 0, True, 5, SESSION_ID, TaskError(ErrorKind.DETECTION, "no apt")),
    )
    for result in results:
        write_result_document(paths.data / f"{result.task_name}.json", result, make_descriptor(result.task_name), [], [])
    result_set = SessionResultSet(SESSION_ID, results)
    metrics = process(result_set, [], {})
    write_metrics(paths.processed / "metrics.json", metrics)
    ReportRenderer().render_all(paths.reports, metrics, result_set, {}, formats=("json", "txt"))
    (paths.logs / "session.log").write_text("line\n", encoding="utf-8")


def test_list_sessions(tmp_path: Path) -> None:
    _seed(tmp_path)
    client = TestClient(create_app(tmp_path))
    response = client.get("/api/v1/sessions")
    assert response.status_code == 200
    payload = response.json()
    assert payload == [
        {
            "session_id": SESSION_ID,
            "total_tasks": 2,
            "failed_tasks": 1,
            "dry_run": True,
            "has_metrics": True,
            "reports": ["json", "txt"],
        }
    ]


def test_results_and_metrics(tmp_path: Path) -> None:
    _seed(tmp_path)
    client = TestClient(create_app(tmp_path))
    results = client.get(f"/api/v1/sessions/{SESSION_ID}/results").json()
    assert [item["task_name"] for item in results] == ["alpha", "beta"]
    assert results[1]["error"] == {"kind": "DetectionError", "message": "no apt"}

    metrics = client.get(f"/api/v1/sessions/{SESSION_ID}/metrics").json()
    assert metrics["failed_tasks"] == 1
    assert metrics["tasks"][0]["summary"] == "3 detected / 2 processed (dry-run)"


def test_report_and_log_downloads(tmp_path: Path) -> None:
    _seed(tmp_path)
    client = TestClient(create_app(tmp_path))
    report = client.get(f"/api/v1/sessions/{SESSION_ID}/reports/txt")
    assert report.status_code == 200
    assert "alpha" in report.text
    assert client.get(f"/api/v1/sessions/{SESSION_ID}/reports/html").status_code == 404
    assert client.get(f"/api/v1/sessions/{SESSION_ID}/reports/pdf").status_code == 400

    log = client.get(f"/api/v1/sessions/{SESSION_ID}/logs/session")
    assert log.status_code == 200
    assert log.text == "line\n"


def test_unknown_or_unsafe_paths_are_not_found(tmp_path: Path) -> None:
    _seed(tmp_path)
    client = TestClient(create_app(tmp_path))
    assert client.get("/api/v1/sessions/missing/results").status_code == 404
    assert client.get(f"/api/v1/sessions/{SESSION_ID}/logs/..%2Fsecret").status_code == 404
    assert client.get(f"/api/v1/sessions/{SESSION_ID}/logs/nothing").status_code == 404
