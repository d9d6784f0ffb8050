"""이 파일은 .py 저장 경로 모듈로 data/logs/processed/reports 디렉터리를 관리합니다."""

from __future__ import annotations

from pathlib import Path
from typing import List

from .types import PathRoots

LAYOUT_DIRS = ("data", "logs", "processed", "reports")


def ensure_layout(root: Path) -> None:
    # 최상위 디렉터리 트리를 생성한다(이미 있으면 그대로 둔다).
    for name in LAYOUT_DIRS:
        (Path(root) / name).mkdir(parents=True, exist_ok=True)


def ensure_session_dirs(root: Path, session_id: str) -> PathRoots:
    # 세션 단위 하위 디렉터리를 만들고 경로 묶음을 반환한다.
    root = Path(root)
    ensure_layout(root)
    paths = PathRoots(
        root=root,
        data=root / "data" / session_id,
        logs=root / "logs" / session_id,
        processed=root / "processed" / session_id,
        reports=root / "reports" / session_id,
    )
    for path in (paths.data, paths.logs, paths.processed, paths.reports):
        path.mkdir(parents=True, exist_ok=True)
    return paths


def session_paths(root: Path, session_id: str) -> PathRoots:
    # 이미 저장된 세션을 읽을 때는 디렉터리를 만들지 않는다.
    root = Path(root)
    return PathRoots(
        root=root,
        data=root / "data" / session_id,
        logs=root / "logs" / session_id,
        processed=root / "processed" / session_id,
        reports=root / "reports" / session_id,
    )


def list_sessions(root: Path) -> List[str]:
    # 결과 문서(data/<session>)가 있는 세션 ID를 최신순으로 반환한다.
    data_dir = Path(root) / "data"
    if not data_dir.exists():
        return []
    return sorted((item.name for item in data_dir.iterdir() if item.is_dir()), reverse=True)
