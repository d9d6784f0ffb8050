"""이 파일은 .py 세션 모듈로 실행당 한 번 생성되는 SessionContext를 만듭니다."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .storage import ensure_session_dirs
from .types import ConfigSnapshot, Mode, SessionContext


def new_session_id(now: Optional[datetime] = None) -> str:
    # 시간 접두어로 정렬이 가능하고 uuid4로 전역 유일성을 보장한다.
    now = now or datetime.now(timezone.utc)
    return f"{now.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex}"


def create_session(config: ConfigSnapshot, mode: Mode, root: Path) -> SessionContext:
    start_time = datetime.now(timezone.utc)
    session_id = new_session_id(start_time)
    paths = ensure_session_dirs(root, session_id)
    return SessionContext(
        session_id=session_id,
        start_time=start_time,
        mode=mode,
        config=config,
        paths=paths,
    )
