"""이 파일은 .py 임시 파일 정리 태스크 모듈로 오래된 임시 파일을 찾아 삭제합니다."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Iterator, List

from sysmaint.core.errors import ActionError
from sysmaint.core.task_base import BaseAction, BaseDetector
from sysmaint.core.types import DetectionRecord, DiffAction, DiffEntry, MatchPolicy

DEFAULT_ROOTS = ["/tmp", "/var/tmp"]
SECONDS_PER_DAY = 86400


class TempFileDetector(BaseDetector):
    # 경로는 대소문자를 구분하므로 A.tmp와 a.tmp는 서로 다른 파일이다.
    case_sensitive_keys = True

    def detect(self) -> List[DetectionRecord]:
        options = self.context.options
        roots = [Path(item) for item in options.get("paths", DEFAULT_ROOTS)]
        min_age_days = float(options.get("min_age_days", 7))
        max_depth = int(options.get("max_depth", 3))
        cutoff = time.time() - min_age_days * SECONDS_PER_DAY
        records: List[DetectionRecord] = []
        for root in roots:
            if not root.is_dir():
                self.context.log.debug(f"Skipping missing directory {root}", operation="Detect", target=str(root))
                continue
            for path in self._walk(root, max_depth):
                try:
                    stat = path.lstat()
                except OSError as exc:
                    # 스캔 도중 사라진 파일은 건너뛴다.
                    self.context.log.debug(f"Cannot stat {path}: {exc}", operation="Detect", target=str(path))
                    continue
                if stat.st_mtime > cutoff:
                    continue
                records.append(
                    DetectionRecord(
                        match_key=str(path),
                        source=str(root),
                        attributes={
                            "size_bytes": stat.st_size,
                            "age_days": round((time.time() - stat.st_mtime) / SECONDS_PER_DAY, 1),
                        },
                    )
                )
        return records

    def _walk(self, root: Path, max_depth: int) -> Iterator[Path]:
        base_depth = len(root.parts)
        for current, dirs, files in os.walk(root, onerror=self._on_walk_error):
            depth = len(Path(current).parts) - base_depth
            if depth >= max_depth:
                dirs[:] = []
            dirs.sort()
            for name in sorted(files):
                yield Path(current) / name

    def _on_walk_error(self, exc: OSError) -> None:
        self.context.log.debug(f"Directory not readable: {exc}", operation="Detect")


class TempFileCleanupAction(BaseAction):
    # 목록 문서의 항목은 "*.tmp" 같은 glob 패턴이다.
    match_policy = MatchPolicy.PATTERN

    def simulate(self, entry: DiffEntry) -> str:
        size = entry.detection.attributes.get("size_bytes", 0)
        return f"Would delete {entry.target} ({size} bytes)"

    def apply(self, entry: DiffEntry) -> None:
        if entry.action is not DiffAction.REMOVE:
            raise ActionError(f"Unsupported action {entry.action.value} for temp files")
        try:
            Path(entry.target).unlink()
        except FileNotFoundError:
            # 이미 지워진 파일은 목표 상태에 도달한 것으로 본다.
            return
        except OSError as exc:
            raise ActionError(f"Cannot delete {entry.target}: {exc}") from exc
