"""이 파일은 .py 커널 파라미터 태스크 모듈로 sysctl 보안 설정을 점검/적용합니다."""

from __future__ import annotations

from pathlib import Path
from typing import List

from sysmaint.core.errors import ActionError, AdapterError
from sysmaint.core.task_base import BaseAction, BaseDetector
from sysmaint.core.types import DetectionRecord, DiffAction, DiffEntry


def key_to_path(proc_root: Path, key: str) -> Path:
    # net.ipv4.ip_forward -> /proc/sys/net/ipv4/ip_forward
    return proc_root.joinpath(*key.split("."))


class SysctlDetector(BaseDetector):
    """목록 문서에 적힌 키만 /proc/sys에서 읽습니다."""

    def detect(self) -> List[DetectionRecord]:
        proc_root = Path(self.context.options.get("proc_root", "/proc/sys"))
        records: List[DetectionRecord] = []
        for entry in self.context.entries:
            path = key_to_path(proc_root, entry.match_key)
            try:
                value = " ".join(path.read_text(encoding="utf-8").split())
            except FileNotFoundError:
                records.append(DetectionRecord(match_key=entry.match_key, source="procfs", present=False))
                continue
            except OSError as exc:
                self.context.log.warn(f"Cannot read {path}: {exc}", operation="Detect", target=entry.match_key)
                continue
            records.append(DetectionRecord(match_key=entry.match_key, source="procfs", attributes={"value": value}))
        return records


class SysctlAction(BaseAction):
    def simulate(self, entry: DiffEntry) -> str:
        current = entry.detection.attributes.get("value")
        desired = entry.config.attributes.get("value")
        return f"Would set {entry.target} from {current} to {desired}"

    def apply(self, entry: DiffEntry) -> None:
        if entry.action is not DiffAction.MODIFY or not entry.detection.present:
            # 존재하지 않는 커널 키는 현재 커널에서 지원되지 않는 것이다.
            raise ActionError(f"{entry.target} is not available on this kernel")
        desired = entry.config.attributes.get("value")
        try:
            self.context.runner.check(["sysctl", "-w", f"{entry.target}={desired}"], elevated=True)
        except AdapterError as exc:
            raise ActionError(str(exc)) from exc
