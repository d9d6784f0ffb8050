"""이 파일은 .py 서비스 태스크 모듈로 systemd 서비스 활성화 상태를 원하는 값으로 맞춥니다."""

from __future__ import annotations

from typing import List

from sysmaint.core.errors import ActionError, AdapterError, DetectionError
from sysmaint.core.task_base import BaseAction, BaseDetector
from sysmaint.core.types import DetectionRecord, DiffAction, DiffEntry

# enable/disable로 바꿀 수 없는 상태는 비교 대상에서 제외한다.
IMMUTABLE_STATES = {"static", "alias", "indirect", "generated", "transient", "masked-runtime"}


def parse_unit_files(output: str) -> List[DetectionRecord]:
    records: List[DetectionRecord] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2 or not parts[0].endswith(".service"):
            continue
        unit, state = parts[0], parts[1]
        if state in IMMUTABLE_STATES:
            continue
        records.append(DetectionRecord(match_key=unit, source="systemctl", attributes={"state": state}))
    return records


class ServiceUnitDetector(BaseDetector):
    def detect(self) -> List[DetectionRecord]:
        runner = self.context.runner
        if not runner.available("systemctl"):
            raise DetectionError("systemctl is not available")
        result = runner.run(["systemctl", "list-unit-files", "--type=service", "--no-legend", "--no-pager"])
        if not result.ok:
            raise DetectionError(f"systemctl list-unit-files failed: {result.stderr.strip()}")
        return parse_unit_files(result.stdout)


class ServiceStateAction(BaseAction):
    def simulate(self, entry: DiffEntry) -> str:
        desired = entry.config.attributes.get("state")
        current = entry.detection.attributes.get("state")
        return f"Would change {entry.target} from {current} to {desired}"

    def apply(self, entry: DiffEntry) -> None:
        if entry.action is not DiffAction.MODIFY:
            raise ActionError(f"Unsupported action {entry.action.value} for services")
        desired = str(entry.config.attributes.get("state", "")).lower()
        if desired == "enabled":
            command = ["systemctl", "enable", "--now", entry.target]
        elif desired == "disabled":
            command = ["systemctl", "disable", "--now", entry.target]
        elif desired == "masked":
            command = ["systemctl", "mask", "--now", entry.target]
        else:
            raise ActionError(f"Unsupported desired state {desired!r} for {entry.target}")
        try:
            self.context.runner.check(command, elevated=True)
        except AdapterError as exc:
            raise ActionError(str(exc)) from exc
