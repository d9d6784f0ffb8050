"""이 파일은 .py 업데이트 태스크 모듈로 업그레이드 가능한 패키지를 찾아 설치합니다."""

from __future__ import annotations

import re
from typing import List

from sysmaint.core.errors import ActionError, AdapterError, DetectionError
from sysmaint.core.task_base import BaseAction, BaseDetector
from sysmaint.core.types import DetectionRecord, DiffAction, DiffEntry, MatchPolicy

# 예: "curl/jammy-updates 7.81.0-1ubuntu1.16 amd64 [upgradable from: 7.81.0-1ubuntu1.15]"
UPGRADABLE_PATTERN = re.compile(
    r"^(?P<name>[^/\s]+)/(?P<suite>\S+)\s+(?P<candidate>\S+)\s+(?P<arch>\S+)\s+\[upgradable from: (?P<installed>[^\]]+)\]"
)


def parse_apt_upgradable(output: str) -> List[DetectionRecord]:
    records: List[DetectionRecord] = []
    for line in output.splitlines():
        match = UPGRADABLE_PATTERN.match(line.strip())
        if not match:
            continue
        records.append(
            DetectionRecord(
                match_key=match.group("name"),
                source="apt",
                attributes={
                    "installed": match.group("installed"),
                    "candidate": match.group("candidate"),
                    "suite": match.group("suite"),
                    "up_to_date": False,
                },
            )
        )
    return records


class UpgradablePackageDetector(BaseDetector):
    def detect(self) -> List[DetectionRecord]:
        runner = self.context.runner
        if not runner.available("apt"):
            raise DetectionError("apt is not available")
        result = runner.run(["apt", "list", "--upgradable"])
        if not result.ok:
            raise DetectionError(f"apt list --upgradable failed: {result.stderr.strip()}")
        return parse_apt_upgradable(result.stdout)


class PackageUpgradeAction(BaseAction):
    # "linux-image-*"처럼 보류할 패키지를 먼저 적고 마지막에 "*"를 둔다.
    match_policy = MatchPolicy.PATTERN

    def simulate(self, entry: DiffEntry) -> str:
        attrs = entry.detection.attributes
        return f"Would upgrade {entry.target} {attrs.get('installed')} -> {attrs.get('candidate')}"

    def apply(self, entry: DiffEntry) -> None:
        if entry.action is not DiffAction.MODIFY:
            raise ActionError(f"Unsupported action {entry.action.value} for updates")
        try:
            self.context.runner.check(["apt-get", "install", "--only-upgrade", "-y", entry.target], elevated=True)
        except AdapterError as exc:
            raise ActionError(str(exc)) from exc
