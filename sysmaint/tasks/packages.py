"""이 파일은 .py 패키지 태스크 모듈로 불필요한 패키지 제거와 필수 패키지 설치를 수행합니다."""

from __future__ import annotations

from typing import Dict, List

from sysmaint.core.errors import ActionError, AdapterError, DetectionError
from sysmaint.core.task_base import BaseAction, BaseDetector
from sysmaint.core.types import DetectionRecord, DiffAction, DiffEntry, MatchPolicy

DPKG_FORMAT = "${Package}\t${Version}\t${Status}\n"

REMOVE_COMMANDS: Dict[str, List[str]] = {
    "dpkg": ["apt-get", "remove", "-y"],
    "snap": ["snap", "remove"],
    "flatpak": ["flatpak", "uninstall", "-y", "--noninteractive"],
}


def parse_dpkg_query(output: str) -> List[DetectionRecord]:
    # dpkg-query 출력에서 실제 설치된 패키지만 레코드로 만든다.
    records: List[DetectionRecord] = []
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 3 or not parts[0]:
            continue
        name, version, status = parts[0], parts[1], parts[2]
        records.append(
            DetectionRecord(
                match_key=name,
                source="dpkg",
                present=status.strip().endswith("installed") and "not-installed" not in status,
                attributes={"version": version, "status": status.strip()},
            )
        )
    return records


def parse_snap_list(output: str) -> List[DetectionRecord]:
    # 첫 줄은 헤더(Name Version Rev ...)다.
    records: List[DetectionRecord] = []
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 2:
            records.append(DetectionRecord(match_key=parts[0], source="snap", attributes={"version": parts[1]}))
    return records


def parse_flatpak_list(output: str) -> List[DetectionRecord]:
    records: List[DetectionRecord] = []
    for line in output.splitlines():
        parts = line.split("\t")
        if parts and parts[0].strip():
            version = parts[1].strip() if len(parts) > 1 else ""
            records.append(
                DetectionRecord(match_key=parts[0].strip(), source="flatpak", attributes={"version": version})
            )
    return records


class InstalledPackageDetector(BaseDetector):
    # 같은 이름이 여러 경로로 발견되면 dpkg 결과를 우선한다.
    source_priority = ("dpkg", "snap", "flatpak")

    def detect(self) -> List[DetectionRecord]:
        runner = self.context.runner
        log = self.context.log
        records: List[DetectionRecord] = []
        sources_used = 0

        if runner.available("dpkg-query"):
            result = runner.run(["dpkg-query", "-W", "-f", DPKG_FORMAT])
            if not result.ok:
                raise DetectionError(f"dpkg-query failed: {result.stderr.strip()}")
            records.extend(record for record in parse_dpkg_query(result.stdout) if record.present)
            sources_used += 1
        if runner.available("snap"):
            result = runner.run(["snap", "list"])
            if result.ok:
                records.extend(parse_snap_list(result.stdout))
                sources_used += 1
            else:
                log.warn(f"snap list failed: {result.stderr.strip()}", operation="Detect", target="snap")
        if runner.available("flatpak"):
            result = runner.run(["flatpak", "list", "--app", "--columns=application,version"])
            if result.ok:
                records.extend(parse_flatpak_list(result.stdout))
                sources_used += 1
            else:
                log.warn(f"flatpak list failed: {result.stderr.strip()}", operation="Detect", target="flatpak")

        if sources_used == 0:
            raise DetectionError("No supported package manager found (dpkg, snap, flatpak)")
        return records


class PackageRemovalAction(BaseAction):
    # 목록 문서는 "*-games" 같은 패턴을 허용한다.
    match_policy = MatchPolicy.PATTERN

    def simulate(self, entry: DiffEntry) -> str:
        return f"Would remove {entry.target} via {entry.detection.source}"

    def apply(self, entry: DiffEntry) -> None:
        if entry.action is not DiffAction.REMOVE:
            raise ActionError(f"Unsupported action {entry.action.value} for package removal")
        command = REMOVE_COMMANDS.get(entry.detection.source)
        if command is None:
            raise ActionError(f"No removal command for source {entry.detection.source}")
        try:
            self.context.runner.check([*command, entry.target], elevated=True)
        except AdapterError as exc:
            raise ActionError(str(exc)) from exc


class DesiredPackageDetector(BaseDetector):
    """목록 문서에 적힌 패키지만 조회해 설치 여부를 기록합니다."""

    source_priority = ("dpkg",)

    def detect(self) -> List[DetectionRecord]:
        names = [entry.match_key for entry in self.context.entries]
        if not names:
            return []
        runner = self.context.runner
        if not runner.available("dpkg-query"):
            raise DetectionError("dpkg-query is not available")
        # 설치되지 않은 패키지는 dpkg-query가 오류를 내므로 종료 코드는 보지 않는다.
        result = runner.run(["dpkg-query", "-W", "-f", DPKG_FORMAT, *names])
        found = {record.match_key.lower(): record for record in parse_dpkg_query(result.stdout)}
        records: List[DetectionRecord] = []
        for name in names:
            record = found.get(name.lower())
            if record is None:
                record = DetectionRecord(match_key=name, source="dpkg", present=False, attributes={})
            records.append(record)
        return records


class PackageInstallAction(BaseAction):
    def simulate(self, entry: DiffEntry) -> str:
        return f"Would install {entry.target}"

    def apply(self, entry: DiffEntry) -> None:
        if entry.action is not DiffAction.ADD:
            raise ActionError(f"Unsupported action {entry.action.value} for package install")
        try:
            self.context.runner.check(["apt-get", "install", "-y", entry.target], elevated=True)
        except AdapterError as exc:
            raise ActionError(str(exc)) from exc
