"""이 파일은 .py 명령 실행 어댑터로 호스트 명령 호출을 래핑합니다."""

from __future__ import annotations

from dataclasses import dataclass
import shutil
import subprocess
from typing import List, Optional

from sysmaint.core.errors import AdapterError


@dataclass
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    def __init__(self, timeout: int = 60, sudo: bool = False) -> None:
        self.timeout = timeout
        self.sudo = sudo

    def available(self, program: str) -> bool:
        return shutil.which(program) is not None

    def run(self, command: List[str], cwd: Optional[str] = None, elevated: bool = False) -> CommandResult:
        if not command:
            raise AdapterError("Empty command")
        try:
            result = subprocess.run(
                self._wrap_sudo(command, elevated),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
                cwd=cwd,
            )
        except subprocess.TimeoutExpired as exc:
            raise AdapterError(f"Command timeout: {command[0]}") from exc
        except OSError as exc:
            raise AdapterError(f"Command execution failed: {exc}") from exc

        return CommandResult(result.returncode, result.stdout, result.stderr)

    def check(self, command: List[str], elevated: bool = False) -> CommandResult:
        # 종료 코드가 0이 아니면 AdapterError로 변환한다.
        result = self.run(command, elevated=elevated)
        if not result.ok:
            detail = result.stderr.strip() or result.stdout.strip()
            raise AdapterError(f"{' '.join(command)} exited with {result.exit_code}: {detail}")
        return result

    def _wrap_sudo(self, command: List[str], elevated: bool) -> List[str]:
        if not (elevated and self.sudo):
            return list(command)
        return ["sudo", "-n", "--", *command]
