"""이 파일은 .py 어댑터 패키지 초기화 모듈로 공통 어댑터를 노출합니다."""

from .command import CommandResult, CommandRunner

__all__ = ["CommandResult", "CommandRunner"]
