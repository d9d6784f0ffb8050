"""이 파일은 .py 공통 예외 모듈로 오류 유형을 표준화합니다."""

from __future__ import annotations

from typing import Optional


class ValidationError(ValueError):
    """설정 문서나 로그 엔트리가 스키마/열거형을 위반했을 때 사용합니다."""

    def __init__(self, message: str, document: Optional[str] = None, field: Optional[str] = None) -> None:
        # 어떤 문서의 어떤 필드가 문제인지 함께 보관한다.
        self.document = document
        self.field = field
        self.message = message
        prefix = ""
        if document:
            prefix = f"{document}: "
        if field:
            prefix = f"{prefix}{field}: "
        super().__init__(f"{prefix}{message}")


class DetectionError(RuntimeError):
    """탐지(스캔) 단계가 실패했을 때 사용합니다."""


class ActionError(RuntimeError):
    """조치(변경) 단계에서 개별 항목 처리가 실패했을 때 사용합니다."""


class FatalError(RuntimeError):
    """로거 초기화 실패 등 실행 전체를 중단해야 하는 오류입니다."""


class AdapterError(RuntimeError):
    """외부 명령 실행 오류에 사용합니다."""


class TaskRegistryError(TypeError):
    """태스크 등록 정보가 Detect/Act 계약을 만족하지 못할 때 사용합니다."""
