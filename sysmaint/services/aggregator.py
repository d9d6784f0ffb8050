"""이 파일은 .py 결과 집계 모듈로 태스크별 ExecutionResult를 세션 결과 집합으로 묶습니다."""

from __future__ import annotations

from typing import Iterable, Mapping

from sysmaint.core.errors import ValidationError
from sysmaint.core.types import ExecutionResult, SessionResultSet


def aggregate(
    results: Iterable[ExecutionResult],
    registry_order: Mapping[str, int],
    session_id: str,
) -> SessionResultSet:
    """완료 순서와 관계없이 레지스트리 순서로 정렬해 이어 붙입니다."""
    collected = list(results)
    for result in collected:
        # 다른 세션의 결과가 섞이면 경계에서 거부한다.
        if result.session_id != session_id:
            raise ValidationError(
                f"result belongs to session {result.session_id}",
                document="execution_result",
                field="session_id",
            )
    fallback = len(registry_order)
    ordered = sorted(
        enumerate(collected),
        key=lambda item: (registry_order.get(item[1].task_name, fallback), item[0]),
    )
    return SessionResultSet(session_id=session_id, results=tuple(result for _, result in ordered))
