"""이 파일은 .py 설정 문서 스키마 검증 모듈입니다."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

from .errors import ValidationError


_TYPE_MAP = {
    # JSON 스키마 타입을 파이썬 타입으로 매핑한다.
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "object": dict,
    "array": list,
}


def apply_schema(
    schema: Optional[Dict[str, Any]],
    document: Any,
    document_name: str = "document",
) -> Any:
    """스키마로 문서를 검증하고 default가 반영된 사본을 돌려줍니다.

    지원 키워드: type, properties, required, default, enum, min, max,
    min_length, max_length, pattern, items, additional_properties.
    실패하면 첫 번째 문제 필드를 담은 ValidationError를 던집니다.
    """
    # 스키마가 없으면 전달된 문서를 그대로 반환한다.
    if not schema:
        return document if document is not None else {}
    errors: List[Tuple[str, str]] = []
    result = _validate(schema, document, "$", errors)
    if errors:
        # 누적된 오류를 하나의 예외로 전달한다.
        field = errors[0][0]
        message = "; ".join(f"{path}: {text}" for path, text in errors)
        raise ValidationError(message, document=document_name, field=field)
    return result


def _validate(spec: Dict[str, Any], value: Any, path: str, errors: List[Tuple[str, str]]) -> Any:
    expected = spec.get("type")
    if expected:
        expected_type = _TYPE_MAP.get(expected)
        if expected_type is None:
            errors.append((path, f"unsupported type in schema: {expected}"))
            return value
        # bool은 int의 하위 타입이므로 integer/number 검증에서 예외 처리한다.
        if expected in ("integer", "number") and isinstance(value, bool):
            errors.append((path, f"must be {expected}"))
            return value
        if not isinstance(value, expected_type):
            errors.append((path, f"must be {expected}"))
            return value

    if "enum" in spec and value not in spec["enum"]:
        errors.append((path, f"must be one of {spec['enum']}"))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if "min" in spec and value < spec["min"]:
            errors.append((path, f"must be >= {spec['min']}"))
        if "max" in spec and value > spec["max"]:
            errors.append((path, f"must be <= {spec['max']}"))
    if isinstance(value, str):
        if "min_length" in spec and len(value) < spec["min_length"]:
            errors.append((path, f"length must be >= {spec['min_length']}"))
        if "max_length" in spec and len(value) > spec["max_length"]:
            errors.append((path, f"length must be <= {spec['max_length']}"))
        if "pattern" in spec:
            # 정규식을 사용해 패턴 유효성을 검사한다.
            if not re.search(spec["pattern"], value):
                errors.append((path, "does not match pattern"))

    if isinstance(value, dict):
        return _validate_object(spec, value, path, errors)
    if isinstance(value, list) and "items" in spec:
        return [
            _validate(spec["items"], item, f"{path}[{index}]", errors)
            for index, item in enumerate(value)
        ]
    return value


def _validate_object(
    spec: Dict[str, Any],
    value: Dict[str, Any],
    path: str,
    errors: List[Tuple[str, str]],
) -> Dict[str, Any]:
    # properties/required를 읽어 기본값과 필수값을 처리한다.
    props = spec.get("properties", {})
    required = spec.get("required", [])
    result = dict(value)

    for key in required:
        # 필수 필드가 없으면 오류로 수집한다. 기본값으로 대체하지 않는다.
        if key not in result:
            errors.append((f"{path}.{key}", "missing required field"))

    for key, child in props.items():
        # default가 명시된 선택 항목은 값이 없을 때 자동 주입한다.
        if key not in result and key not in required and "default" in child:
            result[key] = child["default"]

    if spec.get("additional_properties") is False:
        for key in result:
            if key not in props:
                errors.append((f"{path}.{key}", "unknown field"))

    for key, item in list(result.items()):
        child = props.get(key)
        if child is None:
            # 임의 키 객체(예: 카테고리별 가중치)는 values 스키마로 검증한다.
            child = spec.get("values")
        if not child:
            continue
        result[key] = _validate(child, item, f"{path}.{key}", errors)
    return result
