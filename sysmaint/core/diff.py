"""이 파일은 .py 차이 계산 모듈로 탐지 결과와 원하는 상태 목록을 비교합니다.

diff()는 순수 함수입니다. 같은 입력에는 항상 같은 순서의 같은 결과를
돌려주며, 입력 컬렉션을 수정하지 않습니다.
"""

from __future__ import annotations

import fnmatch
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Sequence

from .errors import ValidationError
from .types import ConfigEntry, DetectionRecord, DiffAction, DiffEntry, MatchPolicy

ABSENT_STATES = {"absent", "removed", "disabled"}
PRESENT_STATES = {"present", "installed", "enabled"}


def normalize_key(value: Optional[str]) -> str:
    # None/공백을 처리하고 소문자로 표준화한다.
    if not value:
        return ""
    return value.strip().lower()


def identity_key(value: Optional[str], case_sensitive: bool = False) -> str:
    # 파일 경로처럼 대소문자가 다른 값이 서로 다른 항목인 경우 원래 표기를 유지한다.
    if case_sensitive:
        return (value or "").strip()
    return normalize_key(value)


def deduplicate(
    records: Iterable[DetectionRecord],
    source_priority: Sequence[str] = (),
    case_sensitive: bool = False,
) -> List[DetectionRecord]:
    """match_key가 같은 레코드를 하나로 줄입니다.

    선언된 source 우선순위가 높은 레코드가 남고, 우선순위가 같으면 먼저
    본 레코드가 남습니다. 결과 순서는 각 키가 처음 등장한 순서입니다.
    case_sensitive가 참이면 대소문자만 다른 키를 서로 다른 항목으로 봅니다.
    """
    rank = {normalize_key(source): index for index, source in enumerate(source_priority)}
    unknown_rank = len(rank)
    chosen: Dict[str, DetectionRecord] = {}
    order: List[str] = []
    for record in records:
        key = identity_key(record.match_key, case_sensitive)
        current = chosen.get(key)
        if current is None:
            chosen[key] = record
            order.append(key)
            continue
        new_rank = rank.get(normalize_key(record.source), unknown_rank)
        current_rank = rank.get(normalize_key(current.source), unknown_rank)
        if new_rank < current_rank:
            chosen[key] = record
    return [chosen[key] for key in order]


def compile_patterns(
    entries: Sequence[ConfigEntry],
    policy: MatchPolicy,
    document: Optional[str] = None,
) -> Dict[str, Pattern[str]]:
    """regex 정책일 때 모든 match_key를 미리 컴파일합니다.

    잘못된 정규식은 조치 단계까지 가지 않고 ValidationError로 보고됩니다.
    """
    if policy is not MatchPolicy.REGEX:
        return {}
    compiled: Dict[str, Pattern[str]] = {}
    for index, entry in enumerate(entries):
        if entry.match_key in compiled:
            continue
        try:
            compiled[entry.match_key] = re.compile(entry.match_key, re.IGNORECASE)
        except re.error as exc:
            raise ValidationError(
                f"invalid regular expression {entry.match_key!r}: {exc}",
                document=document,
                field=f"$.entries[{index}].match_key",
            ) from exc
    return compiled


def matches(
    record_key: str,
    entry_key: str,
    policy: MatchPolicy,
    patterns: Optional[Mapping[str, Pattern[str]]] = None,
) -> bool:
    record_key = normalize_key(record_key)
    if policy is MatchPolicy.PATTERN:
        return fnmatch.fnmatchcase(record_key, normalize_key(entry_key))
    if policy is MatchPolicy.REGEX:
        pattern = (patterns or {}).get(entry_key) or re.compile(entry_key, re.IGNORECASE)
        return pattern.search(record_key) is not None
    return record_key == normalize_key(entry_key)


def decide_action(record: DetectionRecord, entry: ConfigEntry) -> Optional[DiffAction]:
    # 원하는 상태와 관찰된 상태를 비교해 필요한 조치를 결정한다.
    state = normalize_key(entry.state)
    if state in ABSENT_STATES:
        return DiffAction.REMOVE if record.present else None
    if state in PRESENT_STATES and not record.present:
        return DiffAction.ADD
    if entry.attributes and _attributes_differ(entry.attributes, record.attributes):
        return DiffAction.MODIFY
    return None


def _attributes_differ(desired: Mapping[str, Any], observed: Mapping[str, Any]) -> bool:
    for key, value in desired.items():
        if _normalize_value(observed.get(key)) != _normalize_value(value):
            return True
    return False


def _normalize_value(value: Any) -> str:
    # 탐지 값은 대부분 문자열이므로 비교 전에 문자열로 통일한다.
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def diff(
    records: Sequence[DetectionRecord],
    entries: Sequence[ConfigEntry],
    policy: MatchPolicy = MatchPolicy.EXACT,
    source_priority: Sequence[str] = (),
    case_sensitive: bool = False,
) -> List[DiffEntry]:
    """탐지 레코드와 설정 항목을 비교해 조치가 필요한 항목만 돌려줍니다."""
    patterns = compile_patterns(entries, policy)
    result: List[DiffEntry] = []
    for record in deduplicate(records, source_priority, case_sensitive):
        # 문서 순서상 첫 번째로 일치한 설정 항목이 이긴다.
        entry = next(
            (item for item in entries if matches(record.match_key, item.match_key, policy, patterns)),
            None,
        )
        if entry is None:
            continue
        action = decide_action(record, entry)
        if action is not None:
            result.append(DiffEntry(detection=record, config=entry, action=action))
    return result
