"""이 파일은 .py 설정 저장소 모듈로 전역 설정과 태스크별 목록 문서를 로드/검증합니다."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import (
    CONFIG_DIR,
    LISTS_DIRNAME,
    LOCAL_SETTINGS_FILENAME,
    SCHEMAS_DIRNAME,
    SETTINGS_FILENAME,
)
from .config_validation import apply_schema
from .errors import ValidationError
from .types import ConfigEntry, ConfigSnapshot

logger = logging.getLogger(__name__)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    # 중첩 딕셔너리는 재귀적으로 병합하고 나머지는 override 값으로 덮어쓴다.
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(base_value, value)
        else:
            merged[key] = value
    return merged


def freeze(value: Any) -> Any:
    # 스냅샷이 실행 중 수정되지 않도록 읽기 전용 구조로 변환한다.
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(freeze(item) for item in value)
    return value


class ConfigurationStore:
    def __init__(self, config_dir: Optional[Path] = None, profile: Optional[str] = None) -> None:
        self.config_dir = Path(config_dir or CONFIG_DIR)
        self.profile = profile
        self.schemas_dir = self.config_dir / SCHEMAS_DIRNAME
        self.lists_dir = self.config_dir / LISTS_DIRNAME

    def load(self) -> ConfigSnapshot:
        """설정 전체를 한 번에 해석해 불변 스냅샷을 만듭니다.

        전역 설정이 잘못되면 ValidationError를 그대로 던지고(실행 중단),
        목록 문서가 잘못되면 invalid_documents에 기록만 합니다.
        """
        settings = self.load_settings()
        lists: Dict[str, Tuple[ConfigEntry, ...]] = {}
        invalid: Dict[str, str] = {}
        for list_file in sorted(self.lists_dir.glob("*.json")):
            name = list_file.stem
            try:
                lists[name] = self.load_list(name)
            except ValidationError as exc:
                # 잘못된 목록 문서는 기본값으로 대체하지 않고 기록만 한다.
                logger.warning("Invalid list document %s: %s", name, exc)
                invalid[name] = str(exc)
        return ConfigSnapshot(
            settings=freeze(settings),
            lists=MappingProxyType(lists),
            invalid_documents=MappingProxyType(invalid),
            profile=self.profile,
        )

    def load_settings(self) -> Dict[str, Any]:
        base = self._read_json(self.config_dir / SETTINGS_FILENAME, SETTINGS_FILENAME)
        if not isinstance(base, dict):
            raise ValidationError("document must be an object", document=SETTINGS_FILENAME)
        profiles = base.pop("profiles", {}) or {}
        merged = base
        # 1) 프로필 값 -> 2) 로컬 오버라이드 순으로 한 번만 병합한다.
        if self.profile:
            if self.profile not in profiles:
                raise ValidationError(
                    f"unknown profile: {self.profile}",
                    document=SETTINGS_FILENAME,
                    field=f"profiles.{self.profile}",
                )
            merged = deep_merge(merged, profiles[self.profile])
        local_path = self.config_dir / LOCAL_SETTINGS_FILENAME
        if local_path.exists():
            local = self._read_json(local_path, LOCAL_SETTINGS_FILENAME)
            if not isinstance(local, dict):
                raise ValidationError("document must be an object", document=LOCAL_SETTINGS_FILENAME)
            merged = deep_merge(merged, local)
        schema = self._read_schema("settings")
        return apply_schema(schema, merged, SETTINGS_FILENAME)

    def load_list(self, name: str) -> Tuple[ConfigEntry, ...]:
        document_name = f"{LISTS_DIRNAME}/{name}.json"
        document = self._read_json(self.lists_dir / f"{name}.json", document_name)
        schema = self._read_schema(name)
        validated = apply_schema(schema, document, document_name)
        entries = validated.get("entries", []) if isinstance(validated, dict) else []
        return tuple(ConfigEntry.from_dict(item) for item in entries)

    def _read_schema(self, name: str) -> Dict[str, Any]:
        path = self.schemas_dir / f"{name}.schema.json"
        if not path.exists():
            raise ValidationError("schema document not found", document=f"{SCHEMAS_DIRNAME}/{path.name}")
        schema = self._read_json(path, f"{SCHEMAS_DIRNAME}/{path.name}")
        if not isinstance(schema, dict):
            raise ValidationError("schema must be an object", document=f"{SCHEMAS_DIRNAME}/{path.name}")
        return schema

    @staticmethod
    def _read_json(path: Path, document_name: str) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ValidationError("document not found", document=document_name) from exc
        except json.JSONDecodeError as exc:
            raise ValidationError(f"invalid JSON: {exc}", document=document_name) from exc
