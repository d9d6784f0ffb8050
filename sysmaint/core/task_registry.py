"""이 파일은 .py 태스크 레지스트리 모듈로 tasks.yml을 읽어 Detect/Act 구현을 해석합니다."""

from __future__ import annotations

import importlib
import inspect
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import yaml

from .config import TASKS_FILE
from .errors import TaskRegistryError
from .task_base import BaseAction, BaseDetector
from .types import TaskDescriptor

REQUIRED_FIELDS = ("id", "category", "detector", "action")


def resolve_entry_point(entry_point: str) -> Any:
    # "package.module:ClassName" 형식의 문자열을 실제 객체로 변환한다.
    module_name, _, attr = entry_point.partition(":")
    if not module_name or not attr:
        raise TaskRegistryError(f"Invalid entry point (expected module:Class): {entry_point}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise TaskRegistryError(f"Cannot import {module_name}: {exc}") from exc
    target = getattr(module, attr, None)
    if target is None:
        raise TaskRegistryError(f"{attr} not found in {module_name}")
    return target


def _check_capability(task_id: str, cls: Any, base: Type, role: str) -> None:
    # 레지스트리 생성 시점에 계약 위반을 잡아낸다(첫 호출 시점이 아니라).
    if not inspect.isclass(cls) or not issubclass(cls, base):
        raise TaskRegistryError(f"{task_id}: {role} {cls!r} does not extend {base.__name__}")
    if inspect.isabstract(cls):
        raise TaskRegistryError(f"{task_id}: {role} {cls.__name__} leaves abstract methods unimplemented")


class TaskRegistry:
    """정적인 순서 목록. 목록 순서가 곧 실행 순서이자 집계 순서입니다."""

    def __init__(self, descriptors: Iterable[TaskDescriptor]) -> None:
        self._descriptors: Tuple[TaskDescriptor, ...] = tuple(descriptors)
        seen = set()
        for descriptor in self._descriptors:
            if descriptor.name in seen:
                raise TaskRegistryError(f"Duplicate task id: {descriptor.name}")
            seen.add(descriptor.name)
            _check_capability(descriptor.name, descriptor.detector, BaseDetector, "detector")
            _check_capability(descriptor.name, descriptor.action, BaseAction, "action")

    @classmethod
    def from_file(cls, path: Optional[Path] = None) -> "TaskRegistry":
        path = Path(path or TASKS_FILE)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise TaskRegistryError(f"Invalid task registry {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise TaskRegistryError(f"Invalid task registry {path}: top level must be a mapping")
        items = data.get("tasks", []) or []
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise TaskRegistryError(f"Invalid task registry {path}: tasks must be a list of mappings")
        return cls(cls._build_descriptor(item, path) for item in items)

    @staticmethod
    def _build_descriptor(item: Dict[str, Any], path: Path) -> TaskDescriptor:
        # 필수 필드를 검증하고 엔트리 포인트를 클래스로 해석한다.
        for field in REQUIRED_FIELDS:
            if field not in item:
                raise TaskRegistryError(f"Missing required field {field} in {path}")
        return TaskDescriptor(
            name=str(item["id"]),
            category=str(item["category"]),
            detector=resolve_entry_point(str(item["detector"])),
            action=resolve_entry_point(str(item["action"])),
            list_document=item.get("list"),
            description=item.get("description"),
        )

    @property
    def descriptors(self) -> Tuple[TaskDescriptor, ...]:
        return self._descriptors

    def __iter__(self):
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def names(self) -> List[str]:
        return [descriptor.name for descriptor in self._descriptors]

    def order(self) -> Dict[str, int]:
        return {descriptor.name: index for index, descriptor in enumerate(self._descriptors)}

    def get(self, name: str) -> TaskDescriptor:
        for descriptor in self._descriptors:
            if descriptor.name == name:
                return descriptor
        raise KeyError(f"Task not found: {name}")

    def select(self, names: Optional[Sequence[str]]) -> "TaskRegistry":
        # 요청된 ID만 남기되 실행 순서는 레지스트리 순서를 따른다.
        if not names:
            return self
        wanted = {name.strip() for name in names if name.strip()}
        unknown = wanted - set(self.names())
        if unknown:
            raise KeyError(f"Unknown task ids: {', '.join(sorted(unknown))}")
        return TaskRegistry(d for d in self._descriptors if d.name in wanted)
