# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set

from .errors import CycleDetected
from .models import Category, CategoryKey

LOG = logging.getLogger(__name__)
PATH_SEPARATOR = " / "


@dataclass(frozen=True)
class FileNamespace:
    scope: str
    target_prefix: str = ""
    target_namespace: str = ""
    using: Mapping[str, str] = field(default_factory=dict)


def build_namespace_index(files: Iterable[FileNamespace]) -> Dict[str, str]:
    index: Dict[str, str] = {}
    for info in files:
        if not info.target_namespace:
            continue
        key = info.target_namespace.lower()
        if key in index and index[key] != info.scope:
            LOG.debug(f"Namespace {info.target_namespace} declared by {index[key]} and {info.scope}, keeping {index[key]}")
            continue
        index[key] = info.scope
    return index


def scope_reference(ref: Optional[str], owner: FileNamespace, namespaces: Mapping[str, str]) -> Optional[CategoryKey]:
    ref = (ref or "").strip()
    if not ref:
        return None
    if ":" not in ref:
        return (owner.scope, ref)
    prefix, name = ref.split(":", 1)
    if not prefix or prefix.lower() == owner.target_prefix.lower():
        return (owner.scope, name)
    namespace = owner.using.get(prefix) or owner.using.get(prefix.lower())
    if namespace:
        scope = namespaces.get(namespace.lower())
        if scope:
            return (scope, name)
    return (prefix.lower(), name)


def resolve_path(categories: Mapping[CategoryKey, Category], start: CategoryKey) -> str:
    segments: List[str] = []
    seen: Set[CategoryKey] = set()
    current: Optional[CategoryKey] = start
    while current is not None:
        if current in seen:
            raise CycleDetected(current)
        seen.add(current)
        category = categories.get(current)
        if category is None:
            segments.append(current[1])
            break
        segments.append(category.display_name or category.name)
        current = category.parent
    segments.reverse()
    return PATH_SEPARATOR.join(segments)


class CategoryResolver:
    def __init__(self, categories: Mapping[CategoryKey, Category]) -> None:
        self.categories = categories
        self._paths: Dict[CategoryKey, str] = {}

    def path(self, key: CategoryKey) -> str:
        cached = self._paths.get(key)
        if cached is None:
            cached = resolve_path(self.categories, key)
            self._paths[key] = cached
        return cached

    def find_cycles(self) -> List[CategoryKey]:
        cycles: List[CategoryKey] = []
        for key in self.categories:
            try:
                self.path(key)
            except CycleDetected as exc:
                cycles.append(exc.key)
        return cycles
