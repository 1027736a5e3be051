# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple
from xml.etree import ElementTree as et

from .categories import CategoryResolver, FileNamespace, build_namespace_index, scope_reference
from .errors import CycleDetected, DefinitionFileParseError, Diagnostic, FileResult, UnresolvedReference
from .models import (
    BooleanElement,
    Category,
    CategoryKey,
    DecimalElement,
    ElementVariant,
    EnumElement,
    EnumItem,
    ListElement,
    MultiTextElement,
    PolicyCatalog,
    PolicyClass,
    PolicyDefinition,
    TextElement,
    UnknownElement,
)
from .registry_pol import RegistryPolicyEntry
from .strings import LocalizedStringTable, build_string_table, scope_of
from .values import RegistryValueType
from .xmlio import XML_ERRORS, Qualifier, as_bool, as_int, clean_text, load_xml_root, local_name

LOG = logging.getLogger(__name__)
DELETE_PREFIX = "**del."


@dataclass
class DefinitionFile:
    path: Path
    root: et.Element
    q: Qualifier
    namespace: FileNamespace

    @property
    def scope(self) -> str:
        return self.namespace.scope


def read_definition_file(path: Path) -> DefinitionFile:
    try:
        root, q = load_xml_root(path)
    except XML_ERRORS as exc:
        raise DefinitionFileParseError(path, str(exc)) from exc
    if local_name(root.tag) != "policyDefinitions":
        raise DefinitionFileParseError(path, f"unexpected root element <{local_name(root.tag)}>")

    target_prefix = ""
    target_namespace = ""
    using: Dict[str, str] = {}
    namespaces_node = root.find(q("policyNamespaces"))
    if namespaces_node is not None:
        target_node = namespaces_node.find(q("target"))
        if target_node is not None:
            target_prefix = target_node.get("prefix", "")
            target_namespace = target_node.get("namespace", "")
        for using_node in namespaces_node.findall(q("using")):
            prefix = using_node.get("prefix")
            if prefix:
                using[prefix] = using_node.get("namespace", "")
    info = FileNamespace(
        scope=scope_of(path),
        target_prefix=target_prefix,
        target_namespace=target_namespace,
        using=MappingProxyType(using),
    )
    return DefinitionFile(path=path, root=root, q=q, namespace=info)


def load_definition_file(path: Path) -> FileResult[DefinitionFile]:
    try:
        return FileResult(path, value=read_definition_file(path))
    except DefinitionFileParseError as exc:
        LOG.warning(str(exc))
        return FileResult(path, diagnostic=Diagnostic.from_error(exc, path))


class AdmxParser:
    def __init__(
        self,
        *,
        definitions_path: Path,
        languages: Optional[Sequence[str]] = None,
        ignored_admx: Optional[Sequence[str]] = None,
        workers: int = 1,
    ) -> None:
        self.definitions_path = Path(definitions_path).expanduser().resolve()
        if not self.definitions_path.exists():
            raise FileNotFoundError(f"Definitions path '{self.definitions_path}' was not found.")
        self.languages = list(languages) if languages else None
        self.ignore_set = {self._strip_admx_suffix(item) for item in (ignored_admx or [])}
        self.workers = max(1, workers)
        self.strings = LocalizedStringTable().freeze()
        self.namespaces: Mapping[str, str] = {}
        self._supported_text: Dict[CategoryKey, str] = {}

    def parse(self) -> PolicyCatalog:
        diagnostics: List[Diagnostic] = []
        self._supported_text = {}
        self.strings, string_diagnostics = build_string_table(self._discover(".adml"), self.languages)
        diagnostics.extend(string_diagnostics)
        LOG.debug(f"Loaded {len(self.strings)} localized strings")

        definitions: List[DefinitionFile] = []
        for result in self._load_definitions(self._discover(".admx")):
            if not result.ok:
                diagnostics.append(result.diagnostic)
            elif result.value is not None:
                definitions.append(result.value)
        self.namespaces = build_namespace_index(definition.namespace for definition in definitions)

        categories: Dict[CategoryKey, Category] = {}
        for definition in definitions:
            for category in self._extract_categories(definition):
                if category.key in categories:
                    LOG.debug(f"Duplicate category {category.scope}:{category.name} in {definition.path.name}, keeping first")
                    continue
                categories[category.key] = category
            self._collect_supported_definitions(definition)

        resolver = CategoryResolver(categories)
        for key in dict.fromkeys(resolver.find_cycles()):
            error = CycleDetected(key)
            LOG.warning(str(error))
            diagnostics.append(Diagnostic.from_error(error, categories[key].source_file))

        policies: List[PolicyDefinition] = []
        for definition in definitions:
            file_policies = list(self._extract_policies(definition, resolver))
            LOG.info(f"{definition.path.name}: {len(file_policies)} policies")
            policies.extend(file_policies)

        return PolicyCatalog(
            categories=tuple(categories.values()),
            policies=tuple(policies),
            diagnostics=tuple(diagnostics),
            category_index=MappingProxyType(categories),
        )

    def _discover(self, suffix: str) -> List[Path]:
        found = [
            path
            for path in self.definitions_path.rglob("*")
            if path.suffix.lower() == suffix and path.is_file()
        ]
        found.sort(key=lambda path: str(path.relative_to(self.definitions_path)).lower())
        if suffix != ".admx":
            return found
        kept = []
        for path in found:
            if path.stem.lower() in self.ignore_set:
                LOG.debug(f"Skipping ignored ADMX: {path.name}")
                continue
            kept.append(path)
        return kept

    def _load_definitions(self, paths: Sequence[Path]) -> Iterable[FileResult[DefinitionFile]]:
        if self.workers == 1 or len(paths) < 2:
            return [load_definition_file(path) for path in paths]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(load_definition_file, paths))

    def _extract_categories(self, definition: DefinitionFile) -> Iterator[Category]:
        q = definition.q
        categories_node = definition.root.find(q("categories"))
        if categories_node is None:
            return
        for node in categories_node.findall(q("category")):
            name = node.get("name", "")
            if not name:
                continue
            parent_node = node.find(q("parentCategory"))
            parent = None
            if parent_node is not None:
                parent = scope_reference(parent_node.get("ref"), definition.namespace, self.namespaces)
            yield Category(
                scope=definition.scope,
                name=name,
                display_name=self.strings.resolve(node.get("displayName", ""), definition.scope),
                parent=parent,
                source_file=definition.path.name,
            )

    def _collect_supported_definitions(self, definition: DefinitionFile) -> None:
        q = definition.q
        definitions_node = definition.root.find(f"{q('supportedOn')}/{q('definitions')}")
        if definitions_node is None:
            return
        for node in definitions_node.findall(q("definition")):
            raw_name = node.get("name", "")
            if not raw_name:
                continue
            display_value = node.get("displayName", "")
            if not display_value:
                display_node = node.find(q("displayName"))
                if display_node is not None:
                    display_value = display_node.text or ""
            resolved = clean_text(self.strings.resolve(display_value, definition.scope))
            if resolved:
                self._supported_text.setdefault((definition.scope, raw_name), resolved)

    def _extract_policies(self, definition: DefinitionFile, resolver: CategoryResolver) -> Iterator[PolicyDefinition]:
        q = definition.q
        scope = definition.scope
        policies_node = definition.root.find(q("policies"))
        if policies_node is None:
            return
        for policy in policies_node.findall(q("policy")):
            category = None
            parent_category = policy.find(q("parentCategory"))
            if parent_category is not None:
                category = scope_reference(parent_category.get("ref"), definition.namespace, self.namespaces)
            yield PolicyDefinition(
                name=policy.get("name", ""),
                source_file=definition.path.name,
                display_name=self.strings.resolve(policy.get("displayName", ""), scope),
                explain_text=clean_text(self.strings.resolve(policy.get("explainText", ""), scope)),
                policy_class=PolicyClass.parse(policy.get("class")),
                registry_key=policy.get("key", "") or "",
                value_name=policy.get("valueName"),
                namespace=definition.namespace.target_namespace,
                category=category,
                category_path=self._category_path(resolver, category),
                supported_on=self._extract_supported(policy, definition),
                elements=tuple(self._parse_elements(policy, q, scope)),
            )

    def _category_path(self, resolver: CategoryResolver, key: Optional[CategoryKey]) -> str:
        if key is None:
            return ""
        try:
            return resolver.path(key)
        except CycleDetected:
            return key[1]

    def _extract_supported(self, policy: Any, definition: DefinitionFile) -> str:
        supported_node = policy.find(definition.q("supportedOn"))
        if supported_node is None:
            return ""
        key = scope_reference(supported_node.get("ref"), definition.namespace, self.namespaces)
        if key is None:
            return ""
        description = self._supported_text.get(key)
        if description:
            return description
        fallback = self.strings.lookup(*key)
        if fallback:
            return clean_text(fallback)
        LOG.debug(str(UnresolvedReference("supportedOn", f"{key[0]}:{key[1]}")))
        return key[1]

    def _parse_elements(self, policy: Any, q: Qualifier, scope: str) -> List[ElementVariant]:
        result: List[ElementVariant] = []
        value_name = policy.get("valueName")
        enabled_node = policy.find(q("enabledValue"))
        disabled_node = policy.find(q("disabledValue"))
        if enabled_node is not None or disabled_node is not None:
            result.append(
                DecimalElement(
                    value_name=value_name,
                    true_value=self._extract_simple_value(enabled_node, q),
                    false_value=self._extract_simple_value(disabled_node, q),
                )
            )

        elements_node = policy.find(q("elements"))
        if elements_node is not None:
            for element in elements_node:
                parsed = self._parse_element(element, q, scope)
                if parsed is not None:
                    result.append(parsed)

        if not result:
            result.append(DecimalElement(value_name=value_name, true_value="1", false_value="0"))
        return result

    def _parse_element(self, element: Any, q: Qualifier, scope: str) -> Optional[ElementVariant]:
        tag = local_name(element.tag)
        if not tag:
            return None
        common: Dict[str, Any] = {
            "element_id": element.get("id", ""),
            "value_name": element.get("valueName"),
            "key": element.get("key"),
            "required": as_bool(element.get("required")),
        }
        if tag in ("decimal", "longDecimal"):
            return DecimalElement(
                min_value=as_int(element.get("minValue")),
                max_value=as_int(element.get("maxValue")),
                store_as_text=as_bool(element.get("storeAsText")),
                long=tag == "longDecimal",
                **common,
            )
        if tag == "boolean":
            true_value = self._extract_simple_value(element.find(q("trueValue")), q)
            false_value = self._extract_simple_value(element.find(q("falseValue")), q)
            return BooleanElement(
                true_value=true_value if true_value is not None else "1",
                false_value=false_value if false_value is not None else "0",
                **common,
            )
        if tag == "enum":
            items = []
            for item in element.findall(q("item")):
                value, kind = self._read_value(item.find(q("value")), q)
                display_name = self.strings.resolve(item.get("displayName", ""), scope)
                items.append(EnumItem(display_name=display_name, value=value, value_kind=kind))
            return EnumElement(items=tuple(items), **common)
        if tag == "text":
            return TextElement(
                max_length=as_int(element.get("maxLength")),
                expandable=as_bool(element.get("expandable")),
                **common,
            )
        if tag == "multiText":
            return MultiTextElement(
                max_length=as_int(element.get("maxLength")),
                max_strings=as_int(element.get("maxStrings")),
                **common,
            )
        if tag == "list":
            return ListElement(
                value_prefix=element.get("valuePrefix"),
                additive=as_bool(element.get("additive")),
                explicit_value=as_bool(element.get("explicitValue")),
                expandable=as_bool(element.get("expandable")),
                **common,
            )
        LOG.debug(f"Keeping unrecognized element <{tag}> as raw XML")
        return UnknownElement(tag=tag, raw=et.tostring(element, encoding="unicode").strip(), **common)

    def _read_value(self, node: Optional[Any], q: Qualifier) -> Tuple[Optional[str], str]:
        if node is None:
            return None, "none"
        for kind in ("decimal", "longDecimal"):
            number_node = node.find(q(kind))
            if number_node is not None:
                return number_node.get("value"), kind
        string_node = node.find(q("string"))
        if string_node is not None:
            return (string_node.text or "").strip(), "string"
        if node.find(q("delete")) is not None:
            return None, "delete"
        if "value" in node.attrib:
            return node.get("value"), "decimal"
        return None, "none"

    def _extract_simple_value(self, node: Optional[Any], q: Qualifier) -> Optional[str]:
        return self._read_value(node, q)[0]

    def _strip_admx_suffix(self, value: str) -> str:
        value = value.strip().lower()
        return value[: -len(".admx")] if value.endswith(".admx") else value


def _toggle_entry(key: str, value_name: str, value: Optional[str], wide: bool) -> RegistryPolicyEntry:
    if value is None:
        return RegistryPolicyEntry(key, f"{DELETE_PREFIX}{value_name}", RegistryValueType.String, "")
    number = as_int(value)
    if number is None:
        return RegistryPolicyEntry(key, value_name, RegistryValueType.String, value)
    value_type = RegistryValueType.QWord if wide else RegistryValueType.DWord
    return RegistryPolicyEntry(key, value_name, value_type, number)


def registry_entries_for(policy: PolicyDefinition, enabled: bool = True) -> List[RegistryPolicyEntry]:
    entries: List[RegistryPolicyEntry] = []
    for element in policy.elements:
        if isinstance(element, DecimalElement) and element.is_toggle:
            value = element.true_value if enabled else element.false_value
            wide = element.long
        elif isinstance(element, BooleanElement):
            value = element.true_value if enabled else element.false_value
            wide = False
        else:
            continue
        value_name = element.value_name or policy.value_name
        if not value_name:
            LOG.debug(f"{policy.name}: toggle without a value name, skipped")
            continue
        key = (element.key or policy.registry_key).strip("\\")
        entries.append(_toggle_entry(key, value_name, value, wide))
    return entries
