# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import enum
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple, Union

from .errors import Diagnostic

CategoryKey = Tuple[str, str]
StringKey = Tuple[str, str]


class PolicyClass(str, enum.Enum):
    Machine = "Machine"
    User = "User"
    Both = "Both"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PolicyClass":
        lookup = {member.value.lower(): member for member in cls}
        return lookup.get((value or "").strip().lower(), cls.Machine)

    @property
    def hives(self) -> List[str]:
        return {"Machine": ["HKLM"], "User": ["HKCU"], "Both": ["HKLM", "HKCU"]}[self.value]


def format_key(key: Optional[CategoryKey]) -> str:
    if key is None:
        return ""
    scope, name = key
    return f"{scope}:{name}"


@dataclass(frozen=True)
class Category:
    scope: str
    name: str
    display_name: str = ""
    parent: Optional[CategoryKey] = None
    source_file: str = ""

    @property
    def key(self) -> CategoryKey:
        return (self.scope, self.name)

    def to_dict(self) -> Dict[str, object]:
        return {
            "ID": format_key(self.key),
            "DisplayName": self.display_name,
            "ParentRef": format_key(self.parent) or None,
            "File": self.source_file,
        }


@dataclass(frozen=True)
class EnumItem:
    display_name: str
    value: Optional[str]
    value_kind: str = "decimal"

    def to_dict(self) -> Dict[str, object]:
        return {"DisplayName": self.display_name, "Data": self.value, "Kind": self.value_kind}


@dataclass(frozen=True)
class PolicyElement:
    element_id: str = ""
    value_name: Optional[str] = None
    key: Optional[str] = None
    required: bool = False

    type_name = "Element"

    def _extra(self) -> Dict[str, object]:
        return {}

    def to_dict(self) -> Dict[str, object]:
        record: Dict[str, object] = {"Type": self.type_name}
        if self.element_id:
            record["ID"] = self.element_id
        record["ValueName"] = self.value_name
        if self.key:
            record["Key"] = self.key
        if self.required:
            record["Required"] = True
        record.update({name: value for name, value in self._extra().items() if value is not None})
        return record


@dataclass(frozen=True)
class DecimalElement(PolicyElement):
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    store_as_text: bool = False
    long: bool = False
    true_value: Optional[str] = None
    false_value: Optional[str] = None

    type_name = "Decimal"

    @property
    def is_toggle(self) -> bool:
        return self.true_value is not None or self.false_value is not None

    def _extra(self) -> Dict[str, object]:
        return {
            "MinValue": self.min_value,
            "MaxValue": self.max_value,
            "StoreAsText": self.store_as_text or None,
            "Long": self.long or None,
            "TrueValue": self.true_value,
            "FalseValue": self.false_value,
        }


@dataclass(frozen=True)
class BooleanElement(PolicyElement):
    true_value: str = "1"
    false_value: str = "0"

    type_name = "Boolean"

    def _extra(self) -> Dict[str, object]:
        return {"TrueValue": self.true_value, "FalseValue": self.false_value}


@dataclass(frozen=True)
class EnumElement(PolicyElement):
    items: Tuple[EnumItem, ...] = ()

    type_name = "Enum"

    def _extra(self) -> Dict[str, object]:
        return {"Items": [item.to_dict() for item in self.items]}


@dataclass(frozen=True)
class TextElement(PolicyElement):
    max_length: Optional[int] = None
    expandable: bool = False

    type_name = "Text"

    def _extra(self) -> Dict[str, object]:
        return {"MaxLength": self.max_length, "Expandable": self.expandable or None}


@dataclass(frozen=True)
class MultiTextElement(PolicyElement):
    max_length: Optional[int] = None
    max_strings: Optional[int] = None

    type_name = "MultiText"

    def _extra(self) -> Dict[str, object]:
        return {"MaxLength": self.max_length, "MaxStrings": self.max_strings}


@dataclass(frozen=True)
class ListElement(PolicyElement):
    value_prefix: Optional[str] = None
    additive: bool = False
    explicit_value: bool = False
    expandable: bool = False

    type_name = "List"

    def _extra(self) -> Dict[str, object]:
        return {
            "ValuePrefix": self.value_prefix,
            "Additive": self.additive or None,
            "ExplicitValue": self.explicit_value or None,
            "Expandable": self.expandable or None,
        }


@dataclass(frozen=True)
class UnknownElement(PolicyElement):
    tag: str = ""
    raw: str = ""

    type_name = "Unknown"

    def _extra(self) -> Dict[str, object]:
        return {"Tag": self.tag, "Raw": self.raw}


ElementVariant = Union[
    DecimalElement, BooleanElement, EnumElement, TextElement, MultiTextElement, ListElement, UnknownElement
]


@dataclass(frozen=True)
class PolicyDefinition:
    name: str
    source_file: str
    display_name: str = ""
    explain_text: str = ""
    policy_class: PolicyClass = PolicyClass.Machine
    registry_key: str = ""
    value_name: Optional[str] = None
    namespace: str = ""
    category: Optional[CategoryKey] = None
    category_path: str = ""
    supported_on: str = ""
    elements: Tuple[ElementVariant, ...] = ()

    @property
    def key_paths(self) -> List[str]:
        if not self.registry_key:
            return []
        normalized = self.registry_key.lstrip("\\")
        return [f"{hive}\\{normalized}" for hive in self.policy_class.hives]

    def to_dict(self) -> Dict[str, object]:
        record: Dict[str, object] = {
            "File": self.source_file,
            "PolicyName": self.name,
            "NameSpace": self.namespace,
            "Class": self.policy_class.value,
            "CategoryName": self.category[1] if self.category else "",
            "CategoryPath": self.category_path,
            "Supported": self.supported_on or "Not specified",
            "DisplayName": self.display_name,
            "ExplainText": self.explain_text,
            "KeyPath": self.key_paths,
        }
        if self.value_name:
            record["ValueName"] = self.value_name
        record["Elements"] = [element.to_dict() for element in self.elements]
        return record


@dataclass(frozen=True)
class PolicyCatalog:
    categories: Tuple[Category, ...] = ()
    policies: Tuple[PolicyDefinition, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    category_index: Mapping[CategoryKey, Category] = field(default_factory=dict, compare=False, repr=False)

    @property
    def counts_by_class(self) -> Dict[str, int]:
        counter = Counter(policy.policy_class.value for policy in self.policies)
        return {key: counter[key] for key in sorted(counter)}

    @property
    def metadata(self) -> Dict[str, object]:
        return {
            "Policies": len(self.policies),
            "Categories": len(self.categories),
            "ByClass": self.counts_by_class,
            "Diagnostics": len(self.diagnostics),
        }

    def find_policy(self, name: str, source_file: Optional[str] = None) -> Optional[PolicyDefinition]:
        for policy in self.policies:
            if policy.name == name and (source_file is None or policy.source_file == source_file):
                return policy
        return None

    def to_dict(self) -> Dict[str, object]:
        return {
            "Meta": self.metadata,
            "Categories": [category.to_dict() for category in self.categories],
            "Policies": [policy.to_dict() for policy in self.policies],
            "Diagnostics": [diagnostic.to_dict() for diagnostic in self.diagnostics],
        }
