# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import json, re
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

INLINE_ELEMENTS_PATTERN = re.compile(
    r'(?P<indent>[ \t]*)"Elements": "(?P<marker>__INLINE_ELEMENTS_\d+__)"(?P<trailing>,?)'
)


def serialize(payload: Any, *, fmt: str, pretty: bool = True) -> str:
    if fmt == "yaml":
        return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return serialize_json(payload, pretty=pretty)


def deserialize(text: str, *, fmt: str) -> Any:
    if fmt == "yaml":
        return yaml.safe_load(text)
    return json.loads(text)


def serialize_json(payload: Any, *, pretty: bool) -> str:
    if not pretty:
        return json.dumps(payload, ensure_ascii=False)
    prepared, inline_map = _prepare_inline_elements(payload)
    serialized = json.dumps(prepared, indent=2, ensure_ascii=False)
    if not inline_map:
        return serialized
    return _inject_inline_elements(serialized, inline_map, indent_width=2)


def _prepare_inline_elements(payload: Any) -> Tuple[Any, Dict[str, List[Dict[str, object]]]]:
    inline_map: Dict[str, List[Dict[str, object]]] = {}
    if not isinstance(payload, dict) or not isinstance(payload.get("Policies"), list):
        return payload, inline_map
    prepared_policies: List[Dict[str, object]] = []
    for policy in payload["Policies"]:
        record = dict(policy)
        elements = record.get("Elements")
        if isinstance(elements, list):
            marker = f"__INLINE_ELEMENTS_{len(inline_map)}__"
            inline_map[marker] = elements
            record["Elements"] = marker
        prepared_policies.append(record)
    prepared = dict(payload)
    prepared["Policies"] = prepared_policies
    return prepared, inline_map


def _inject_inline_elements(serialized: str, inline_map: Dict[str, List[Dict[str, object]]], *, indent_width: int) -> str:
    def replacer(match: "re.Match[str]") -> str:
        elements = inline_map.get(match.group("marker"))
        if elements is None:
            return match.group(0)
        indent = match.group("indent")
        formatted = _format_inline_elements(elements, indent, indent_width)
        return f'{indent}"Elements": {formatted}{match.group("trailing")}'

    return INLINE_ELEMENTS_PATTERN.sub(replacer, serialized)


def _format_inline_elements(elements: List[Dict[str, object]], indent: str, indent_width: int) -> str:
    if not elements:
        return "[]"
    inner_indent = indent + " " * indent_width
    body = ",\n".join(_format_inline_element(element, inner_indent, indent_width) for element in elements)
    return "[\n" + body + "\n" + indent + "]"


def _format_inline_element(element: Dict[str, object], element_indent: str, indent_width: int) -> str:
    encoded = _inline_object_string(element)
    complex_keys = [key for key, value in element.items() if isinstance(value, list)]
    for key in complex_keys:
        value = element[key]
        formatted_list = _format_nested_list(value, element_indent, indent_width)
        raw = json.dumps(value, separators=(", ", ": "), ensure_ascii=False)
        encoded = encoded.replace(f'"{key}": {raw}', f'"{key}": {formatted_list}', 1)
    if complex_keys and encoded.endswith(" }"):
        encoded = encoded[:-2] + "\n" + element_indent + "}"
    return f"{element_indent}{encoded}"


def _format_nested_list(values: List[object], element_indent: str, indent_width: int) -> str:
    if not values:
        return "[]"
    indent_unit = " " * indent_width
    list_indent = element_indent + indent_unit
    entry_indent = element_indent + indent_unit * 2
    entries = []
    for entry in values:
        text = _inline_object_string(entry) if isinstance(entry, dict) else json.dumps(entry, ensure_ascii=False)
        entries.append(f"{entry_indent}{text}")
    return "[\n" + ",\n".join(entries) + "\n" + list_indent + "]"


def _inline_object_string(value: Dict[str, object]) -> str:
    encoded = json.dumps(value, separators=(", ", ": "), ensure_ascii=False)
    if encoded.startswith("{") and encoded.endswith("}"):
        encoded = f"{{ {encoded[1:-1].strip()} }}"
    return encoded


def write_payload(path: Path, payload: Any, *, fmt: str, pretty: bool) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize(payload, fmt=fmt, pretty=pretty), encoding="utf-8")


def read_payload(path: Path) -> Any:
    fmt = "yaml" if path.suffix.lower() in (".yaml", ".yml") else "json"
    return deserialize(path.read_text(encoding="utf-8"), fmt=fmt)
