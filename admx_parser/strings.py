# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import logging, re
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import Diagnostic, FileResult, ResourceFileParseError, UnresolvedReference
from .models import StringKey
from .xmlio import XML_ERRORS, load_xml_root

LOG = logging.getLogger(__name__)
STRING_TOKEN = re.compile(r"\$\((?:string|String|policy|Policy)\.(?P<id>[^)]+)\)")
DEFAULT_LANGUAGE = "en-US"


def scope_of(path: Path) -> str:
    return path.stem.lower()


class LocalizedStringTable(Mapping[StringKey, str]):
    def __init__(self, entries: Optional[Mapping[StringKey, str]] = None) -> None:
        self._entries: Dict[StringKey, str] = {}
        for (scope, string_id), text in (entries or {}).items():
            self._entries[(scope.lower(), string_id)] = text
        self._frozen = False

    def __getitem__(self, key: StringKey) -> str:
        scope, string_id = key
        return self._entries[(scope.lower(), string_id)]

    def __iter__(self) -> Iterator[StringKey]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, scope: str, string_id: str, text: str) -> bool:
        if self._frozen:
            raise RuntimeError("Localized string table is read-only once built")
        key = (scope.lower(), string_id)
        if key in self._entries:
            return False
        self._entries[key] = text
        return True

    def freeze(self) -> "LocalizedStringTable":
        self._frozen = True
        return self

    def lookup(self, scope: str, string_id: str) -> Optional[str]:
        return self._entries.get((scope.lower(), string_id))

    def resolve(self, raw_value: Optional[str], scope: str) -> str:
        if not raw_value:
            return ""

        def replace(match: "re.Match[str]") -> str:
            string_id = match.group("id")
            text = self.lookup(scope, string_id)
            if text is None:
                LOG.debug(f"{UnresolvedReference('string', f'{scope}:{string_id}')}")
                return string_id
            return text

        return STRING_TOKEN.sub(replace, raw_value)


def order_languages(available: Iterable[str], explicit: Optional[Sequence[str]] = None) -> List[str]:
    if explicit:
        return list(dict.fromkeys(lang for lang in explicit if lang))
    discovered = sorted({lang for lang in available if lang.casefold() != DEFAULT_LANGUAGE.casefold()})
    return [DEFAULT_LANGUAGE] + discovered


def rank_resource_files(paths: Iterable[Path], languages: Sequence[str]) -> List[Path]:
    ranks = {lang.casefold(): index for index, lang in enumerate(languages)}
    ranked: List[Tuple[int, Path]] = []
    for path in paths:
        rank = ranks.get(path.parent.name.casefold())
        if rank is None:
            LOG.debug(f"Skipping ADML outside the selected languages: {path}")
            continue
        ranked.append((rank, path))
    ranked.sort(key=lambda item: (item[0], str(item[1])))
    return [path for _, path in ranked]


def read_resource_file(path: Path) -> Dict[str, str]:
    try:
        root, q = load_xml_root(path)
    except XML_ERRORS as exc:
        raise ResourceFileParseError(path, str(exc)) from exc
    string_table = root.find(f".//{q('stringTable')}")
    if string_table is None:
        return {}
    table: Dict[str, str] = {}
    for node in string_table.findall(q("string")):
        string_id = node.get("id")
        if not string_id:
            continue
        text = (node.text or "").strip()
        if text:
            table[string_id] = text
    return table


def load_resource_file(path: Path) -> FileResult[Dict[str, str]]:
    try:
        return FileResult(path, value=read_resource_file(path))
    except ResourceFileParseError as exc:
        LOG.warning(str(exc))
        return FileResult(path, diagnostic=Diagnostic.from_error(exc, path))


def build_string_table(
    paths: Iterable[Path],
    languages: Optional[Sequence[str]] = None,
) -> Tuple[LocalizedStringTable, List[Diagnostic]]:
    paths = list(paths)
    ordered = order_languages((path.parent.name for path in paths), languages)
    table = LocalizedStringTable()
    diagnostics: List[Diagnostic] = []
    for path in rank_resource_files(paths, ordered):
        result = load_resource_file(path)
        if not result.ok:
            diagnostics.append(result.diagnostic)
            continue
        scope = scope_of(path)
        added = sum(table.register(scope, string_id, text) for string_id, text in (result.value or {}).items())
        LOG.debug(f"{path.parent.name}/{path.name}: {added} strings")
    return table.freeze(), diagnostics
