# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import io, re
from pathlib import Path
from typing import Any, Callable, Match, Optional, Tuple, cast
from xml.etree import ElementTree as et

UNICODE_ENCODING_PATTERN = re.compile(br"encoding\s*=\s*(?P<quote>['\"])unicode(?P=quote)", re.IGNORECASE)
UNICODE_ENCODING_TEXT_PATTERN = re.compile(r"encoding\s*=\s*(?P<quote>['\"])unicode(?P=quote)", re.IGNORECASE)

Qualifier = Callable[[str], str]
XML_ERRORS = (et.ParseError, LookupError, UnicodeError)


def load_xml_root(path: Path) -> Tuple[et.Element, Qualifier]:
    root = cast(et.Element, _load_xml_tree(path).getroot())
    namespace = extract_namespace(root)
    q: Qualifier = lambda tag: f"{{{namespace}}}{tag}" if namespace else tag
    return root, q


def _load_xml_tree(path: Path) -> "et.ElementTree[Any]":
    try:
        return et.parse(path)
    except LookupError:
        raw = path.read_bytes()
        fixed = _normalize_unicode_encoding(raw)
        if fixed is not None:
            return et.parse(io.BytesIO(fixed))
        raise


def _normalize_unicode_encoding(raw: bytes) -> Optional[bytes]:
    if UNICODE_ENCODING_PATTERN.search(raw):
        def repl(match: Match[bytes]) -> bytes:
            return b"encoding=" + match.group("quote") + b"utf-8" + match.group("quote")

        return UNICODE_ENCODING_PATTERN.sub(repl, raw, count=1)

    for encoding in ("utf-16", "utf-16-le", "utf-16-be"):
        try:
            text = raw.decode(encoding)
        except UnicodeDecodeError:
            continue
        if UNICODE_ENCODING_TEXT_PATTERN.search(text):
            def repl_text(match: Match[str]) -> str:
                quote = match.group("quote")
                return f"encoding={quote}utf-16{quote}"

            text = UNICODE_ENCODING_TEXT_PATTERN.sub(repl_text, text, count=1)
            return text.encode("utf-16")
    return None


def extract_namespace(node: Any) -> str:
    if "}" in node.tag:
        return node.tag.split("}", 1)[0].strip("{")
    return ""


def local_name(tag: Any) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.split("}", 1)[1] if "}" in tag else tag


def clean_text(value: Optional[str]) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def as_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def as_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("true", "1")
