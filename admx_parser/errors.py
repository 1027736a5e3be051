# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Generic, Optional, Tuple, TypeVar, Union

T = TypeVar("T")


class AdmxParserError(Exception):
    pass


class RegistryPolError(AdmxParserError):
    pass


class InvalidHeader(RegistryPolError):
    pass


class TruncatedRecord(RegistryPolError):
    def __init__(self, offset: int, wanted: int, got: int) -> None:
        super().__init__(f"Truncated record at offset {offset}: wanted {wanted} bytes, got {got}")
        self.offset = offset
        self.wanted = wanted
        self.got = got


class InvalidRecord(RegistryPolError):
    pass


class EncodeError(RegistryPolError):
    pass


class UnknownValueType(AdmxParserError):
    def __init__(self, value_type: int, key_name: str = "", value_name: str = "") -> None:
        super().__init__(f"Unknown registry value type {value_type} for '{key_name}\\{value_name}'")
        self.value_type = value_type
        self.key_name = key_name
        self.value_name = value_name


class CycleDetected(AdmxParserError):
    def __init__(self, key: Tuple[str, str]) -> None:
        scope, name = key
        super().__init__(f"Category cycle detected at '{scope}:{name}'")
        self.key = key


class DefinitionFileParseError(AdmxParserError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Unable to parse {path.name}: {reason}")
        self.path = path
        self.reason = reason


class ResourceFileParseError(AdmxParserError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Unable to parse ADML {path.name}: {reason}")
        self.path = path
        self.reason = reason


class UnresolvedReference(AdmxParserError):
    def __init__(self, kind: str, reference: str) -> None:
        super().__init__(f"Unresolved {kind} reference '{reference}'")
        self.kind = kind
        self.reference = reference


@dataclass(frozen=True)
class Diagnostic:
    kind: str
    source: str
    message: str

    @classmethod
    def from_error(cls, error: AdmxParserError, source: Union[str, Path]) -> "Diagnostic":
        return cls(kind=type(error).__name__, source=str(source), message=str(error))

    def to_dict(self) -> Dict[str, str]:
        return {"Kind": self.kind, "Source": self.source, "Message": self.message}


@dataclass(frozen=True)
class FileResult(Generic[T]):
    path: Path
    value: Optional[T] = None
    diagnostic: Optional[Diagnostic] = None

    @property
    def ok(self) -> bool:
        return self.diagnostic is None
