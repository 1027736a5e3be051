# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import io, logging, struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, Iterator, List, Optional, Union

from .errors import Diagnostic, InvalidHeader, UnknownValueType
from .values import (
    INTERPRETED_TYPES,
    RegistryValueType,
    ValueData,
    ValueReader,
    decode_value,
    encode_binary,
    encode_value,
    encode_wide_string,
)

LOG = logging.getLogger(__name__)
MAGIC = b"PReg"
VERSION = 1
TEXT_INPUT_TYPES = (
    RegistryValueType.String,
    RegistryValueType.ExpandableString,
    RegistryValueType.MultiString,
    RegistryValueType.DWord,
    RegistryValueType.DWordBigEndian,
    RegistryValueType.QWord,
    RegistryValueType.Binary,
)


@dataclass
class RegistryPolicyEntry:
    key_name: str
    value_name: str
    value_type: Union[RegistryValueType, int]
    value_data: ValueData = None
    value_length: int = 0

    @property
    def type_label(self) -> str:
        if isinstance(self.value_type, RegistryValueType):
            return self.value_type.label
        return str(self.value_type)

    def to_dict(self) -> Dict[str, object]:
        data: Any = self.value_data
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).hex()
        return {
            "KeyName": self.key_name,
            "ValueName": self.value_name,
            "ValueType": self.type_label,
            "ValueLength": self.value_length,
            "ValueData": data,
        }

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "RegistryPolicyEntry":
        value_type = RegistryValueType.coerce(record.get("ValueType", RegistryValueType.String))
        data = record.get("ValueData")
        if isinstance(data, str) and value_type not in TEXT_INPUT_TYPES:
            data = encode_binary(data)
        return cls(
            key_name=str(record.get("KeyName", "")),
            value_name=str(record.get("ValueName", "")),
            value_type=value_type,
            value_data=data,
        )


@dataclass
class RegistryPolFile:
    version: int = VERSION
    entries: List[RegistryPolicyEntry] = field(default_factory=list)


def read_header(reader: ValueReader) -> int:
    magic = reader.stream.read(4)
    if magic != MAGIC:
        raise InvalidHeader(f"Expected 'PReg' signature, found {magic!r}")
    version_bytes = reader.stream.read(4)
    if len(version_bytes) != 4:
        raise InvalidHeader(f"Header ends after {4 + len(version_bytes)} bytes")
    reader.offset = 8
    version = struct.unpack("<i", version_bytes)[0]
    if version != VERSION:
        LOG.debug(f"Registry.pol version {version} (expected {VERSION}), continuing")
    return version


def read_entry(reader: ValueReader, diagnostics: Optional[List[Diagnostic]] = None) -> RegistryPolicyEntry:
    reader.expect_marker("[")
    key_name = reader.read_wide_string()
    reader.expect_marker(";")
    value_name = reader.read_wide_string()
    reader.expect_marker(";")
    raw_type = reader.read_int32()
    reader.expect_marker(";")
    value_length = reader.read_int32()
    reader.expect_marker(";")
    payload = reader.read(value_length)
    reader.expect_marker("]")

    value_type = RegistryValueType.coerce(raw_type)
    if value_type not in INTERPRETED_TYPES:
        error = UnknownValueType(raw_type, key_name, value_name)
        LOG.warning(f"{error}; keeping {value_length} raw bytes")
        if diagnostics is not None:
            diagnostics.append(Diagnostic.from_error(error, f"{key_name}\\{value_name}"))
    return RegistryPolicyEntry(
        key_name=key_name,
        value_name=value_name,
        value_type=value_type,
        value_data=decode_value(value_type, payload),
        value_length=value_length,
    )


def iter_stream(
    stream: BinaryIO,
    diagnostics: Optional[List[Diagnostic]] = None,
    *,
    reader: Optional[ValueReader] = None,
) -> Iterator[RegistryPolicyEntry]:
    if reader is None:
        reader = ValueReader(stream)
        read_header(reader)
    while not reader.at_end():
        yield read_entry(reader, diagnostics)


def decode(data: bytes, diagnostics: Optional[List[Diagnostic]] = None) -> Iterator[RegistryPolicyEntry]:
    reader = ValueReader(io.BytesIO(data))
    read_header(reader)
    return iter_stream(reader.stream, diagnostics, reader=reader)


def iter_file(path: Path, diagnostics: Optional[List[Diagnostic]] = None) -> Iterator[RegistryPolicyEntry]:
    with Path(path).open("rb") as handle:
        yield from iter_stream(handle, diagnostics)


def load(path: Path, diagnostics: Optional[List[Diagnostic]] = None) -> RegistryPolFile:
    with Path(path).open("rb") as handle:
        reader = ValueReader(handle)
        version = read_header(reader)
        entries = list(iter_stream(handle, diagnostics, reader=reader))
    LOG.info(f"{Path(path).name}: {len(entries)} entries")
    return RegistryPolFile(version=version, entries=entries)


def _marker(character: str) -> bytes:
    return character.encode("utf-16-le")


def encode_entry(entry: RegistryPolicyEntry) -> bytes:
    payload = encode_value(entry.value_type, entry.value_data)
    return b"".join(
        (
            _marker("["),
            encode_wide_string(entry.key_name),
            _marker(";"),
            encode_wide_string(entry.value_name),
            _marker(";"),
            struct.pack("<i", int(entry.value_type)),
            _marker(";"),
            struct.pack("<i", len(payload)),
            _marker(";"),
            payload,
            _marker("]"),
        )
    )


def encode(entries: Iterable[RegistryPolicyEntry], version: int = VERSION) -> bytes:
    buffer = io.BytesIO()
    buffer.write(MAGIC)
    buffer.write(struct.pack("<i", version))
    for entry in entries:
        buffer.write(encode_entry(entry))
    return buffer.getvalue()


def dump(entries: Iterable[RegistryPolicyEntry], path: Path, version: int = VERSION) -> int:
    data = encode(entries, version)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as handle:
        handle.write(data)
    return len(data)
