# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import enum, logging, re, struct
from typing import Any, BinaryIO, List, Sequence, Union

from .errors import EncodeError, InvalidRecord, TruncatedRecord

LOG = logging.getLogger(__name__)

WIDE_NULL = b"\x00\x00"
HEX_WHITESPACE = re.compile(r"\s+")
LINE_BREAK = re.compile(r"\r\n|\r|\n")

ValueData = Union[int, str, bytes, List[str], None]


class RegistryValueType(enum.IntEnum):
    None_ = 0
    String = 1
    ExpandableString = 2
    Binary = 3
    DWord = 4
    DWordLittleEndian = 4
    DWordBigEndian = 5
    Link = 6
    MultiString = 7
    ResourceList = 8
    FullResourceDescriptor = 9
    ResourceRequirementsList = 10
    QWord = 11
    QWordLittleEndian = 11

    @property
    def label(self) -> str:
        return self.name.rstrip("_")

    @classmethod
    def coerce(cls, value: Union[int, str, "RegistryValueType"]) -> Union["RegistryValueType", int]:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text.lstrip("-").isdigit():
                return cls.coerce(int(text))
            lookup = {name.lower(): member for name, member in cls.__members__.items()}
            lookup.update({"none": cls.None_, "reg_sz": cls.String, "reg_expand_sz": cls.ExpandableString,
                           "reg_binary": cls.Binary, "reg_dword": cls.DWord, "reg_multi_sz": cls.MultiString,
                           "reg_qword": cls.QWord})
            member = lookup.get(text.lower())
            if member is None:
                raise ValueError(f"Unknown registry value type name '{value}'")
            return member
        try:
            return cls(value)
        except ValueError:
            return int(value)


STRING_TYPES = (RegistryValueType.String, RegistryValueType.ExpandableString)
INTEGER_FORMATS = {
    RegistryValueType.DWord: "<i",
    RegistryValueType.DWordBigEndian: ">i",
    RegistryValueType.QWord: "<q",
}
UNSIGNED_FORMATS = {"<i": "<I", ">i": ">I", "<q": "<Q"}
INTERPRETED_TYPES = frozenset(
    (*STRING_TYPES, *INTEGER_FORMATS, RegistryValueType.Binary, RegistryValueType.MultiString)
)


class ValueReader:
    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream
        self.offset = 0

    def read(self, size: int) -> bytes:
        if size < 0:
            raise InvalidRecord(f"Negative length {size} at offset {self.offset}")
        data = self.stream.read(size) if size else b""
        if len(data) != size:
            raise TruncatedRecord(self.offset, size, len(data))
        self.offset += size
        return data

    def at_end(self) -> bool:
        peek = getattr(self.stream, "peek", None)
        if peek is not None:
            return not peek(1)
        position = self.stream.tell()
        if self.stream.read(1):
            self.stream.seek(position)
            return False
        return True

    def read_int32(self) -> int:
        return struct.unpack("<i", self.read(4))[0]

    def read_wide_string(self) -> str:
        units = bytearray()
        while True:
            unit = self.read(2)
            if unit == WIDE_NULL:
                return units.decode("utf-16-le", errors="surrogatepass")
            units += unit

    def expect_marker(self, marker: str) -> None:
        start = self.offset
        unit = self.read(2)
        if unit != marker.encode("utf-16-le"):
            raise InvalidRecord(f"Expected '{marker}' at offset {start}, found {unit.hex()}")


def _decode_wide(payload: bytes) -> str:
    if len(payload) % 2:
        payload = payload[:-1]
    return payload.decode("utf-16-le", errors="surrogatepass")


def decode_string(payload: bytes) -> str:
    return _decode_wide(payload).split("\x00", 1)[0]


def decode_multi_string(payload: bytes) -> List[str]:
    text = _decode_wide(payload).rstrip("\x00")
    if not text:
        return []
    return text.split("\x00")


def decode_integer(value_type: RegistryValueType, payload: bytes) -> int:
    fmt = INTEGER_FORMATS[value_type]
    width = struct.calcsize(fmt)
    if len(payload) != width:
        raise InvalidRecord(f"{value_type.name} payload must be {width} bytes, got {len(payload)}")
    return struct.unpack(fmt, payload)[0]


def decode_value(value_type: Union[RegistryValueType, int], payload: bytes) -> ValueData:
    if value_type in INTEGER_FORMATS:
        return decode_integer(RegistryValueType(value_type), payload)
    if value_type in STRING_TYPES:
        return decode_string(payload)
    if value_type == RegistryValueType.MultiString:
        return decode_multi_string(payload)
    return bytes(payload)


def encode_wide_string(text: str) -> bytes:
    return text.encode("utf-16-le", errors="surrogatepass") + WIDE_NULL


def encode_string(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return encode_wide_string(str(value).rstrip("\x00"))


def encode_multi_string(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        parts = [part for part in LINE_BREAK.split(value) if part]
    else:
        parts = [str(part) for part in value]
    joined = "\x00".join(parts) + "\x00\x00"
    return joined.encode("utf-16-le", errors="surrogatepass")


def _parse_integer(value: Any) -> int:
    if not isinstance(value, str):
        return int(value)
    text = value.strip()
    if text.lower().startswith(("0x", "-0x")):
        return int(text, 16)
    return int(text)


def encode_integer(value_type: RegistryValueType, value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    try:
        number = _parse_integer(value)
    except ValueError as exc:
        raise EncodeError(f"{value_type.name} value {value!r} is not an integer") from exc
    fmt = INTEGER_FORMATS[value_type]
    if number >= 0:
        fmt = UNSIGNED_FORMATS[fmt]
    try:
        return struct.pack(fmt, number)
    except struct.error as exc:
        raise EncodeError(f"{value_type.name} value {number} is out of range") from exc


def encode_binary(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        text = HEX_WHITESPACE.sub("", value)
        if text[:2].lower() == "0x":
            text = text[2:]
        try:
            return bytes.fromhex(text)
        except ValueError:
            LOG.warning(f"Invalid hex string {value!r}, writing an empty payload")
            return b""
    if isinstance(value, Sequence) and all(isinstance(item, int) for item in value):
        try:
            return bytes(value)
        except ValueError:
            LOG.warning(f"Byte values outside 0..255 in {list(value)!r}, writing an empty payload")
            return b""
    return b""


def encode_value(value_type: Union[RegistryValueType, int], value: Any) -> bytes:
    if value_type in INTEGER_FORMATS:
        return encode_integer(RegistryValueType(value_type), value)
    if value_type in STRING_TYPES:
        return encode_string(value)
    if value_type == RegistryValueType.MultiString:
        return encode_multi_string(value)
    if value_type == RegistryValueType.Binary:
        return encode_binary(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return b""
