# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

from pathlib import Path

import pytest

from admx_parser import registry_pol
from admx_parser.errors import InvalidHeader, InvalidRecord, TruncatedRecord
from admx_parser.registry_pol import RegistryPolicyEntry, decode, encode
from admx_parser.values import RegistryValueType

from conftest import pol_header, pol_record, wide

SINGLE_DWORD = pol_header() + pol_record("Software\\Test", "Enabled", 4, b"\x01\x00\x00\x00")


def test_decode_single_dword_record():
    entries = list(decode(SINGLE_DWORD))
    assert entries == [
        RegistryPolicyEntry("Software\\Test", "Enabled", RegistryValueType.DWord, 1, value_length=4)
    ]


def test_decode_then_encode_reproduces_original_bytes():
    assert encode(decode(SINGLE_DWORD)) == SINGLE_DWORD


def test_encode_writes_magic_version_and_framing():
    data = encode([RegistryPolicyEntry("Software\\Test", "Enabled", RegistryValueType.DWord, 1)])
    assert data[:4] == b"PReg"
    assert data[4:8] == b"\x01\x00\x00\x00"
    assert data == SINGLE_DWORD


def test_bad_magic_fails_before_any_entry():
    data = b"Preg" + SINGLE_DWORD[4:]
    with pytest.raises(InvalidHeader):
        decode(data)


def test_short_header_is_invalid():
    with pytest.raises(InvalidHeader):
        decode(b"PReg\x01")
    with pytest.raises(InvalidHeader):
        decode(b"")


def test_header_only_file_has_no_entries():
    assert list(decode(pol_header())) == []


def test_version_is_read_but_not_enforced(tmp_path: Path):
    path = tmp_path / "Registry.pol"
    path.write_bytes(pol_header(2) + pol_record("Software\\Test", "Enabled", 4, b"\x01\x00\x00\x00"))
    pol_file = registry_pol.load(path)
    assert pol_file.version == 2
    assert [entry.value_data for entry in pol_file.entries] == [1]


def test_truncated_payload_raises():
    with pytest.raises(TruncatedRecord):
        list(decode(SINGLE_DWORD[:-3]))


def test_missing_closing_bracket_raises():
    with pytest.raises(TruncatedRecord):
        list(decode(SINGLE_DWORD[:-1]))


def test_wrong_marker_is_an_invalid_record():
    data = pol_header() + wide("(") + SINGLE_DWORD[10:]
    with pytest.raises(InvalidRecord):
        list(decode(data))


def test_entries_are_yielded_lazily_before_a_later_failure():
    data = SINGLE_DWORD + pol_record("Software\\Test", "Other", 4, b"\x02\x00\x00\x00")[:-4]
    entries = decode(data)
    assert next(entries).value_data == 1
    with pytest.raises(TruncatedRecord):
        next(entries)


def test_mixed_value_types_round_trip():
    entries = [
        RegistryPolicyEntry("Software\\Policies\\App", "Name", RegistryValueType.String, "Contoso"),
        RegistryPolicyEntry("Software\\Policies\\App", "Path", RegistryValueType.ExpandableString, "%ProgramFiles%\\App"),
        RegistryPolicyEntry("Software\\Policies\\App", "Servers", RegistryValueType.MultiString, ["a", "b"]),
        RegistryPolicyEntry("Software\\Policies\\App", "Blob", RegistryValueType.Binary, b"\x00\xff"),
        RegistryPolicyEntry("Software\\Policies\\App", "Big", RegistryValueType.QWord, 2**33),
        RegistryPolicyEntry("Software\\Policies\\App", "**del.Old", RegistryValueType.String, ""),
    ]
    decoded = list(decode(encode(entries)))
    assert [entry.value_data for entry in decoded] == ["Contoso", "%ProgramFiles%\\App", ["a", "b"], b"\x00\xff", 2**33, ""]
    assert [entry.value_length for entry in decoded] == [16, 38, 10, 2, 8, 2]


def test_value_length_is_recomputed_on_encode():
    entry = RegistryPolicyEntry("K", "V", RegistryValueType.DWord, 7, value_length=999)
    data = encode([entry])
    decoded = list(decode(data))
    assert decoded[0].value_length == 4


def test_empty_payload_reports_zero_length():
    entry = RegistryPolicyEntry("K", "V", RegistryValueType.Binary, object())
    data = encode([entry])
    assert data.endswith(b"\x00\x00\x00\x00" + wide(";") + wide("]"))
    assert list(decode(data))[0].value_data == b""


def test_unknown_value_type_keeps_bytes_and_reports_diagnostic():
    data = pol_header() + pol_record("K", "V", 99, b"\x01\x02\x03") + pol_record("K", "W", 4, b"\x05\x00\x00\x00")
    diagnostics = []
    entries = list(decode(data, diagnostics))
    assert entries[0].value_type == 99
    assert entries[0].value_data == b"\x01\x02\x03"
    assert entries[1].value_data == 5
    assert [diagnostic.kind for diagnostic in diagnostics] == ["UnknownValueType"]
    assert encode(entries) == data


def test_types_without_payload_reading_keep_bytes_and_report_diagnostic():
    data = pol_header() + pol_record("K", "V", 6, b"\x01\x02") + pol_record("K", "W", 8, b"\x03")
    diagnostics = []
    entries = list(decode(data, diagnostics))
    assert [entry.value_type for entry in entries] == [RegistryValueType.Link, RegistryValueType.ResourceList]
    assert [entry.value_data for entry in entries] == [b"\x01\x02", b"\x03"]
    assert [diagnostic.kind for diagnostic in diagnostics] == ["UnknownValueType", "UnknownValueType"]
    assert diagnostics[0].source == "K\\V"
    assert encode(entries) == data


def test_iter_file_releases_handle_on_error(tmp_path: Path, monkeypatch):
    path = tmp_path / "Registry.pol"
    path.write_bytes(SINGLE_DWORD[:-3])
    opened = []
    real_open = Path.open

    def tracking_open(self, *args, **kwargs):
        handle = real_open(self, *args, **kwargs)
        opened.append(handle)
        return handle

    monkeypatch.setattr(Path, "open", tracking_open)
    with pytest.raises(TruncatedRecord):
        list(registry_pol.iter_file(path))
    assert opened and all(handle.closed for handle in opened)


def test_iter_file_releases_handle_when_consumer_stops_early(tmp_path: Path, monkeypatch):
    path = tmp_path / "Registry.pol"
    path.write_bytes(SINGLE_DWORD + pol_record("K", "V", 4, b"\x02\x00\x00\x00"))
    opened = []
    real_open = Path.open

    def tracking_open(self, *args, **kwargs):
        handle = real_open(self, *args, **kwargs)
        opened.append(handle)
        return handle

    monkeypatch.setattr(Path, "open", tracking_open)
    entries = registry_pol.iter_file(path)
    assert next(entries).value_name == "Enabled"
    entries.close()
    assert opened and all(handle.closed for handle in opened)


def test_dump_and_load_round_trip(tmp_path: Path):
    path = tmp_path / "Machine" / "Registry.pol"
    entries = [RegistryPolicyEntry("Software\\Test", "Enabled", RegistryValueType.DWord, 1)]
    size = registry_pol.dump(entries, path)
    assert size == len(SINGLE_DWORD)
    assert path.read_bytes() == SINGLE_DWORD
    assert registry_pol.load(path).entries[0].value_data == 1


def test_entry_dict_conversion():
    entry = RegistryPolicyEntry("K", "V", RegistryValueType.Binary, b"\xab", value_length=1)
    record = entry.to_dict()
    assert record == {"KeyName": "K", "ValueName": "V", "ValueType": "Binary", "ValueLength": 1, "ValueData": "ab"}
    restored = RegistryPolicyEntry.from_dict(record)
    assert encode([restored]) == encode([entry])
    unknown = RegistryPolicyEntry.from_dict({"KeyName": "K", "ValueName": "V", "ValueType": "99", "ValueData": "0102"})
    assert unknown.value_type == 99
    assert unknown.value_data == b"\x01\x02"
