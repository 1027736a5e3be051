# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import json
from pathlib import Path

import yaml

from admx_parser.cli import filter_policies, main
from admx_parser.parser import AdmxParser
from admx_parser.serialize import serialize_json

from conftest import pol_header, pol_record


def test_pretty_json_inlines_elements_and_stays_valid(definitions: Path):
    payload = AdmxParser(definitions_path=definitions).parse().to_dict()
    text = serialize_json(payload, pretty=True)
    assert json.loads(text) == payload
    assert '{ "Type": "Decimal", "ValueName": "NoAutoplay", "TrueValue": "1", "FalseValue": "0" }' in text
    assert "__INLINE_ELEMENTS_" not in text


def test_compact_json_is_single_line(definitions: Path):
    payload = AdmxParser(definitions_path=definitions).parse().to_dict()
    text = serialize_json(payload, pretty=False)
    assert "\n" not in text
    assert json.loads(text) == payload


def test_filter_policies(definitions: Path):
    policies = AdmxParser(definitions_path=definitions).parse().policies
    names = lambda selected: sorted(policy.name for policy in selected)
    assert names(filter_policies(policies, class_filter=["User"])) == ["NoAutoplay", "Options"]
    assert names(filter_policies(policies, category_filter="file explorer")) == ["NoAutoplay", "Options", "ShowHidden"]
    assert names(filter_policies(policies, policy_filter="autoplay")) == ["NoAutoplay"]


def test_main_writes_json_catalog(definitions: Path, tmp_path: Path, capsys):
    output = tmp_path / "out" / "Policies.json"
    assert main(["-d", str(definitions), "--output", str(output), "--class", "Machine"]) == 0
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert sorted(policy["PolicyName"] for policy in payload["Policies"]) == ["Legacy", "Options", "ShowHidden"]
    assert len(payload["Categories"]) == 2
    captured = capsys.readouterr()
    assert "Wrote 3 policies" in captured.out
    assert "By Class: Both: 1, Machine: 2" in captured.out


def test_main_writes_yaml_catalog(definitions: Path, tmp_path: Path):
    output = tmp_path / "Policies.yaml"
    assert main(["-d", str(definitions), "--output", str(output), "--format", "yaml", "--compress"]) == 0
    payload = yaml.safe_load(output.read_text(encoding="utf-8"))
    assert payload["Meta"]["Policies"] == 4


def test_main_reports_missing_definitions(tmp_path: Path):
    assert main(["-d", str(tmp_path / "missing"), "--output", str(tmp_path / "x.json")]) == 1


def test_main_decodes_and_encodes_registry_pol(tmp_path: Path):
    source = tmp_path / "Registry.pol"
    source.write_bytes(
        pol_header()
        + pol_record("Software\\Test", "Enabled", 4, b"\x01\x00\x00\x00")
        + pol_record("Software\\Test", "Names", 7, "a\0b\0\0".encode("utf-16-le"))
        + pol_record("Software\\Test", "Blob", 3, b"\xde\xad")
    )
    decoded = tmp_path / "entries.json"
    assert main(["--decode-pol", str(source), "--output", str(decoded)]) == 0
    payload = json.loads(decoded.read_text(encoding="utf-8"))
    assert payload["Version"] == 1
    assert [entry["ValueData"] for entry in payload["Entries"]] == [1, ["a", "b"], "dead"]
    assert [entry["ValueType"] for entry in payload["Entries"]] == ["DWord", "MultiString", "Binary"]

    rebuilt = tmp_path / "Rebuilt.pol"
    assert main(["--encode-pol", str(decoded), "--output", str(rebuilt)]) == 0
    assert rebuilt.read_bytes() == source.read_bytes()


def test_main_rejects_truncated_registry_pol(tmp_path: Path):
    source = tmp_path / "Registry.pol"
    source.write_bytes(pol_header() + pol_record("K", "V", 4, b"\x01\x00\x00\x00")[:-3])
    assert main(["--decode-pol", str(source), "--output", str(tmp_path / "e.json")]) == 1


def test_encode_pol_requires_output(tmp_path: Path):
    entries = tmp_path / "entries.yaml"
    entries.write_text(yaml.safe_dump([{"KeyName": "K", "ValueName": "V", "ValueType": "DWord", "ValueData": 1}]), encoding="utf-8")
    assert main(["--encode-pol", str(entries)]) == 2
