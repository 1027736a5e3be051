# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import struct
from pathlib import Path
from typing import Dict

import pytest

POLICY_NS = "http://schemas.microsoft.com/GroupPolicy/2006/07/PolicyDefinitions"

WINDOWS_ADMX = f"""<?xml version="1.0" encoding="utf-8"?>
<policyDefinitions xmlns="{POLICY_NS}" revision="1.0" schemaVersion="1.0">
  <policyNamespaces>
    <target prefix="windows" namespace="Microsoft.Policies.Windows" />
  </policyNamespaces>
  <resources minRequiredRevision="1.0" />
  <supportedOn>
    <definitions>
      <definition name="SUPPORTED_Win7" displayName="$(string.SUPPORTED_Win7)" />
    </definitions>
  </supportedOn>
  <categories>
    <category name="WindowsComponents" displayName="$(string.WindowsComponents)" />
  </categories>
</policyDefinitions>
"""

EXPLORER_ADMX = f"""<?xml version="1.0" encoding="utf-8"?>
<policyDefinitions xmlns="{POLICY_NS}" revision="1.0" schemaVersion="1.0">
  <policyNamespaces>
    <target prefix="explorer" namespace="Microsoft.Policies.Explorer" />
    <using prefix="windows" namespace="Microsoft.Policies.Windows" />
  </policyNamespaces>
  <resources minRequiredRevision="1.0" />
  <categories>
    <category name="FileExplorer" displayName="$(string.FileExplorer)">
      <parentCategory ref="windows:WindowsComponents" />
    </category>
  </categories>
  <policies>
    <policy name="NoAutoplay" class="User" displayName="$(string.NoAutoplay)" explainText="$(string.NoAutoplay_Help)" key="Software\\Policies\\Explorer" valueName="NoAutoplay">
      <parentCategory ref="FileExplorer" />
      <supportedOn ref="windows:SUPPORTED_Win7" />
    </policy>
    <policy name="ShowHidden" class="Machine" displayName="$(string.ShowHidden)" explainText="" key="Software\\Policies\\Explorer" valueName="ShowHidden">
      <parentCategory ref="FileExplorer" />
      <supportedOn ref="windows:SUPPORTED_Win7" />
      <enabledValue><decimal value="2" /></enabledValue>
      <disabledValue><decimal value="0" /></disabledValue>
    </policy>
    <policy name="Options" class="Both" displayName="$(policy.Options)" explainText="" key="Software\\Policies\\Explorer\\Options">
      <parentCategory ref="explorer:FileExplorer" />
      <elements>
        <decimal id="Timeout" valueName="Timeout" minValue="1" maxValue="60" required="true" />
        <boolean id="Tips" valueName="ShowTips">
          <trueValue><decimal value="5" /></trueValue>
          <falseValue><decimal value="6" /></falseValue>
        </boolean>
        <enum id="Mode" valueName="Mode">
          <item displayName="$(string.ModeFast)"><value><decimal value="1" /></value></item>
          <item displayName="$(string.ModeSafe)"><value><string>safe</string></value></item>
        </enum>
        <text id="Banner" valueName="Banner" maxLength="80" expandable="true" />
        <multiText id="Lines" valueName="Lines" maxStrings="4" />
        <list id="Servers" key="Software\\Policies\\Explorer\\Servers" valuePrefix="srv" additive="true" />
        <gadget id="Odd" valueName="Odd" />
      </elements>
    </policy>
    <policy name="Legacy" displayName="$(string.Missing)" explainText="" key="Software\\Legacy" valueName="Legacy" />
  </policies>
</policyDefinitions>
"""

WINDOWS_ADML = """<?xml version="1.0" encoding="utf-8"?>
<policyDefinitionResources xmlns="http://schemas.microsoft.com/GroupPolicy/2006/07/PolicyDefinitions" revision="1.0" schemaVersion="1.0">
  <resources>
    <stringTable>
      <string id="WindowsComponents">Windows Components</string>
      <string id="SUPPORTED_Win7">At least Windows 7</string>
    </stringTable>
  </resources>
</policyDefinitionResources>
"""

EXPLORER_ADML = """<?xml version="1.0" encoding="utf-8"?>
<policyDefinitionResources xmlns="http://schemas.microsoft.com/GroupPolicy/2006/07/PolicyDefinitions" revision="1.0" schemaVersion="1.0">
  <resources>
    <stringTable>
      <string id="FileExplorer">File Explorer</string>
      <string id="NoAutoplay">Turn off Autoplay</string>
      <string id="NoAutoplay_Help">Disables
          autoplay   for all drives.</string>
      <string id="ShowHidden">Show hidden files</string>
      <string id="Options">Explorer options</string>
      <string id="ModeFast">Fast</string>
      <string id="ModeSafe">Safe</string>
    </stringTable>
  </resources>
</policyDefinitionResources>
"""


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def wide(text: str) -> bytes:
    return text.encode("utf-16-le")


def pol_record(key: str, name: str, value_type: int, payload: bytes) -> bytes:
    return b"".join(
        (
            wide("["),
            wide(key + "\0"),
            wide(";"),
            wide(name + "\0"),
            wide(";"),
            struct.pack("<i", value_type),
            wide(";"),
            struct.pack("<i", len(payload)),
            wide(";"),
            payload,
            wide("]"),
        )
    )


def pol_header(version: int = 1) -> bytes:
    return b"PReg" + struct.pack("<i", version)


@pytest.fixture
def definitions(tmp_path: Path) -> Path:
    return write_tree(
        tmp_path / "PolicyDefinitions",
        {
            "windows.admx": WINDOWS_ADMX,
            "explorer.admx": EXPLORER_ADMX,
            "en-US/windows.adml": WINDOWS_ADML,
            "en-US/explorer.adml": EXPLORER_ADML,
        },
    )
