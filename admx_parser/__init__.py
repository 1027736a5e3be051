# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

from .categories import CategoryResolver, resolve_path, scope_reference
from .errors import (
    AdmxParserError,
    CycleDetected,
    DefinitionFileParseError,
    Diagnostic,
    EncodeError,
    InvalidHeader,
    InvalidRecord,
    RegistryPolError,
    ResourceFileParseError,
    TruncatedRecord,
    UnknownValueType,
    UnresolvedReference,
)
from .models import Category, PolicyCatalog, PolicyClass, PolicyDefinition
from .parser import AdmxParser, registry_entries_for
from .registry_pol import RegistryPolFile, RegistryPolicyEntry, decode, encode
from .strings import LocalizedStringTable
from .values import RegistryValueType

__version__ = "1.0.0"
