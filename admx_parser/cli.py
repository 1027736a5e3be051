# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

import argparse, logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set

from . import registry_pol
from .errors import AdmxParserError, Diagnostic
from .models import PolicyCatalog, PolicyClass, PolicyDefinition
from .parser import AdmxParser
from .registry_pol import RegistryPolicyEntry
from .serialize import read_payload, write_payload

LOG = logging.getLogger("admx_parser")
OBSOLETE_FLAGS = ("OBSOLETE", "DEPRECATED", "UNSUPPORTED")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="admx-parser",
        description="Parse Windows ADMX/ADML policy definitions and Registry.pol files into structured data.",
    )
    parser.add_argument(
        "-d",
        "--definitions",
        type=Path,
        default=Path(r"C:\Windows\PolicyDefinitions"),
        help="Path to the PolicyDefinitions directory. Defaults to C:\\Windows\\PolicyDefinitions.",
    )
    parser.add_argument(
        "-l",
        "--language",
        dest="languages",
        action="append",
        help="Language folder to include, in priority order (can be added multiple times). Defaults to en-US first, then every other folder.",
    )
    parser.add_argument(
        "-i",
        "--ignore",
        dest="ignored_admx",
        action="append",
        help="ADMX base name to ignore (without extension).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of threads used to load ADMX files.",
    )
    parser.add_argument(
        "--class",
        dest="class_filter",
        choices=("Machine", "User"),
        action="append",
        help="Limit output to the supplied policy class. Can be specified multiple times.",
    )
    parser.add_argument(
        "--category",
        dest="category_filter",
        help="Filter policies whose category path contains this string (case insensitive).",
    )
    parser.add_argument(
        "--policy",
        dest="policy_filter",
        help="Filter policies whose internal or display name contains this string (case insensitive).",
    )
    parser.add_argument(
        "--include-obsolete",
        action="store_true",
        help="Include policies marked as deprecated/obsolete/unsupported.",
    )
    pol_group = parser.add_mutually_exclusive_group()
    pol_group.add_argument(
        "--decode-pol",
        type=Path,
        metavar="PATH",
        help="Decode a Registry.pol file and write its entries instead of parsing definitions.",
    )
    pol_group.add_argument(
        "--encode-pol",
        type=Path,
        metavar="PATH",
        help="Read entries from a JSON/YAML file and write a Registry.pol file to --output.",
    )
    parser.add_argument(
        "--format",
        choices=("json", "yaml"),
        default="json",
        help="Output format selection for file output.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path to save the serialized payload.",
    )
    parser.add_argument(
        "--compress",
        action="store_true",
        help="Emit minified JSON output (ignored when --format yaml).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def looks_obsolete(policy: PolicyDefinition) -> bool:
    text = f"{policy.explain_text} {policy.supported_on}".upper()
    return any(flag in text for flag in OBSOLETE_FLAGS)


def _class_names(policy_class: PolicyClass) -> Set[str]:
    if policy_class is PolicyClass.Both:
        return {"machine", "user"}
    return {policy_class.value.lower()}


def filter_policies(
    policies: Iterable[PolicyDefinition],
    *,
    class_filter: Optional[Sequence[str]] = None,
    category_filter: Optional[str] = None,
    policy_filter: Optional[str] = None,
    include_obsolete: bool = False,
) -> List[PolicyDefinition]:
    classes = {item.lower() for item in (class_filter or [])}
    category_text = category_filter.lower() if category_filter else None
    policy_text = policy_filter.lower() if policy_filter else None
    selected = []
    for policy in policies:
        if classes and not classes & _class_names(policy.policy_class):
            continue
        if category_text and category_text not in policy.category_path.lower():
            continue
        if policy_text and policy_text not in f"{policy.name} {policy.display_name}".lower():
            continue
        if not include_obsolete and looks_obsolete(policy):
            continue
        selected.append(policy)
    return selected


def print_summary(catalog: PolicyCatalog) -> None:
    if not catalog.policies:
        return
    counts = catalog.counts_by_class
    summary = ", ".join(f"{key}: {counts[key]}" for key in counts)
    print()
    print(f"Policies: {len(catalog.policies)}")
    print(f"Categories: {len(catalog.categories)}")
    print(f"By Class: {summary}")
    if catalog.diagnostics:
        print(f"Diagnostics: {len(catalog.diagnostics)}")


def _default_output(stem: str, output_format: str) -> Path:
    return Path(f"{stem}.yaml" if output_format == "yaml" else f"{stem}.json")


def _decode_pol(args: argparse.Namespace, pretty: bool) -> int:
    diagnostics: List[Diagnostic] = []
    pol_file = registry_pol.load(args.decode_pol, diagnostics)
    payload = {
        "Version": pol_file.version,
        "Entries": [entry.to_dict() for entry in pol_file.entries],
        "Diagnostics": [diagnostic.to_dict() for diagnostic in diagnostics],
    }
    output_path = args.output or _default_output(args.decode_pol.stem, args.format)
    write_payload(output_path, payload, fmt=args.format, pretty=pretty)
    print(f"Wrote {len(pol_file.entries)} entries to {output_path}")
    return 0


def _encode_pol(args: argparse.Namespace) -> int:
    if args.output is None:
        LOG.error("--encode-pol requires --output")
        return 2
    payload = read_payload(args.encode_pol)
    records = payload.get("Entries", []) if isinstance(payload, dict) else payload
    entries = [RegistryPolicyEntry.from_dict(record) for record in records or []]
    size = registry_pol.dump(entries, args.output)
    print(f"Wrote {len(entries)} entries ({size} bytes) to {args.output}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    pretty_output = not args.compress
    if args.format == "yaml":
        if not pretty_output:
            LOG.info("--compress is ignored for YAML output.")
        pretty_output = True

    try:
        if args.decode_pol is not None:
            return _decode_pol(args, pretty_output)
        if args.encode_pol is not None:
            return _encode_pol(args)
        admx_parser = AdmxParser(
            definitions_path=args.definitions,
            languages=args.languages,
            ignored_admx=args.ignored_admx,
            workers=args.workers,
        )
        catalog = admx_parser.parse()
    except (AdmxParserError, FileNotFoundError, ValueError) as exc:
        LOG.error(str(exc))
        return 1

    selected = filter_policies(
        catalog.policies,
        class_filter=args.class_filter,
        category_filter=args.category_filter,
        policy_filter=args.policy_filter,
        include_obsolete=args.include_obsolete,
    )
    output = PolicyCatalog(
        categories=catalog.categories,
        policies=tuple(selected),
        diagnostics=catalog.diagnostics,
        category_index=catalog.category_index,
    )
    output_path = args.output or _default_output("Policies", args.format)
    write_payload(output_path, output.to_dict(), fmt=args.format, pretty=pretty_output)

    print(f"Wrote {len(selected)} policies to {output_path}")
    print_summary(output)
    return 0
