"""Command-line checks for flow documents.

Runs the same validation the editor runs before save, without an editor:
useful in CI for flows kept in version control.

Usage:
    flowbuilder validate flow.json
    flowbuilder validate flow.json --catalog components.json --unknown-components error
    flowbuilder normalize flow.json

Exit status: 0 valid, 1 invalid configuration, 2 structural defect or
unreadable input.
"""

from __future__ import annotations

import json
import logging
import sys
from argparse import ArgumentParser
from pathlib import Path

from dotenv import load_dotenv

from flowbuilder.catalog import CatalogError, ComponentCatalog
from flowbuilder.config import (
    SELF_LOOP_POLICIES,
    UNKNOWN_COMPONENT_POLICIES,
    GraphPolicy,
    Settings,
)
from flowbuilder.flow import FlowStructureError
from flowbuilder.normalizer import normalize
from flowbuilder.save_gate import validate_flow

EXIT_VALID = 0
EXIT_INVALID = 1
EXIT_DEFECT = 2


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _read_flow_file(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


def _emit(payload: dict) -> None:
    print(json.dumps(payload, indent=2))


def _cmd_validate(args, settings: Settings) -> int:
    policy = GraphPolicy(
        self_loops=args.self_loops or settings.policy.self_loops,
        unknown_components=args.unknown_components or settings.policy.unknown_components,
    )
    catalog_path = Path(args.catalog) if args.catalog else settings.catalog_path

    try:
        catalog = ComponentCatalog.from_snapshot(catalog_path)
        flow = normalize(_read_flow_file(args.flow))
        report = validate_flow(flow, catalog, policy)
    except (OSError, CatalogError) as e:
        _emit({"validation_status": "errors", "structural_errors": [str(e)]})
        return EXIT_DEFECT
    except FlowStructureError as e:
        _emit({"validation_status": "errors", "structural_errors": e.errors})
        return EXIT_DEFECT

    _emit(report.to_dict())
    return EXIT_VALID if report.ok else EXIT_INVALID


def _cmd_normalize(args, settings: Settings) -> int:
    try:
        flow = normalize(_read_flow_file(args.flow))
    except OSError as e:
        _emit({"structural_errors": [str(e)]})
        return EXIT_DEFECT
    except FlowStructureError as e:
        _emit({"structural_errors": e.errors})
        return EXIT_DEFECT

    _emit(flow.to_dict())
    return EXIT_VALID


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="flowbuilder",
        description="Validate and normalize flow documents against a component catalog",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    validate_p = sub.add_parser("validate", help="Validate a flow for save/deploy")
    validate_p.add_argument("flow", help="Path to the flow JSON document ('-' for stdin)")
    validate_p.add_argument(
        "--catalog",
        metavar="PATH",
        help="Component catalog snapshot (default: FLOWBUILDER_CATALOG_PATH or the bundled snapshot)",
    )
    validate_p.add_argument(
        "--self-loops",
        choices=sorted(SELF_LOOP_POLICIES),
        help="Whether a connection may start and end on the same node",
    )
    validate_p.add_argument(
        "--unknown-components",
        choices=sorted(UNKNOWN_COMPONENT_POLICIES),
        help="How to treat nodes whose type is not in the catalog",
    )

    normalize_p = sub.add_parser("normalize", help="Print the canonical form of a flow")
    normalize_p.add_argument("flow", help="Path to the flow JSON document ('-' for stdin)")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "validate":
        return _cmd_validate(args, settings)
    if args.command == "normalize":
        return _cmd_normalize(args, settings)

    parser.print_help()
    return EXIT_DEFECT


if __name__ == "__main__":
    sys.exit(main())
