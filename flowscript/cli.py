#!/usr/bin/env python3
"""
cli.py - Command line front end for flow script analysis.

## CLI Usage

Validate a flow script:
  flowscript validate my_flow.ts

Validate and print the full extraction as JSON:
  flowscript validate my_flow.ts --json

Print the workflow tree of the handle method:
  flowscript workflow my_flow.ts

## Exit Codes

  0 - Script is valid
  1 - Validation failed
  2 - Fatal error (unreadable file, unexpected failure)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from flowscript.parse.cron import describe_cron_expression
from flowscript.parse.script import FlowScript
from flowscript.schema import validation_response
from flowscript.validator.flow_validator import validate_and_extract

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILED = 1
EXIT_FATAL_ERROR = 2


def _read(path: str) -> Optional[str]:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        print(f"ERROR: Cannot read {path}: {e}", file=sys.stderr)
        return None


def cmd_validate(args: argparse.Namespace) -> int:
    code = _read(args.file)
    if code is None:
        return EXIT_FATAL_ERROR

    result = validate_and_extract(code)
    if args.json:
        print(validation_response(result).model_dump_json(indent=2, exclude_none=True))
        return EXIT_SUCCESS if result.valid else EXIT_VALIDATION_FAILED

    for warning in result.warnings:
        print(f"[WARN] {warning}")
    if not result.valid:
        for error in result.errors:
            print(f"[FAIL] {error}")
        return EXIT_VALIDATION_FAILED

    print(f"[PASS] {args.file}")
    if result.trigger is not None:
        line = f"  trigger: {result.trigger.type}"
        if result.trigger.cron_schedule:
            line += f" ({describe_cron_expression(result.trigger.cron_schedule)})"
        print(line)
    print(f"  bubbles: {len(result.bubbles or {})}")
    for name, credentials in sorted((result.required_credentials or {}).items()):
        print(f"  credentials[{name}]: {', '.join(credentials)}")
    return EXIT_SUCCESS


def cmd_workflow(args: argparse.Namespace) -> int:
    code = _read(args.file)
    if code is None:
        return EXIT_FATAL_ERROR
    script = FlowScript(code)
    print(json.dumps(script.workflow.to_dict(), indent=2))
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="flowscript",
        description="Static analysis for BubbleFlow scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0 - Script is valid
  1 - Validation failed
  2 - Fatal error (unreadable file, unexpected failure)

Examples:
  flowscript validate flows/daily_report.ts
  flowscript validate flows/daily_report.ts --json
  flowscript workflow flows/daily_report.ts
        """
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Validate a flow script")
    validate_parser.add_argument("file", help="Path to the TypeScript flow script")
    validate_parser.add_argument(
        "--json",
        action="store_true",
        help="Output the validation and extraction result as JSON"
    )
    validate_parser.add_argument(
        "--debug",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Enable debug logging"
    )
    validate_parser.set_defaults(func=cmd_validate)

    workflow_parser = subparsers.add_parser("workflow", help="Print the workflow tree as JSON")
    workflow_parser.add_argument("file", help="Path to the TypeScript flow script")
    workflow_parser.set_defaults(func=cmd_workflow)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        if args.debug:
            import traceback
            traceback.print_exc(file=sys.stderr)
        return EXIT_FATAL_ERROR


if __name__ == "__main__":
    sys.exit(main())
