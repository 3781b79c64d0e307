"""Command-line interface for inspecting the approval rule table."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .exceptions import WorkflowError
from .resolver import ensure_contiguous, resolve
from .rules import RuleTable
from .settings import WorkflowSettings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="expense-workflow",
        description="Resolve and lint multi-level expense approval workflows.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_parser = subparsers.add_parser(
        "resolve", help="Print the approval steps for a submission as JSON."
    )
    resolve_parser.add_argument("department", help="Submitting department.")
    resolve_parser.add_argument("amount", help="Expense amount.")
    resolve_parser.add_argument("currency", help="Currency code, e.g. USD.")

    subparsers.add_parser(
        "check-rules", help="Report amount ranges no rule row covers."
    )
    subparsers.add_parser(
        "recipients", help="List every approver identity in the rule table."
    )

    for subparser in subparsers.choices.values():
        subparser.add_argument(
            "--rules",
            type=Path,
            default=None,
            help="Path to an approval rules YAML file.",
        )
    return parser


def _load_rules(path: Path | None, settings: WorkflowSettings) -> RuleTable:
    if path is not None:
        return RuleTable.from_file(path)
    return settings.load_rules()


def _run_resolve(rules: RuleTable, args: argparse.Namespace) -> int:
    steps = resolve(rules, args.department, args.amount, args.currency)
    ensure_contiguous(
        steps, department=args.department, amount=args.amount, currency=args.currency
    )
    payload = [step.model_dump(mode="json") for step in steps]
    print(json.dumps(payload, indent=2))
    return 0


def _run_check_rules(rules: RuleTable) -> int:
    gaps = rules.coverage_gaps()
    if not gaps:
        print(f"{len(rules)} rule(s) checked; no coverage gaps.")
        return 0
    for gap in gaps:
        print(
            f"{gap.department} [{gap.currency}] level {gap.level}:"
            f" nothing covers amounts between {gap.after} and {gap.before}"
        )
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = WorkflowSettings.from_environment()
        logging.basicConfig(level=settings.log_level)
        rules = _load_rules(args.rules, settings)
        if args.command == "resolve":
            return _run_resolve(rules, args)
        if args.command == "check-rules":
            return _run_check_rules(rules)
        for recipient in rules.recipients():
            print(recipient)
        return 0
    except PydanticValidationError as exc:
        print("Error: approval rules failed validation.", file=sys.stderr)
        print(str(exc), file=sys.stderr)
        return 1
    except WorkflowError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
