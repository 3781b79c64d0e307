"""Approval rule table and its configuration loaders."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

import yaml

from .models import ApprovalRule

SMALLEST_UNIT = Decimal("0.01")


def _parse_rows(rows: Iterable[dict[str, object]]) -> tuple[ApprovalRule, ...]:
    """Validate each YAML row as an approval rule, keeping file order."""

    return tuple(ApprovalRule.model_validate(row) for row in rows)


def _packaged_rules_path() -> Path | None:
    """Locate ``config/approval_rules.yaml`` next to or above this package."""

    here = Path(__file__).resolve()
    for directory in (here.parent, *here.parents):
        candidate = directory / "config" / "approval_rules.yaml"
        if candidate.is_file():
            return candidate
    return None


@dataclass(frozen=True)
class CoverageGap:
    """Amount interval left uncovered between two rule rows."""

    department: str
    currency: str
    level: int
    after: Decimal
    before: Decimal


@dataclass(frozen=True)
class RuleTable:
    """Ordered, read-only collection of approval rules.

    Each row routes expenses of one department whose amount falls in
    ``[amount_min, amount_max]`` to one recipient at one approval level.
    Currency ``ALL`` rows match every currency.
    """

    rules: tuple[ApprovalRule, ...]

    @classmethod
    def from_rules(cls, rules: Iterable[ApprovalRule]) -> RuleTable:
        return cls(tuple(rules))

    @classmethod
    def from_yaml(cls, content: str) -> RuleTable:
        """Build a table from a YAML document with a top-level ``rules`` list."""

        document = yaml.safe_load(content) or {}
        rows = document.get("rules") if isinstance(document, dict) else None
        if not rows:
            raise ValueError("Approval rules configuration must include a 'rules' list")
        return cls(_parse_rows(rows))

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> RuleTable:
        """Read a rule file, defaulting to the table shipped with the package."""

        source = Path(path) if path is not None else _packaged_rules_path()
        if source is None:
            raise FileNotFoundError("No approval rules file found")
        return cls.from_yaml(source.read_text(encoding="utf-8"))

    @classmethod
    def from_environment(cls, env_var: str = "APPROVAL_RULES") -> RuleTable:
        """Build a table from YAML held in an environment variable."""

        content = os.getenv(env_var)
        if not content:
            raise ValueError(f"Environment variable '{env_var}' is not set or empty")
        return cls.from_yaml(content)

    def __len__(self) -> int:
        return len(self.rules)

    def matching(
        self, department: str, amount: Decimal, currency: str
    ) -> list[ApprovalRule]:
        """Return the rows matching the submission, in table order."""

        return [rule for rule in self.rules if rule.matches(department, amount, currency)]

    def departments(self) -> list[str]:
        return list(dict.fromkeys(rule.department for rule in self.rules))

    def recipients(self) -> list[str]:
        """Distinct recipient identities in first-seen order."""

        return list(dict.fromkeys(rule.recipient for rule in self.rules))

    def coverage_gaps(self) -> list[CoverageGap]:
        """Report amount ranges no row covers between rows of the same level."""

        groups: dict[tuple[str, str, int], list[ApprovalRule]] = {}
        for rule in self.rules:
            key = (rule.department, rule.currency, rule.level)
            groups.setdefault(key, []).append(rule)

        gaps: list[CoverageGap] = []
        for (department, currency, level), rows in groups.items():
            ordered = sorted(rows, key=lambda rule: (rule.amount_min, rule.amount_max))
            covered_to = ordered[0].amount_max
            for rule in ordered[1:]:
                if rule.amount_min > covered_to + SMALLEST_UNIT:
                    gaps.append(
                        CoverageGap(
                            department=department,
                            currency=currency,
                            level=level,
                            after=covered_to,
                            before=rule.amount_min,
                        )
                    )
                covered_to = max(covered_to, rule.amount_max)
        return gaps
