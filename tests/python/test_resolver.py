"""Tests for workflow resolution."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from expense_workflow.exceptions import InvalidWorkflow, NoWorkflowConfigured, ValidationError
from expense_workflow.models import ResolvedWorkflowStep
from expense_workflow.resolver import (
    WorkflowResolver,
    ensure_contiguous,
    parse_amount,
    resolve,
)
from expense_workflow.rules import RuleTable
from expense_workflow.storage import InMemoryStorage


def _steps(*pairs: tuple[int, str]) -> list[ResolvedWorkflowStep]:
    return [ResolvedWorkflowStep(level=level, recipient=who) for level, who in pairs]


def test_hr_small_expense_resolves_to_single_level(rule_table: RuleTable) -> None:
    steps = resolve(rule_table, "HR", 500, "USD")

    assert steps == _steps((1, "hr.manager@company.com"))


def test_logistics_mid_expense_resolves_to_two_levels(rule_table: RuleTable) -> None:
    steps = resolve(rule_table, "Logistics", 2500, "USD")

    assert steps == _steps(
        (1, "logistics.manager@company.com"),
        (2, "logistics.director@company.com"),
    )


def test_logistics_large_expense_resolves_to_three_levels(rule_table: RuleTable) -> None:
    steps = resolve(rule_table, "Logistics", 6000, "USD")

    assert [step.level for step in steps] == [1, 2, 3]
    assert steps[-1].recipient == "cfo@company.com"


def test_shared_level_sorted_by_recipient(rule_table: RuleTable) -> None:
    steps = resolve(rule_table, "Para-Pharma", Decimal("3000"), "EUR")

    assert steps == _steps(
        (1, "parapharma.manager@company.com"),
        (1, "parapharma.quality@company.com"),
        (2, "cfo@company.com"),
    )


@pytest.mark.parametrize(
    ("department", "amount", "currency"),
    [
        ("HR", 500, "USD"),
        ("Logistics", "2500.00", "usd"),
        ("Logistics", 6000.5, "GBP"),
        ("Para-Pharma", 2600, "EUR"),
        ("Retail", 4000, "USD"),
    ],
)
def test_resolution_is_deterministic_and_gap_free(
    rule_table: RuleTable, department: str, amount: object, currency: str
) -> None:
    first = resolve(rule_table, department, amount, currency)
    second = resolve(rule_table, department, amount, currency)

    assert first == second
    levels = [step.level for step in first]
    assert levels == sorted(levels)
    assert sorted(set(levels)) == list(range(1, max(levels) + 1))


def test_duplicate_rule_rows_collapse_to_one_step() -> None:
    table = RuleTable.from_yaml(
        """
rules:
  - {department: Ops, amount_min: 0, amount_max: 100, level: 1, recipient: lead@x.com}
  - {department: Ops, amount_min: 50, amount_max: 500, level: 1, recipient: LEAD@x.com}
"""
    )

    assert resolve(table, "Ops", 75, "USD") == _steps((1, "lead@x.com"))


def test_unmatched_submission_resolves_empty(rule_table: RuleTable) -> None:
    assert resolve(rule_table, "Facilities", 100, "USD") == []
    assert resolve(rule_table, "Retail", 100, "JPY") == []


@pytest.mark.parametrize("amount", [0, -5, "abc", None, float("nan"), float("inf"), True])
def test_invalid_amounts_rejected(rule_table: RuleTable, amount: object) -> None:
    with pytest.raises(ValidationError) as excinfo:
        resolve(rule_table, "HR", amount, "USD")

    assert excinfo.value.field == "amount"


@pytest.mark.parametrize(
    ("department", "currency", "field"),
    [("", "USD", "department"), ("  ", "USD", "department"), ("HR", "", "currency")],
)
def test_missing_identifiers_rejected(
    rule_table: RuleTable, department: str, currency: str, field: str
) -> None:
    with pytest.raises(ValidationError) as excinfo:
        resolve(rule_table, department, 100, currency)

    assert excinfo.value.field == field
    assert isinstance(excinfo.value, ValueError)


def test_parse_amount_keeps_decimal_digits() -> None:
    assert parse_amount(12.3) == Decimal("12.3")
    assert parse_amount("99.99") == Decimal("99.99")


def test_ensure_contiguous_rejects_empty_workflow() -> None:
    with pytest.raises(NoWorkflowConfigured) as excinfo:
        ensure_contiguous([], department="Retail", amount=100, currency="JPY")

    assert excinfo.value.department == "Retail"


def test_ensure_contiguous_rejects_level_gaps(rule_table: RuleTable) -> None:
    steps = resolve(rule_table, "Retail", 5000, "JPY")

    with pytest.raises(InvalidWorkflow) as excinfo:
        ensure_contiguous(steps, department="Retail", amount=5000, currency="JPY")

    assert excinfo.value.levels == [2]


def test_storage_backed_resolver_matches_pure_resolution(
    rule_table: RuleTable, storage: InMemoryStorage
) -> None:
    resolver = WorkflowResolver(storage)

    steps = asyncio.run(resolver.resolve("Logistics", 6000, "USD"))

    assert steps == resolve(rule_table, "Logistics", 6000, "USD")


def test_storage_backed_resolver_refuses_missing_workflow(storage: InMemoryStorage) -> None:
    resolver = WorkflowResolver(storage)

    with pytest.raises(NoWorkflowConfigured):
        asyncio.run(resolver.resolve_required("Facilities", 100, "USD"))
