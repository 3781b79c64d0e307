"""Workflow resolution: department, amount and currency to approval steps."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal, InvalidOperation

from .exceptions import InvalidWorkflow, NoWorkflowConfigured, ValidationError
from .models import ApprovalRule, ResolvedWorkflowStep
from .rules import RuleTable
from .storage import Storage


def parse_amount(amount: object) -> Decimal:
    """Coerce a submitted amount to a finite, positive Decimal."""

    if isinstance(amount, bool):
        raise ValidationError("Amount must be a number", field="amount")
    if isinstance(amount, float):
        amount = str(amount)
    try:
        value = Decimal(amount) if not isinstance(amount, Decimal) else amount
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError("Amount must be a number", field="amount") from exc
    if not value.is_finite():
        raise ValidationError("Amount must be a finite number", field="amount")
    if value <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    return value


def _require_identifier(value: object, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field.capitalize()} is required", field=field)
    return value.strip()


def validate_submission_inputs(
    department: object, amount: object, currency: object
) -> tuple[str, Decimal, str]:
    """Validate and normalize the resolution inputs."""

    return (
        _require_identifier(department, "department"),
        parse_amount(amount),
        _require_identifier(currency, "currency").upper(),
    )


def steps_from_rules(rules: Iterable[ApprovalRule]) -> list[ResolvedWorkflowStep]:
    """Project rule rows to unique steps sorted by level, then recipient."""

    unique = {
        (rule.level, rule.recipient): ResolvedWorkflowStep(
            level=rule.level, recipient=rule.recipient
        )
        for rule in rules
    }
    return sorted(unique.values(), key=ResolvedWorkflowStep.sort_key)


def resolve(
    rules: RuleTable, department: str, amount: object, currency: str
) -> list[ResolvedWorkflowStep]:
    """Resolve the ordered approval steps for a submission.

    Pure over the given rule table. An empty list means no approvers are
    configured; callers decide how to refuse it.
    """

    department, value, currency = validate_submission_inputs(
        department, amount, currency
    )
    return steps_from_rules(rules.matching(department, value, currency))


def max_level(steps: Sequence[ResolvedWorkflowStep]) -> int:
    return max(step.level for step in steps)


def ensure_contiguous(
    steps: Sequence[ResolvedWorkflowStep],
    *,
    department: str,
    amount: object,
    currency: str,
) -> list[ResolvedWorkflowStep]:
    """Require a non-empty workflow whose levels are exactly 1..max."""

    if not steps:
        raise NoWorkflowConfigured(department, amount, currency)
    levels = sorted({step.level for step in steps})
    if levels != list(range(1, levels[-1] + 1)):
        raise InvalidWorkflow(levels)
    return list(steps)


class WorkflowResolver:
    """Resolve workflows through the storage rule query."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    async def resolve(
        self, department: str, amount: object, currency: str
    ) -> list[ResolvedWorkflowStep]:
        department, value, currency = validate_submission_inputs(
            department, amount, currency
        )
        rules = await self.storage.query_rules_by_department_amount_currency(
            department, value, currency
        )
        return steps_from_rules(rules)

    async def resolve_required(
        self, department: str, amount: object, currency: str
    ) -> list[ResolvedWorkflowStep]:
        """Resolve and refuse empty or gapped workflows."""

        steps = await self.resolve(department, amount, currency)
        return ensure_contiguous(
            steps, department=department, amount=amount, currency=currency
        )
