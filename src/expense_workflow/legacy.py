"""Pre-workflow expenses approved by a single configured approver."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime

from .models import (
    AttachmentMeta,
    Expense,
    ExpenseStatus,
    WorkflowKind,
    new_expense_id,
)

CATEGORY_DEPARTMENTS = {
    "Travel": "Logistics",
    "Meals": "HR",
    "Software": "Retail",
    "Hardware": "Incoma",
}
DEFAULT_LEGACY_DEPARTMENT = "Para-Pharma"


def department_for_category(category: str | None) -> str:
    """Map an old expense category to the department that now owns it."""

    return CATEGORY_DEPARTMENTS.get((category or "").strip(), DEFAULT_LEGACY_DEPARTMENT)


def legacy_expense_from_payload(
    payload: Mapping[str, object], approver: str
) -> Expense:
    """Build a single-approver expense from an old flat expense record.

    Accepts the old camelCase keys (``submitterEmail``, ``submittedAt``,
    ``approvedOrDeclinedAt``) as well as snake_case ones.
    """

    def pick(*keys: str) -> object:
        for key in keys:
            if payload.get(key) not in (None, ""):
                return payload[key]
        return None

    category = pick("category")
    department = pick("department") or department_for_category(
        str(category) if category is not None else None
    )
    amount = pick("amount")
    if isinstance(amount, float):
        amount = str(amount)
    attachment = pick("attachment")
    if isinstance(attachment, Mapping):
        attachment = AttachmentMeta(
            filename=attachment.get("filename"),
            mimetype=attachment.get("mimetype"),
            path=attachment.get("path"),
            original_filename=attachment.get("originalFilename")
            or attachment.get("original_filename"),
        )

    return Expense.model_validate(
        {
            "id": pick("id") or new_expense_id(),
            "name": pick("name"),
            "amount": amount,
            "currency": pick("currency"),
            "department": department,
            "submitter": pick("submitter", "submitterEmail", "submitter_email"),
            "status": pick("status") or ExpenseStatus.PENDING,
            "submitted_at": pick("submitted_at", "submittedAt") or datetime.now(UTC),
            "decided_at": pick(
                "decided_at", "approvedOrDeclinedAt", "approved_or_declined_at"
            ),
            "current_approval_level": 1,
            "max_approval_level": 1,
            "workflow_kind": WorkflowKind.LEGACY_SINGLE_APPROVER,
            "legacy_approver": approver,
            "attachment": attachment,
        }
    )
