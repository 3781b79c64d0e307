"""Typed failures raised by the approval workflow."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every failure surfaced by the workflow engine."""


class ValidationError(WorkflowError, ValueError):
    """Submission input was rejected before resolution."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NoWorkflowConfigured(WorkflowError):
    """No approval rule matched the submission."""

    def __init__(self, department: str, amount: object, currency: str) -> None:
        super().__init__(
            f"No approvers configured for department '{department}',"
            f" amount {amount} {currency}"
        )
        self.department = department
        self.amount = amount
        self.currency = currency


class InvalidWorkflow(WorkflowError):
    """Resolved levels do not form a gap-free 1..N sequence."""

    def __init__(self, levels: list[int]) -> None:
        super().__init__(
            f"Resolved approval levels {levels} must be contiguous starting at 1"
        )
        self.levels = levels


class ExpenseNotFound(WorkflowError):
    """No expense exists with the given identifier."""

    def __init__(self, expense_id: str) -> None:
        super().__init__(f"Expense '{expense_id}' not found")
        self.expense_id = expense_id


class NotAuthorized(WorkflowError):
    """Actor has no matching approval record at the required level."""

    def __init__(self, expense_id: str, approver: str, level: int) -> None:
        super().__init__(
            f"'{approver}' is not an approver of expense '{expense_id}'"
            f" at level {level}"
        )
        self.expense_id = expense_id
        self.approver = approver
        self.level = level


class ExpenseAlreadyExists(WorkflowError):
    """An expense with the same id is already stored."""

    def __init__(self, expense_id: str) -> None:
        super().__init__(f"Expense '{expense_id}' already exists")
        self.expense_id = expense_id


class ExpenseNotPending(WorkflowError):
    """Expense already reached a terminal status."""

    def __init__(self, expense_id: str, status: str) -> None:
        super().__init__(f"Expense '{expense_id}' is not pending approval ({status})")
        self.expense_id = expense_id
        self.status = status


class AlreadyDecided(WorkflowError):
    """The approval record was already approved or declined."""

    def __init__(self, expense_id: str, approver: str, level: int, status: str) -> None:
        super().__init__(
            f"'{approver}' already decided expense '{expense_id}'"
            f" at level {level} ({status})"
        )
        self.expense_id = expense_id
        self.approver = approver
        self.level = level
        self.status = status


class StorageError(WorkflowError):
    """Underlying persistence failure."""
