"""Core models for approval rules, expenses and their approval ledgers."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

WILDCARD_CURRENCY = "ALL"


def normalize_identity(identity: str) -> str:
    """Normalize an approver or submitter identity (an e-mail address)."""

    return identity.strip().lower()


def new_expense_id() -> str:
    return f"exp-{uuid4().hex}"


class ExpenseStatus(str, Enum):
    """Overall status of an expense."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class ApprovalRecordStatus(str, Enum):
    """Status of a single approver's decision at one level."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class Decision(str, Enum):
    """Decision an approver can submit."""

    APPROVE = "approve"
    DECLINE = "decline"


class TemplateKind(str, Enum):
    """Notification templates sent on workflow transitions."""

    LEVEL_ASSIGNED = "level_assigned"
    FULLY_APPROVED = "fully_approved"
    DECLINED = "declined"


class UserRole(str, Enum):
    """Roles known to the expense system."""

    ADMIN = "ADMIN"
    SUBMITTER = "SUBMITTER"
    APPROVER = "APPROVER"


class WorkflowKind(str, Enum):
    """How an expense is routed to its approvers."""

    MULTI_LEVEL = "multi_level"
    LEGACY_SINGLE_APPROVER = "legacy_single_approver"


class LevelCompletion(str, Enum):
    """Policy deciding when an approval level is complete."""

    ALL_APPROVED = "all_approved"
    FIRST_APPROVAL = "first_approval"


class ApprovalRule(BaseModel):
    """Single row of the approval rule table."""

    department: str = Field(..., min_length=1, description="Department the rule applies to")
    amount_min: Annotated[Decimal, Field(ge=0)] = Field(
        ..., description="Lower bound of the amount range (inclusive)"
    )
    amount_max: Annotated[Decimal, Field(ge=0)] = Field(
        ..., description="Upper bound of the amount range (inclusive)"
    )
    currency: str = Field(
        default=WILDCARD_CURRENCY,
        min_length=1,
        description="Currency code or 'ALL' to match any currency",
    )
    level: int = Field(..., ge=1, description="Approval level the recipient decides")
    recipient: str = Field(..., min_length=1, description="Approver identity")

    model_config = ConfigDict(frozen=True)

    @field_validator("amount_min", "amount_max", mode="before")
    @classmethod
    def _float_as_text(cls, value: object) -> object:
        # YAML loads 1000.01 as a float; keep its written digits.
        if isinstance(value, float):
            return str(value)
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("recipient")
    @classmethod
    def _normalize_recipient(cls, value: str) -> str:
        return normalize_identity(value)

    @model_validator(mode="after")
    def _validate_range(self) -> ApprovalRule:
        if self.amount_min > self.amount_max:
            msg = "amount_min must be less than or equal to amount_max"
            raise ValueError(msg)
        return self

    def matches(self, department: str, amount: Decimal, currency: str) -> bool:
        """Return True when the rule applies to the department, amount and currency."""

        if self.department != department:
            return False
        if not self.amount_min <= amount <= self.amount_max:
            return False
        return self.currency in (currency.upper(), WILDCARD_CURRENCY)


class ResolvedWorkflowStep(BaseModel):
    """One (level, recipient) pair of a resolved workflow."""

    level: int = Field(..., ge=1)
    recipient: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)

    def sort_key(self) -> tuple[int, str]:
        return (self.level, self.recipient)


class ApprovalRecord(BaseModel):
    """Decision slot for one approver at one level of an expense."""

    id: str = Field(..., description="Unique record identifier")
    expense_id: str = Field(..., description="Owning expense")
    level: int = Field(..., ge=1)
    approver: str = Field(..., description="Identity allowed to decide this record")
    status: ApprovalRecordStatus = Field(default=ApprovalRecordStatus.PENDING)
    decided_at: datetime | None = Field(
        default=None, description="Set when the record is approved"
    )

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalRecordStatus.PENDING


class AttachmentMeta(BaseModel):
    """Metadata of a stored receipt attachment."""

    filename: str = Field(..., description="Name of the file on the server")
    mimetype: str = Field(..., description="Content type of the upload")
    path: str = Field(..., description="Server path to the stored file")
    original_filename: str | None = Field(
        default=None, description="Name of the file as uploaded"
    )


class Expense(BaseModel):
    """An expense submission moving through its approval levels."""

    id: str = Field(..., description="Unique expense identifier")
    name: str = Field(..., min_length=1, description="Short description")
    amount: Annotated[Decimal, Field(gt=0)] = Field(..., description="Amount claimed")
    currency: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    submitter: str = Field(..., min_length=1, description="Submitter identity")
    status: ExpenseStatus = Field(default=ExpenseStatus.PENDING)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    decided_at: datetime | None = Field(default=None)
    current_approval_level: int = Field(default=1, ge=1)
    max_approval_level: int = Field(default=1, ge=1)
    workflow_kind: WorkflowKind = Field(default=WorkflowKind.MULTI_LEVEL)
    legacy_approver: str | None = Field(
        default=None,
        description="Single approver of a pre-workflow expense",
    )
    attachment: AttachmentMeta | None = Field(default=None)
    approvals: list[ApprovalRecord] = Field(
        default_factory=list, description="Ledger ordered by level then approver"
    )

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("submitter", "legacy_approver")
    @classmethod
    def _normalize_identities(cls, value: str | None) -> str | None:
        return normalize_identity(value) if value is not None else None

    @model_validator(mode="after")
    def _validate_levels(self) -> Expense:
        if self.current_approval_level > self.max_approval_level:
            msg = "current_approval_level cannot exceed max_approval_level"
            raise ValueError(msg)
        if (
            self.workflow_kind == WorkflowKind.LEGACY_SINGLE_APPROVER
            and not self.legacy_approver
        ):
            msg = "Legacy single-approver expenses require legacy_approver"
            raise ValueError(msg)
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status != ExpenseStatus.PENDING

    def records_at_level(self, level: int) -> list[ApprovalRecord]:
        """Return the ledger records belonging to a level."""

        return [record for record in self.approvals if record.level == level]

    def pending_recipients(self, level: int | None = None) -> list[str]:
        """Approvers still expected to decide at a level (default: current)."""

        target = self.current_approval_level if level is None else level
        return [
            record.approver
            for record in self.records_at_level(target)
            if record.is_pending
        ]


class User(BaseModel):
    """User identity known to the expense system."""

    email: str = Field(..., min_length=1)
    role: UserRole = Field(default=UserRole.SUBMITTER)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_identity(value)
