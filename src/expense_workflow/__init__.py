"""Expense Approval Workflow - multi-level approval routing for expense submissions."""

from .bootstrap import BootstrapReport, seed_rules_and_users
from .engine import ExpenseLocks, ExpenseWorkflowEngine, Transition
from .exceptions import (
    AlreadyDecided,
    ExpenseAlreadyExists,
    ExpenseNotFound,
    ExpenseNotPending,
    InvalidWorkflow,
    NotAuthorized,
    NoWorkflowConfigured,
    StorageError,
    ValidationError,
    WorkflowError,
)
from .ledger import ApprovalLedger
from .legacy import department_for_category, legacy_expense_from_payload
from .models import (
    ApprovalRecord,
    ApprovalRecordStatus,
    ApprovalRule,
    AttachmentMeta,
    Decision,
    Expense,
    ExpenseStatus,
    LevelCompletion,
    ResolvedWorkflowStep,
    TemplateKind,
    User,
    UserRole,
    WorkflowKind,
)
from .notifications import (
    LoggingNotifier,
    NotificationDispatcher,
    NotificationMessage,
    Notifier,
    RecordingNotifier,
    render_notification,
)
from .resolver import WorkflowResolver, ensure_contiguous, resolve
from .rules import CoverageGap, RuleTable
from .settings import WorkflowSettings, build_engine
from .storage import InMemoryStorage, Storage

__all__ = [
    "AlreadyDecided",
    "ApprovalLedger",
    "ApprovalRecord",
    "ApprovalRecordStatus",
    "ApprovalRule",
    "AttachmentMeta",
    "BootstrapReport",
    "CoverageGap",
    "Decision",
    "Expense",
    "ExpenseLocks",
    "ExpenseAlreadyExists",
    "ExpenseNotFound",
    "ExpenseNotPending",
    "ExpenseStatus",
    "ExpenseWorkflowEngine",
    "InMemoryStorage",
    "InvalidWorkflow",
    "LevelCompletion",
    "LoggingNotifier",
    "NoWorkflowConfigured",
    "NotAuthorized",
    "NotificationDispatcher",
    "NotificationMessage",
    "Notifier",
    "RecordingNotifier",
    "ResolvedWorkflowStep",
    "RuleTable",
    "Storage",
    "StorageError",
    "TemplateKind",
    "Transition",
    "User",
    "UserRole",
    "ValidationError",
    "WorkflowError",
    "WorkflowKind",
    "WorkflowResolver",
    "WorkflowSettings",
    "build_engine",
    "department_for_category",
    "ensure_contiguous",
    "legacy_expense_from_payload",
    "render_notification",
    "resolve",
    "seed_rules_and_users",
    "__version__",
]
__version__ = "0.1.0"
