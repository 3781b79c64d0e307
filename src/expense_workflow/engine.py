"""Expense state machine driving submissions through their approval levels."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from enum import Enum

from pydantic import ValidationError as PydanticValidationError

from .exceptions import (
    AlreadyDecided,
    ExpenseAlreadyExists,
    ExpenseNotFound,
    ExpenseNotPending,
    NotAuthorized,
    ValidationError,
)
from .ledger import ApprovalLedger
from .legacy import legacy_expense_from_payload
from .models import (
    ApprovalRecord,
    ApprovalRecordStatus,
    AttachmentMeta,
    Decision,
    Expense,
    ExpenseStatus,
    LevelCompletion,
    TemplateKind,
    WorkflowKind,
    new_expense_id,
    normalize_identity,
)
from .notifications import NotificationDispatcher, Notifier
from .resolver import WorkflowResolver, max_level, validate_submission_inputs
from .storage import Storage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Transition(str, Enum):
    """Outcome of applying one decision to an expense."""

    WAITING = "waiting"
    ADVANCED = "advanced"
    APPROVED = "approved"
    DECLINED = "declined"


class ExpenseLocks:
    """Registry of per-expense asyncio locks, dropped once unused."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, expense_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(expense_id, asyncio.Lock())
        self._holders[expense_id] = self._holders.get(expense_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[expense_id] -= 1
            if not self._holders[expense_id]:
                del self._holders[expense_id]
                del self._locks[expense_id]


class ExpenseWorkflowEngine:
    """Submit expenses and apply approver decisions level by level."""

    def __init__(
        self,
        storage: Storage,
        notifier: Notifier | None = None,
        *,
        completion: LevelCompletion = LevelCompletion.ALL_APPROVED,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.storage = storage
        self.completion = completion
        self.clock = clock
        self.resolver = WorkflowResolver(storage)
        self.ledger = ApprovalLedger(storage, clock)
        self.dispatcher = NotificationDispatcher(notifier)
        self.locks = ExpenseLocks()

    async def submit_expense(
        self,
        department: str,
        amount: object,
        currency: str,
        submitter: str,
        attachment: AttachmentMeta | Mapping[str, object] | None = None,
        *,
        name: str | None = None,
    ) -> Expense:
        """Resolve the workflow, persist the expense and its PENDING ledger."""

        department, value, currency = validate_submission_inputs(
            department, amount, currency
        )
        if not isinstance(submitter, str) or not submitter.strip():
            raise ValidationError("Submitter is required", field="submitter")
        steps = await self.resolver.resolve_required(department, value, currency)

        try:
            expense = Expense(
                id=new_expense_id(),
                name=(name or "").strip() or f"{department} expense",
                amount=value,
                currency=currency,
                department=department,
                submitter=submitter,
                submitted_at=self.clock(),
                current_approval_level=1,
                max_approval_level=max_level(steps),
                attachment=(
                    AttachmentMeta.model_validate(attachment)
                    if attachment is not None
                    else None
                ),
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid expense submission: {exc}") from exc

        async with self.storage.transaction():
            await self.storage.save_expense(expense)
            records = await self.ledger.materialize(expense.id, steps)

        expense = expense.model_copy(update={"approvals": records})
        logger.info(
            "Submitted expense %s (%s %s %s) with %d approval level(s)",
            expense.id,
            expense.department,
            expense.amount,
            expense.currency,
            expense.max_approval_level,
        )
        await self.dispatcher.dispatch(
            expense.pending_recipients(1), TemplateKind.LEVEL_ASSIGNED, expense
        )
        return expense

    async def import_legacy_expense(
        self, payload: Mapping[str, object], approver: str
    ) -> Expense:
        """Store a pre-workflow expense decided by a single approver.

        Raises ExpenseAlreadyExists when the payload's id is already stored.
        """

        try:
            expense = legacy_expense_from_payload(payload, approver)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid legacy expense: {exc}") from exc
        async with self.locks.hold(expense.id):
            async with self.storage.transaction():
                if await self.storage.get_expense_by_id(expense.id) is not None:
                    logger.warning("Refused legacy import onto existing expense %s", expense.id)
                    raise ExpenseAlreadyExists(expense.id)
                await self.storage.save_expense(expense)
        logger.info("Imported legacy expense %s for %s", expense.id, expense.legacy_approver)
        return expense

    async def get_expense(self, expense_id: str) -> Expense:
        """Return the expense with its approval records."""

        expense = await self._load(expense_id)
        records = await self.ledger.records_for(expense_id)
        return expense.model_copy(update={"approvals": records})

    async def pending_for_approver(self, approver: str) -> list[Expense]:
        """Expenses currently waiting on this approver's decision."""

        identity = normalize_identity(approver)
        waiting: list[Expense] = []
        for expense in await self.storage.list_expenses():
            if expense.is_terminal:
                continue
            if expense.workflow_kind == WorkflowKind.LEGACY_SINGLE_APPROVER:
                if expense.legacy_approver == identity:
                    waiting.append(expense)
                continue
            records = await self.ledger.records_for(expense.id)
            expense = expense.model_copy(update={"approvals": records})
            if identity in expense.pending_recipients():
                waiting.append(expense)
        return waiting

    async def approve(self, expense_id: str, approver: str) -> Expense:
        return await self._decide(expense_id, approver, Decision.APPROVE)

    async def decline(self, expense_id: str, approver: str) -> Expense:
        return await self._decide(expense_id, approver, Decision.DECLINE)

    async def _load(self, expense_id: str) -> Expense:
        expense = await self.storage.get_expense_by_id(expense_id)
        if expense is None:
            raise ExpenseNotFound(expense_id)
        return expense

    async def _decide(
        self, expense_id: str, approver: str, decision: Decision
    ) -> Expense:
        identity = normalize_identity(approver or "")
        try:
            async with self.locks.hold(expense_id):
                async with self.storage.transaction():
                    expense = await self._load(expense_id)
                    if expense.is_terminal:
                        raise ExpenseNotPending(expense_id, expense.status.value)

                    if expense.workflow_kind == WorkflowKind.LEGACY_SINGLE_APPROVER:
                        expense, transition = self._decide_legacy(
                            expense, identity, decision
                        )
                        records: list[ApprovalRecord] = []
                    else:
                        await self.ledger.record_decision(
                            expense_id, expense.current_approval_level, identity, decision
                        )
                        records = await self.ledger.records_for(expense_id)
                        expense, transition = self._apply(
                            expense, records, identity, decision
                        )
                    await self.storage.save_expense(expense)
        except (NotAuthorized, AlreadyDecided, ExpenseNotPending) as exc:
            logger.warning("Refused %s on expense %s: %s", decision.value, expense_id, exc)
            raise

        expense = expense.model_copy(update={"approvals": records})
        logger.info(
            "Expense %s %s by %s (level %d of %d, status %s)",
            expense.id,
            transition.value,
            identity,
            expense.current_approval_level,
            expense.max_approval_level,
            expense.status.value,
        )
        await self._announce(expense, transition)
        return expense

    def _decide_legacy(
        self, expense: Expense, identity: str, decision: Decision
    ) -> tuple[Expense, Transition]:
        if identity != expense.legacy_approver:
            raise NotAuthorized(expense.id, identity, expense.current_approval_level)
        if decision == Decision.DECLINE:
            return self._finalize(expense, ExpenseStatus.DECLINED), Transition.DECLINED
        return self._finalize(expense, ExpenseStatus.APPROVED), Transition.APPROVED

    def _apply(
        self,
        expense: Expense,
        records: list[ApprovalRecord],
        actor: str,
        decision: Decision,
    ) -> tuple[Expense, Transition]:
        if decision == Decision.DECLINE:
            # One decline vetoes the expense; other pending records stay as they are.
            return self._finalize(expense, ExpenseStatus.DECLINED), Transition.DECLINED

        level = expense.current_approval_level
        at_level = [record for record in records if record.level == level]
        if not self._level_complete(at_level, actor):
            return expense, Transition.WAITING
        if level < expense.max_approval_level:
            advanced = expense.model_copy(update={"current_approval_level": level + 1})
            return advanced, Transition.ADVANCED
        return self._finalize(expense, ExpenseStatus.APPROVED), Transition.APPROVED

    def _level_complete(self, at_level: list[ApprovalRecord], actor: str) -> bool:
        if self.completion == LevelCompletion.FIRST_APPROVAL:
            return True
        settled = sum(
            1
            for record in at_level
            if record.approver == actor or record.status == ApprovalRecordStatus.APPROVED
        )
        return settled == len(at_level)

    def _finalize(self, expense: Expense, status: ExpenseStatus) -> Expense:
        return expense.model_copy(update={"status": status, "decided_at": self.clock()})

    async def _announce(self, expense: Expense, transition: Transition) -> None:
        if transition == Transition.ADVANCED:
            await self.dispatcher.dispatch(
                expense.pending_recipients(), TemplateKind.LEVEL_ASSIGNED, expense
            )
        elif transition == Transition.APPROVED:
            await self.dispatcher.dispatch(
                [expense.submitter], TemplateKind.FULLY_APPROVED, expense
            )
        elif transition == Transition.DECLINED:
            await self.dispatcher.dispatch(
                [expense.submitter], TemplateKind.DECLINED, expense
            )
