"""Storage boundary used by the workflow engine and an in-memory implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from contextvars import ContextVar
from decimal import Decimal
from typing import Protocol

from .exceptions import StorageError
from .models import ApprovalRecord, ApprovalRule, Expense, User, normalize_identity

logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Asynchronous row store consumed by the workflow engine."""

    async def get_expense_by_id(self, expense_id: str) -> Expense | None: ...

    async def save_expense(self, expense: Expense) -> Expense: ...

    async def list_expenses(self) -> list[Expense]: ...

    async def list_approval_records_for_expense(
        self, expense_id: str
    ) -> list[ApprovalRecord]: ...

    async def insert_approval_records(
        self, records: Sequence[ApprovalRecord]
    ) -> list[ApprovalRecord]: ...

    async def update_approval_record(self, record: ApprovalRecord) -> ApprovalRecord: ...

    async def query_rules_by_department_amount_currency(
        self, department: str, amount: Decimal, currency: str
    ) -> list[ApprovalRule]: ...

    async def replace_rules(self, rules: Iterable[ApprovalRule]) -> int: ...

    async def list_rules(self) -> list[ApprovalRule]: ...

    async def list_users(self) -> list[User]: ...

    async def get_user_by_email(self, email: str) -> User | None: ...

    async def insert_user(self, user: User) -> User: ...

    def transaction(self) -> AbstractAsyncContextManager[None]: ...


_journal: ContextVar[list[Callable[[], None]] | None] = ContextVar(
    "expense_workflow_storage_journal", default=None
)


class InMemoryStorage:
    """Dict-backed storage with per-task undo journals for transactions."""

    def __init__(self) -> None:
        self._expenses: dict[str, Expense] = {}
        self._records: dict[str, ApprovalRecord] = {}
        self._rules: list[ApprovalRule] = []
        self._users: dict[str, User] = {}

    async def _suspend(self) -> None:
        await asyncio.sleep(0)

    def _remember(self, undo: Callable[[], None]) -> None:
        journal = _journal.get()
        if journal is not None:
            journal.append(undo)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Undo this task's writes when the block raises."""

        if _journal.get() is not None:
            yield
            return

        journal: list[Callable[[], None]] = []
        token = _journal.set(journal)
        try:
            yield
        except BaseException:
            for undo in reversed(journal):
                undo()
            logger.warning("Rolled back %d storage write(s)", len(journal))
            raise
        finally:
            _journal.reset(token)

    async def get_expense_by_id(self, expense_id: str) -> Expense | None:
        await self._suspend()
        expense = self._expenses.get(expense_id)
        return expense.model_copy(deep=True) if expense is not None else None

    async def save_expense(self, expense: Expense) -> Expense:
        await self._suspend()
        previous = self._expenses.get(expense.id)

        def _undo() -> None:
            if previous is None:
                self._expenses.pop(expense.id, None)
            else:
                self._expenses[expense.id] = previous

        self._remember(_undo)
        self._expenses[expense.id] = expense.model_copy(
            update={"approvals": []}, deep=True
        )
        return expense

    async def list_expenses(self) -> list[Expense]:
        await self._suspend()
        ordered = sorted(
            self._expenses.values(), key=lambda item: item.submitted_at, reverse=True
        )
        return [expense.model_copy(deep=True) for expense in ordered]

    async def list_approval_records_for_expense(
        self, expense_id: str
    ) -> list[ApprovalRecord]:
        await self._suspend()
        records = [
            record for record in self._records.values() if record.expense_id == expense_id
        ]
        records.sort(key=lambda record: (record.level, record.approver))
        return [record.model_copy() for record in records]

    async def insert_approval_records(
        self, records: Sequence[ApprovalRecord]
    ) -> list[ApprovalRecord]:
        await self._suspend()
        ids = [record.id for record in records]
        duplicates = [record_id for record_id in ids if record_id in self._records]
        if duplicates or len(set(ids)) != len(ids):
            raise StorageError(f"Duplicate approval record id(s): {sorted(set(duplicates))}")

        def _undo() -> None:
            for record_id in ids:
                self._records.pop(record_id, None)

        self._remember(_undo)
        for record in records:
            self._records[record.id] = record.model_copy()
        return list(records)

    async def update_approval_record(self, record: ApprovalRecord) -> ApprovalRecord:
        await self._suspend()
        previous = self._records.get(record.id)
        if previous is None:
            raise StorageError(f"Approval record '{record.id}' does not exist")

        def _undo() -> None:
            self._records[record.id] = previous

        self._remember(_undo)
        self._records[record.id] = record.model_copy()
        return record

    async def query_rules_by_department_amount_currency(
        self, department: str, amount: Decimal, currency: str
    ) -> list[ApprovalRule]:
        await self._suspend()
        return [rule for rule in self._rules if rule.matches(department, amount, currency)]

    async def replace_rules(self, rules: Iterable[ApprovalRule]) -> int:
        await self._suspend()
        previous = self._rules

        def _undo() -> None:
            self._rules = previous

        self._remember(_undo)
        self._rules = list(rules)
        return len(self._rules)

    async def list_rules(self) -> list[ApprovalRule]:
        await self._suspend()
        return list(self._rules)

    async def list_users(self) -> list[User]:
        await self._suspend()
        return [user.model_copy() for user in self._users.values()]

    async def get_user_by_email(self, email: str) -> User | None:
        await self._suspend()
        user = self._users.get(normalize_identity(email))
        return user.model_copy() if user is not None else None

    async def insert_user(self, user: User) -> User:
        await self._suspend()
        if user.email in self._users:
            raise StorageError(f"User '{user.email}' already exists")

        def _undo() -> None:
            self._users.pop(user.email, None)

        self._remember(_undo)
        self._users[user.email] = user.model_copy()
        return user
