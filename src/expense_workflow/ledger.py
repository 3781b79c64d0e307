"""Per-expense approval records."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from uuid import uuid4

from .exceptions import AlreadyDecided, NotAuthorized
from .models import (
    ApprovalRecord,
    ApprovalRecordStatus,
    Decision,
    ResolvedWorkflowStep,
    normalize_identity,
)
from .storage import Storage

logger = logging.getLogger(__name__)

_DECISION_STATUS = {
    Decision.APPROVE: ApprovalRecordStatus.APPROVED,
    Decision.DECLINE: ApprovalRecordStatus.DECLINED,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def new_record_id() -> str:
    return f"apr-{uuid4().hex}"


class ApprovalLedger:
    """Create and decide the approval records of expenses."""

    def __init__(
        self, storage: Storage, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self.storage = storage
        self.clock = clock

    async def materialize(
        self, expense_id: str, steps: Sequence[ResolvedWorkflowStep]
    ) -> list[ApprovalRecord]:
        """Insert one PENDING record per resolved step."""

        records = [
            ApprovalRecord(
                id=new_record_id(),
                expense_id=expense_id,
                level=step.level,
                approver=step.recipient,
            )
            for step in steps
        ]
        await self.storage.insert_approval_records(records)
        return records

    async def records_for(self, expense_id: str) -> list[ApprovalRecord]:
        return await self.storage.list_approval_records_for_expense(expense_id)

    async def record_decision(
        self,
        expense_id: str,
        level: int,
        approver: str,
        decision: Decision,
    ) -> ApprovalRecord:
        """Apply a decision to the approver's record at the given level.

        Raises AlreadyDecided when the record is no longer pending, or when the
        approver has no record at that level but decided an earlier one.
        Raises NotAuthorized otherwise when the approver has no record there.
        """

        identity = normalize_identity(approver)
        records = await self.storage.list_approval_records_for_expense(expense_id)
        record = next(
            (
                candidate
                for candidate in records
                if candidate.level == level and candidate.approver == identity
            ),
            None,
        )
        if record is None:
            earlier = [
                candidate
                for candidate in records
                if candidate.approver == identity
                and candidate.level < level
                and not candidate.is_pending
            ]
            if earlier:
                decided = earlier[-1]
                raise AlreadyDecided(
                    expense_id, identity, decided.level, decided.status.value
                )
            raise NotAuthorized(expense_id, identity, level)
        if not record.is_pending:
            raise AlreadyDecided(expense_id, identity, level, record.status.value)

        status = _DECISION_STATUS[decision]
        updated = record.model_copy(
            update={
                "status": status,
                # Declines are not timestamped on the record.
                "decided_at": self.clock() if status == ApprovalRecordStatus.APPROVED else None,
            }
        )
        await self.storage.update_approval_record(updated)
        logger.debug(
            "Recorded %s by %s on expense %s level %d",
            status.value,
            identity,
            expense_id,
            level,
        )
        return updated
