"""Notification templates and fire-and-forget dispatch."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from .models import Expense, TemplateKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    """Rendered notification ready for delivery."""

    recipient: str
    kind: TemplateKind
    subject: str
    body: str
    expense_id: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))


_SUBJECTS = {
    TemplateKind.LEVEL_ASSIGNED: "New Expense Submitted for Your Approval",
    TemplateKind.FULLY_APPROVED: "Your Expense Has Been Approved",
    TemplateKind.DECLINED: "Your Expense Has Been Declined",
}


def _amount_line(expense: Expense) -> str:
    return f"Amount: {expense.currency} {expense.amount:.2f}"


def render_notification(
    kind: TemplateKind, expense: Expense, recipient: str = ""
) -> NotificationMessage:
    """Render the fixed template for a workflow event."""

    if kind == TemplateKind.LEVEL_ASSIGNED:
        lines = [
            f"A new expense has been submitted by {expense.submitter}:",
            f"Name: {expense.name}",
            _amount_line(expense),
            f"Department: {expense.department}",
            (
                f"Approval level: {expense.current_approval_level}"
                f" of {expense.max_approval_level}"
            ),
            "Please log in to review.",
        ]
    else:
        lines = [
            f"Your expense submission has been {expense.status.value.lower()}:",
            f"Name: {expense.name}",
            _amount_line(expense),
            f"Status: {expense.status.value}",
        ]
    return NotificationMessage(
        recipient=recipient,
        kind=kind,
        subject=_SUBJECTS[kind],
        body="\n".join(lines),
        expense_id=expense.id,
    )


class Notifier(Protocol):
    """Delivery channel for workflow notifications."""

    async def notify(self, recipient: str, kind: TemplateKind, expense: Expense) -> None: ...


class LoggingNotifier:
    """Mock e-mail delivery that writes each message to the log."""

    async def notify(self, recipient: str, kind: TemplateKind, expense: Expense) -> None:
        message = render_notification(kind, expense, recipient)
        logger.info(
            "Sending email (mock) to %s | %s\n%s",
            message.recipient,
            message.subject,
            message.body,
        )


@dataclass
class RecordingNotifier:
    """In-memory notifier keeping every rendered message."""

    messages: list[NotificationMessage] = field(default_factory=list)

    async def notify(self, recipient: str, kind: TemplateKind, expense: Expense) -> None:
        self.messages.append(render_notification(kind, expense, recipient))

    def sent_to(self, recipient: str) -> list[NotificationMessage]:
        return [message for message in self.messages if message.recipient == recipient]

    def kinds(self) -> list[TemplateKind]:
        return [message.kind for message in self.messages]


class NotificationDispatcher:
    """Fan notifications out to recipients; delivery failures never propagate."""

    def __init__(self, notifier: Notifier | None = None) -> None:
        self.notifier = notifier or LoggingNotifier()

    async def dispatch(
        self, recipients: Iterable[str], kind: TemplateKind, expense: Expense
    ) -> int:
        """Send to each recipient and return the number delivered."""

        delivered = 0
        for recipient in recipients:
            try:
                await self.notifier.notify(recipient, kind, expense)
            except Exception:
                logger.exception(
                    "Failed to send %s notification for expense %s to %s",
                    kind.value,
                    expense.id,
                    recipient,
                )
                continue
            delivered += 1
        return delivered
