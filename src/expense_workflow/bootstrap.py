"""Start-up seeding of the rule table and approver accounts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .models import User, UserRole
from .rules import RuleTable
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class BootstrapReport:
    """Summary of one seeding run."""

    rules_seeded: int = 0
    users_created: list[str] = field(default_factory=list)
    users_existing: list[str] = field(default_factory=list)


async def seed_rules_and_users(storage: Storage, rules: RuleTable) -> BootstrapReport:
    """Replace the stored rule table and ensure every recipient has an account.

    Safe to run repeatedly: the rule table is replaced rather than appended
    to, and existing users keep their current role.
    """

    report = BootstrapReport()
    async with storage.transaction():
        report.rules_seeded = await storage.replace_rules(rules.rules)
        for recipient in rules.recipients():
            if await storage.get_user_by_email(recipient) is not None:
                report.users_existing.append(recipient)
                continue
            await storage.insert_user(User(email=recipient, role=UserRole.APPROVER))
            report.users_created.append(recipient)

    logger.info(
        "Seeded %d approval rule(s); created %d approver(s), %d already present",
        report.rules_seeded,
        len(report.users_created),
        len(report.users_existing),
    )
    return report
