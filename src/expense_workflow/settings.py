"""Runtime settings and engine assembly."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .bootstrap import seed_rules_and_users
from .engine import ExpenseWorkflowEngine
from .models import LevelCompletion
from .notifications import Notifier
from .rules import RuleTable
from .storage import InMemoryStorage, Storage

RULES_FILE_ENV = "EXPENSE_WORKFLOW_RULES_FILE"
LEVEL_COMPLETION_ENV = "EXPENSE_WORKFLOW_LEVEL_COMPLETION"
LOG_LEVEL_ENV = "EXPENSE_WORKFLOW_LOG_LEVEL"


class WorkflowSettings(BaseModel):
    """Settings for assembling an expense workflow engine."""

    rules_file: Path | None = Field(
        default=None, description="YAML rule table; packaged default when unset"
    )
    level_completion: LevelCompletion = Field(
        default=LevelCompletion.ALL_APPROVED,
        description="When an approval level counts as complete",
    )
    log_level: str = Field(default="INFO", description="Logging level name")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        name = value.strip().upper()
        if not isinstance(logging.getLevelName(name), int):
            msg = f"Unknown log level '{value}'"
            raise ValueError(msg)
        return name

    @classmethod
    def from_environment(
        cls, environ: Mapping[str, str] | None = None
    ) -> WorkflowSettings:
        """Read settings from environment variables."""

        env = os.environ if environ is None else environ
        data: dict[str, object] = {}
        if env.get(RULES_FILE_ENV):
            data["rules_file"] = env[RULES_FILE_ENV]
        if env.get(LEVEL_COMPLETION_ENV):
            data["level_completion"] = env[LEVEL_COMPLETION_ENV].strip().lower()
        if env.get(LOG_LEVEL_ENV):
            data["log_level"] = env[LOG_LEVEL_ENV]
        return cls.model_validate(data)

    def load_rules(self) -> RuleTable:
        return RuleTable.from_file(self.rules_file)


async def build_engine(
    settings: WorkflowSettings | None = None,
    *,
    storage: Storage | None = None,
    notifier: Notifier | None = None,
) -> ExpenseWorkflowEngine:
    """Seed storage from the configured rule table and return an engine."""

    settings = settings or WorkflowSettings.from_environment()
    target = storage if storage is not None else InMemoryStorage()
    await seed_rules_and_users(target, settings.load_rules())
    return ExpenseWorkflowEngine(
        target, notifier, completion=settings.level_completion
    )
