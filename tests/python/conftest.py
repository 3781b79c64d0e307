"""Test configuration for adding src to the import path."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from expense_workflow import (
    ExpenseWorkflowEngine,
    InMemoryStorage,
    LevelCompletion,
    RecordingNotifier,
    RuleTable,
    seed_rules_and_users,
)


class FixedClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture()
def rule_table() -> RuleTable:
    return RuleTable.from_file()


@pytest.fixture()
def storage(rule_table: RuleTable) -> InMemoryStorage:
    store = InMemoryStorage()
    asyncio.run(seed_rules_and_users(store, rule_table))
    return store


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def engine_factory(
    storage: InMemoryStorage, notifier: RecordingNotifier, clock: FixedClock
) -> Callable[..., ExpenseWorkflowEngine]:
    def _factory(**overrides: object) -> ExpenseWorkflowEngine:
        options: dict[str, object] = {
            "completion": LevelCompletion.ALL_APPROVED,
            "clock": clock,
        }
        options.update(overrides)
        target = options.pop("storage", storage)
        return ExpenseWorkflowEngine(
            target, options.pop("notifier", notifier), **options  # type: ignore[arg-type]
        )

    return _factory


@pytest.fixture()
def engine(engine_factory: Callable[..., ExpenseWorkflowEngine]) -> ExpenseWorkflowEngine:
    return engine_factory()
