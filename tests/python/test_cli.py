from __future__ import annotations

import json
from pathlib import Path

import pytest

from expense_workflow.cli import main

GAPPED_RULES = """
rules:
  - {department: Ops, amount_min: 0.01, amount_max: 500, level: 1, recipient: lead@x.com}
  - {department: Ops, amount_min: 900, amount_max: 5000, level: 1, recipient: head@x.com}
"""


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "EXPENSE_WORKFLOW_RULES_FILE",
        "EXPENSE_WORKFLOW_LEVEL_COMPLETION",
        "EXPENSE_WORKFLOW_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def _write_rules(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_cli_resolve_prints_steps(capsys) -> None:
    exit_code = main(["resolve", "Logistics", "6000", "USD"])

    assert exit_code == 0
    steps = json.loads(capsys.readouterr().out)
    assert [step["level"] for step in steps] == [1, 2, 3]
    assert steps[0]["recipient"] == "logistics.manager@company.com"


def test_cli_resolve_without_rules_returns_error(capsys) -> None:
    exit_code = main(["resolve", "Facilities", "100", "USD"])

    assert exit_code == 1
    assert "No approvers configured" in capsys.readouterr().err


def test_cli_resolve_invalid_amount_returns_error(capsys) -> None:
    exit_code = main(["resolve", "HR", "-3", "USD"])

    assert exit_code == 1
    assert "greater than zero" in capsys.readouterr().err


def test_cli_check_rules_clean_table(capsys) -> None:
    exit_code = main(["check-rules"])

    assert exit_code == 0
    assert "no coverage gaps" in capsys.readouterr().out


def test_cli_check_rules_reports_gaps(tmp_path, capsys) -> None:
    rules_path = _write_rules(tmp_path / "rules.yaml", GAPPED_RULES)

    exit_code = main(["check-rules", "--rules", str(rules_path)])

    assert exit_code == 1
    assert "between 500 and 900" in capsys.readouterr().out


def test_cli_recipients_reads_rules_file_from_environment(
    tmp_path, capsys, monkeypatch: pytest.MonkeyPatch
) -> None:
    rules_path = _write_rules(tmp_path / "rules.yaml", GAPPED_RULES)
    monkeypatch.setenv("EXPENSE_WORKFLOW_RULES_FILE", str(rules_path))

    exit_code = main(["recipients"])

    assert exit_code == 0
    assert capsys.readouterr().out.split() == ["lead@x.com", "head@x.com"]


def test_cli_missing_rules_file_returns_error(tmp_path, capsys) -> None:
    exit_code = main(["recipients", "--rules", str(tmp_path / "missing.yaml")])

    assert exit_code == 1
    assert "Error:" in capsys.readouterr().err


def test_cli_invalid_rule_returns_error(tmp_path, capsys) -> None:
    rules_path = _write_rules(
        tmp_path / "rules.yaml",
        "rules:\n  - {department: Ops, amount_min: 10, amount_max: 1, level: 1, recipient: a@x.com}\n",
    )

    exit_code = main(["check-rules", "--rules", str(rules_path)])

    assert exit_code == 1
    assert "failed validation" in capsys.readouterr().err
