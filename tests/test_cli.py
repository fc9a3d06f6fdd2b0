import sqlite3
from pathlib import Path

import pytest

import budget_periods.db as db
from budget_periods import __version__
from budget_periods.cli import main


def make_config(tmp_path: Path, start_day: int = 1) -> str:
    path = tmp_path / "budget_periods_config.toml"
    path.write_text(
        f"""
[budget]
start_day = {start_day}
currency = "EUR"

[user]
uid = "alice"

[database]
engine = "sqlite"
path = "db/budget.sqlite"
""",
        encoding="utf-8",
    )
    return str(path)


def run(capsys, config: str, today: str, *argv: str) -> str:
    capsys.readouterr()
    main(["--config", config, "--today", today, *argv])
    return capsys.readouterr().out


def test_version_flag(capsys):
    main(["--version"])
    assert __version__ in capsys.readouterr().out


def test_missing_subcommand_is_an_error(tmp_path):
    with pytest.raises(SystemExit):
        main(["--config", make_config(tmp_path), "expenses"])


def test_status_reports_missing_marker(tmp_path, capsys):
    out = run(capsys, make_config(tmp_path), "2024-06-03", "status")

    assert "Current period:        2024-06" in out
    assert "Marker state:          missing" in out
    assert "Rollover pending:      yes" in out


def test_full_rollover_cycle(tmp_path, capsys):
    config = make_config(tmp_path)

    run(capsys, config, "2024-05-02", "continue")
    run(
        capsys, config, "2024-05-02",
        "expenses", "add", "--category", "Food", "--amount", "12.50",
    )
    out = run(
        capsys, config, "2024-05-20",
        "expenses", "add", "--category", "Rent", "--amount", "800",
        "--note", "May rent",
    )
    assert "Expense logged: 800.00 EUR on Rent" in out

    out = run(capsys, config, "2024-06-03", "status")
    assert "Marker state:          stale" in out

    out = run(capsys, config, "2024-06-03", "archive")
    assert "Archived period 2024-05: 2 expenses, total 812.50" in out
    assert "Current period: 2024-06" in out

    out = run(capsys, config, "2024-06-03", "expenses", "list", "--all")
    assert "No expenses found." in out

    out = run(capsys, config, "2024-06-03", "archives", "list")
    assert out.startswith("2024-05")

    out = run(capsys, config, "2024-06-03", "archives", "show", "2024-05")
    assert "May rent" in out
    assert "Total amount: 812.50" in out

    out = run(capsys, config, "2024-06-03", "archive")
    assert "Nothing archived: current period already acknowledged." in out


def test_check_with_choice_continue(tmp_path, capsys):
    config = make_config(tmp_path)
    run(capsys, config, "2024-05-02", "continue")

    out = run(capsys, config, "2024-06-03", "check", "--choice", "continue")
    assert "New Budget Period Detected" in out
    assert "Prompt closed." in out

    out = run(capsys, config, "2024-06-03", "check")
    assert "No new budget period. Nothing to do." in out


def test_expenses_import_and_list(tmp_path, capsys):
    config = make_config(tmp_path)
    csv_path = tmp_path / "expenses.csv"
    csv_path.write_text(
        "date,category,amount,note\n"
        "2024-06-01,Food,3.20,Coffee\n"
        "2024-05-28,Food,7.00,\n",
        encoding="utf-8",
    )
    run(capsys, config, "2024-06-03", "categories", "add", "Food", "--planned", "250")

    out = run(capsys, config, "2024-06-03", "expenses", "import", str(csv_path))
    assert "Imported 2 expenses." in out

    out = run(capsys, config, "2024-06-03", "expenses", "list")
    assert "Applied period: 2024-06" in out
    assert "Coffee" in out
    assert "Total expenses: 1 | Total amount: 3.20" in out


def test_invalid_amount_is_reported_as_usage_error(tmp_path, capsys):
    config = make_config(tmp_path)
    with pytest.raises(SystemExit) as excinfo:
        main(
            [
                "--config", config, "--today", "2024-06-03",
                "expenses", "add", "--category", "Food", "--amount", "-3",
            ]
        )
    assert excinfo.value.code == 2


def test_expense_dated_in_archived_period_is_rejected(tmp_path, capsys):
    config = make_config(tmp_path)
    run(capsys, config, "2024-05-02", "continue")
    run(capsys, config, "2024-06-03", "archive")

    with pytest.raises(SystemExit) as excinfo:
        run(
            capsys, config, "2024-06-03",
            "expenses", "add", "--category", "Food", "--amount", "5",
            "--date", "2024-05-20",
        )
    assert excinfo.value.code == 2
    assert "already archived" in capsys.readouterr().err

    csv_path = tmp_path / "late.csv"
    csv_path.write_text(
        "date,category,amount\n2024-06-01,Food,1\n2024-05-20,Food,2\n",
        encoding="utf-8",
    )
    with pytest.raises(SystemExit) as excinfo:
        run(capsys, config, "2024-06-03", "expenses", "import", str(csv_path))
    assert excinfo.value.code == 2
    assert "Line 3" in capsys.readouterr().err

    out = run(capsys, config, "2024-06-03", "expenses", "list", "--all")
    assert "No expenses found." in out


def test_import_with_missing_columns_is_a_usage_error(tmp_path, capsys):
    config = make_config(tmp_path)
    csv_path = tmp_path / "bad.csv"
    csv_path.write_text("date,amount\n2024-06-01,1\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        run(capsys, config, "2024-06-03", "expenses", "import", str(csv_path))

    assert excinfo.value.code == 2
    assert "Expected columns" in capsys.readouterr().err


def test_interrupted_import_reports_saved_count(tmp_path, capsys, monkeypatch):
    config = make_config(tmp_path)
    csv_path = tmp_path / "expenses.csv"
    csv_path.write_text(
        "date,category,amount\n"
        "2024-06-01,Food,1\n"
        "2024-06-02,Food,2\n"
        "2024-06-03,Food,3\n",
        encoding="utf-8",
    )
    insert_expense = db.insert_expense
    calls = []

    def fail_on_second_insert(cfg, uid, expense):
        calls.append(expense)
        if len(calls) == 2:
            raise sqlite3.OperationalError("disk I/O error")
        return insert_expense(cfg, uid, expense)

    monkeypatch.setattr(db, "insert_expense", fail_on_second_insert)

    with pytest.raises(SystemExit, match="Store unavailable"):
        run(capsys, config, "2024-06-03", "expenses", "import", str(csv_path))

    assert "Import interrupted: 1 of 3 expenses were saved." in (
        capsys.readouterr().out
    )
