from datetime import date, datetime
from decimal import Decimal

import pytest

from budget_periods.db import DatabaseConfig
from budget_periods.errors import ExpenseValidationError, StoreUnavailable
from budget_periods.expenses_service import (
    PENDING_ID,
    ExpenseLog,
    daily_total,
    ensure_period_open,
    expenses_on,
    expenses_to_dataframe,
    summarize_by_category,
)
from budget_periods.gateway import MemoryGateway, SQLiteGateway
from budget_periods.models import BudgetCategory, Expense, NewExpense
from budget_periods.periods import compute_period


class FailingWritesGateway(MemoryGateway):
    def __init__(self) -> None:
        super().__init__()
        self.seen_during_write: list[Expense] = []
        self.log: ExpenseLog | None = None

    async def add_expense(self, uid, expense):
        if self.log is not None:
            self.seen_during_write = list(self.log.expenses)
        raise StoreUnavailable("write rejected")


class FailingReadsGateway(MemoryGateway):
    async def get_categories(self, uid):
        raise StoreUnavailable("offline")


class CrashingWritesGateway(MemoryGateway):
    async def add_expense(self, uid, expense):
        raise RuntimeError("driver crashed")


@pytest.mark.asyncio
async def test_load_fetches_expenses_and_categories():
    gateway = MemoryGateway()
    await gateway.add_category("alice", "Food", Decimal("200"))
    await gateway.add_expense(
        "alice", NewExpense(date(2024, 6, 1), "Food", Decimal("5"))
    )

    log = ExpenseLog(gateway, "alice", start_day=1)
    assert await log.load() is True
    assert len(log.expenses) == 1
    assert [c.name for c in log.categories] == ["Food"]
    assert log.failure is None


@pytest.mark.asyncio
async def test_failed_load_shows_no_partial_data():
    gateway = FailingReadsGateway()
    await gateway.add_expense(
        "alice", NewExpense(date(2024, 6, 1), "Food", Decimal("5"))
    )

    log = ExpenseLog(gateway, "alice", start_day=1)
    assert await log.load() is False
    assert log.expenses == []
    assert log.categories == []
    assert log.failure is not None
    assert isinstance(log.failure.cause, StoreUnavailable)


@pytest.mark.asyncio
async def test_log_expense_replaces_optimistic_entry_with_stored_one():
    gateway = MemoryGateway()
    log = ExpenseLog(gateway, "alice", start_day=1)

    stored = await log.log_expense(
        {"date": "2024-06-03", "category": "Food", "amount": "12.5", "note": " lunch "}
    )

    assert stored.id != PENDING_ID
    assert stored.note == "lunch"
    assert [e.id for e in log.expenses] == [stored.id]


@pytest.mark.asyncio
async def test_failed_write_reverts_optimistic_entry():
    gateway = FailingWritesGateway()
    log = ExpenseLog(gateway, "alice", start_day=1)
    gateway.log = log
    existing = Expense("e1", date(2024, 6, 1), "Rent", Decimal("800.00"))
    log.expenses = [existing]

    with pytest.raises(StoreUnavailable):
        await log.log_expense(
            NewExpense(date(2024, 6, 3), "Food", Decimal("12.50"))
        )

    # The pending entry was shown while the write was in flight...
    assert [e.id for e in gateway.seen_during_write] == [PENDING_ID, "e1"]
    # ...and removed once the write failed.
    assert log.expenses == [existing]


@pytest.mark.asyncio
async def test_invalid_expense_is_rejected_before_anything_is_shown():
    log = ExpenseLog(MemoryGateway(), "alice", start_day=1)

    with pytest.raises(ExpenseValidationError):
        await log.log_expense({"date": "2024-06-03", "category": "Food", "amount": -1})

    assert log.expenses == []


@pytest.mark.asyncio
async def test_unexpected_write_error_also_reverts_optimistic_entry():
    log = ExpenseLog(CrashingWritesGateway(), "alice", start_day=1)

    with pytest.raises(RuntimeError):
        await log.log_expense(
            NewExpense(date(2024, 6, 3), "Food", Decimal("12.50"))
        )

    assert log.expenses == []


@pytest.mark.asyncio
async def test_oversized_amount_never_reaches_sqlite(tmp_path):
    gateway = SQLiteGateway(DatabaseConfig(engine="sqlite", path=tmp_path / "e.sqlite"))
    log = ExpenseLog(gateway, "alice", start_day=1)

    with pytest.raises(ExpenseValidationError):
        await log.log_expense(
            {"date": "2024-06-03", "category": "Food", "amount": "1e17"}
        )

    assert log.expenses == []
    assert await gateway.get_expenses("alice") == []


@pytest.mark.asyncio
async def test_ensure_period_open_uses_the_configured_start_day():
    gateway = MemoryGateway()
    await gateway.write_archive_record("alice", "2024-05", [])

    # With start_day=15 the 2024-05 period runs from May 15 to June 14.
    await ensure_period_open(gateway, "alice", date(2024, 5, 14), 15)
    with pytest.raises(ExpenseValidationError, match="already archived"):
        await ensure_period_open(gateway, "alice", date(2024, 6, 14), 15)
    await ensure_period_open(gateway, "alice", date(2024, 6, 15), 15)


def test_daily_total_and_filter():
    expenses = [
        Expense("a", date(2024, 6, 3), "Food", Decimal("1.10")),
        Expense("b", date(2024, 6, 3), "Fun", Decimal("2.20")),
        Expense("c", date(2024, 6, 4), "Food", Decimal("9.99")),
    ]

    assert [e.id for e in expenses_on(expenses, date(2024, 6, 3))] == ["a", "b"]
    assert daily_total(expenses, date(2024, 6, 3)) == Decimal("3.30")
    assert daily_total(expenses, date(2024, 6, 5)) == Decimal("0.00")


def test_expenses_to_dataframe_handles_empty_input():
    df = expenses_to_dataframe([])
    assert list(df.columns) == ["id", "date", "category", "amount", "note"]
    assert df.empty


def test_summarize_by_category_only_counts_the_period():
    period = compute_period(datetime(2024, 6, 10), 1)
    expenses = [
        Expense("a", date(2024, 6, 3), "Food", Decimal("10.00")),
        Expense("b", date(2024, 6, 9), "Food", Decimal("5.50")),
        Expense("c", date(2024, 5, 30), "Food", Decimal("99.00")),
        Expense("d", date(2024, 6, 9), "Taxi", Decimal("20.00")),
    ]
    categories = [
        BudgetCategory("1", "Food", Decimal("300")),
        BudgetCategory("2", "Bills", Decimal("120")),
    ]

    summary = summarize_by_category(expenses, period, categories)
    rows = summary.set_index("category")

    assert list(summary["category"]) == ["Bills", "Food", "Taxi"]
    assert rows.loc["Food", "count"] == 2
    assert rows.loc["Food", "spent"] == pytest.approx(15.5)
    assert rows.loc["Food", "planned"] == pytest.approx(300.0)
    assert rows.loc["Bills", "spent"] == 0.0
    assert rows.loc["Taxi", "count"] == 1
