# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
High-level services for logging and listing expenses.

This module sits between:
- the persistence gateways in `gateway.py`, and
- user-facing layers such as the CLI or a UI.

Responsibilities
----------------
1) Daily log
   - `ExpenseLog` keeps the list of expenses shown to the user, loads it
     together with the categories, and logs new expenses with an
     optimistic update that is reverted when the store rejects the write.
   - A failed load leaves the log empty in a `LoadFailure` state instead of
     showing partial or stale data.

2) Listing helpers
   - Expenses of a given day and their total.
   - Conversion to a pandas DataFrame and per-category totals for a budget
     period (presentation only; no budget arithmetic beyond grouping).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

import pandas as pd

from .errors import ExpenseValidationError, StoreUnavailable
from .gateway import PersistenceGateway
from .models import BudgetCategory, Expense, NewExpense
from .periods import Period, compute_period, filter_expenses_by_period

logger = logging.getLogger(__name__)

PENDING_ID = "pending"

EXPENSE_COLUMNS = ["id", "date", "category", "amount", "note"]


@dataclass(frozen=True)
class LoadFailure:
    """Why the daily log could not be loaded."""

    message: str
    cause: Exception


class ExpenseLog:
    """
    The expense list of one user, as displayed by a front-end.

    The list is only ever replaced by a complete reload from the store, or
    temporarily extended with a single optimistic entry while a write is in
    flight.
    """

    def __init__(
        self, gateway: PersistenceGateway, uid: str, start_day: int
    ) -> None:
        self.gateway = gateway
        self.uid = uid
        self.start_day = start_day
        self.expenses: list[Expense] = []
        self.categories: list[BudgetCategory] = []
        self.failure: Optional[LoadFailure] = None

    async def load(self) -> bool:
        """Load expenses and categories. Returns False on failure."""
        try:
            expenses, categories = await asyncio.gather(
                self.gateway.get_expenses(self.uid),
                self.gateway.get_categories(self.uid),
            )
        except StoreUnavailable as exc:
            logger.error("Failed to load expenses for user %s: %s", self.uid, exc)
            self.expenses = []
            self.categories = []
            self.failure = LoadFailure("Failed to load data.", exc)
            return False

        self.expenses = list(expenses)
        self.categories = list(categories)
        self.failure = None
        return True

    async def log_expense(
        self, expense: Union[NewExpense, Mapping[str, Any]]
    ) -> Expense:
        """
        Validate and store a new expense.

        The expense is shown immediately (with id "pending"). If the write
        fails for any reason, the optimistic entry is removed again and the error is
        re-raised.

        Raises
        ------
        ExpenseValidationError
            If the input is malformed or dated inside an archived period
            (nothing is shown or stored).
        StoreUnavailable
            If the write fails.
        """
        new_expense = (
            expense if isinstance(expense, NewExpense) else NewExpense.from_raw(expense)
        )
        await ensure_period_open(
            self.gateway, self.uid, new_expense.date, self.start_day
        )

        optimistic = new_expense.with_id(PENDING_ID)
        self.expenses.insert(0, optimistic)

        try:
            stored = await self.gateway.add_expense(self.uid, new_expense)
        except BaseException:
            self._drop(optimistic)
            raise

        try:
            self.expenses = await self.gateway.get_expenses(self.uid)
        except StoreUnavailable as exc:
            # The write went through; show the stored entry instead of a reload.
            logger.warning("Reload after logging an expense failed: %s", exc)
            self._replace(optimistic, stored)

        return stored

    def _drop(self, entry: Expense) -> None:
        self.expenses = [e for e in self.expenses if e is not entry]

    def _replace(self, entry: Expense, stored: Expense) -> None:
        self.expenses = [stored if e is entry else e for e in self.expenses]


async def ensure_period_open(
    gateway: PersistenceGateway, uid: str, day: date, start_day: int
) -> None:
    """
    Reject an expense dated inside a period that already has an archive record.

    Archive snapshots are immutable once written.

    Raises
    ------
    ExpenseValidationError
        If the period containing `day` is archived.
    """
    period = compute_period(day, start_day)
    if await gateway.get_archive_record(uid, period.id) is not None:
        raise ExpenseValidationError(
            f"Period {period.id} is already archived; "
            f"expenses dated {day.isoformat()} can no longer be added."
        )


def expenses_on(expenses: Iterable[Expense], day: date) -> list[Expense]:
    return [e for e in expenses if e.date == day]


def daily_total(expenses: Iterable[Expense], day: date) -> Decimal:
    """Total spent on `day`."""
    return sum((e.amount for e in expenses_on(expenses, day)), Decimal("0.00"))


def expenses_to_dataframe(expenses: Iterable[Expense]) -> pd.DataFrame:
    """
    Convert expenses into a DataFrame.

    Columns: id, date (datetime64[ns]), category, amount (float), note.
    """
    rows = [
        {
            "id": e.id,
            "date": e.date,
            "category": e.category,
            "amount": float(e.amount),
            "note": e.note,
        }
        for e in expenses
    ]
    if not rows:
        df = pd.DataFrame(columns=EXPENSE_COLUMNS)
        df["date"] = pd.to_datetime(df["date"])
        df["amount"] = df["amount"].astype(float)
        return df

    df = pd.DataFrame(rows, columns=EXPENSE_COLUMNS)
    df["date"] = pd.to_datetime(df["date"])
    return df


def summarize_by_category(
    expenses: Iterable[Expense],
    period: Period,
    categories: Iterable[BudgetCategory] = (),
) -> pd.DataFrame:
    """
    Per-category totals for the expenses dated in `period`.

    Returns a DataFrame with columns: category, count, spent, planned.
    Categories without expenses are listed with zero spent; `planned` is
    NaN for expense categories that have no BudgetCategory.
    """
    df = filter_expenses_by_period(expenses_to_dataframe(expenses), period)

    grouped = (
        df.groupby("category")["amount"]
        .agg(["count", "sum"])
        .rename(columns={"sum": "spent"})
        .reset_index()
    )

    planned = pd.DataFrame(
        [
            {"category": c.name, "planned": float(c.planned_amount)}
            for c in categories
        ],
        columns=["category", "planned"],
    )

    summary = grouped.merge(planned, on="category", how="outer")
    summary["count"] = summary["count"].fillna(0).astype(int)
    summary["spent"] = summary["spent"].fillna(0.0).astype(float)
    return summary.sort_values("category").reset_index(drop=True)
