# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Typed records shared by the period engine, the stores and the services.

Expenses and categories enter the application as loosely typed values
(CLI arguments, CSV cells, UI form fields). They are converted into the
frozen dataclasses below at the boundary, so that the rest of the code can
rely on:

- `date` being a calendar date,
- `amount` being a non-negative `Decimal` quantized to cents,
- `category` being a non-empty string.

Invalid input raises `ExpenseValidationError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .errors import ExpenseValidationError

CENT = Decimal("0.01")
# Largest amount whose cent value fits a signed 64-bit SQLite INTEGER.
MAX_AMOUNT = Decimal("92233720368547758.07")


@dataclass(frozen=True)
class Expense:
    """An expense stored in the active working set (or in an archive)."""

    id: str
    date: date
    category: str
    amount: Decimal
    note: str = ""


@dataclass(frozen=True)
class NewExpense:
    """
    Validated data required to create an expense.

    Use `NewExpense.from_raw()` to build one from untrusted input.
    """

    date: date
    category: str
    amount: Decimal
    note: str = ""

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> NewExpense:
        """
        Build a NewExpense from a mapping of raw values.

        Expected keys: ``date``, ``category``, ``amount`` and optionally
        ``note``. Extra keys are ignored.
        """
        missing = {"date", "category", "amount"}.difference(raw)
        if missing:
            cols = ", ".join(sorted(missing))
            raise ExpenseValidationError(f"Expense is missing field(s): {cols}")

        note = raw.get("note")
        return cls(
            date=parse_expense_date(raw["date"]),
            category=parse_category_name(raw["category"]),
            amount=parse_amount(raw["amount"]),
            note="" if note is None else str(note).strip(),
        )

    def with_id(self, expense_id: str) -> Expense:
        return Expense(
            id=expense_id,
            date=self.date,
            category=self.category,
            amount=self.amount,
            note=self.note,
        )


@dataclass(frozen=True)
class BudgetCategory:
    """A spending category with its planned amount per period."""

    id: str
    name: str
    planned_amount: Decimal


@dataclass(frozen=True)
class ArchiveRecord:
    """
    Immutable snapshot of the expenses of one budget period.

    Records are keyed by `period_id` for a given user; a second archive of
    the same period is detected rather than duplicated.
    """

    period_id: str
    snapshot: tuple[Expense, ...]
    archived_at: datetime

    @property
    def expense_ids(self) -> list[str]:
        return [e.id for e in self.snapshot]

    @property
    def total(self) -> Decimal:
        return sum((e.amount for e in self.snapshot), Decimal("0.00"))


# ---------------------------------------------------------------------------
# Boundary parsing
# ---------------------------------------------------------------------------


def parse_amount(value: Any, *, allow_negative: bool = False) -> Decimal:
    """
    Convert a raw amount into a Decimal quantized to cents.

    Floats are converted through their string representation to avoid
    binary rounding artefacts (0.1 -> Decimal("0.10")).
    """
    if isinstance(value, bool) or value is None:
        raise ExpenseValidationError(f"Invalid amount: {value!r}")

    if isinstance(value, float):
        value = repr(value)

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ExpenseValidationError(f"Invalid amount: {value!r}") from exc

    if not amount.is_finite():
        raise ExpenseValidationError(f"Amount must be a finite number: {value!r}")
    if amount < 0 and not allow_negative:
        raise ExpenseValidationError(f"Amount must be >= 0, got {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise ExpenseValidationError(
            f"Amount must not exceed {MAX_AMOUNT}, got {value!r}"
        )

    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ExpenseValidationError(f"Invalid amount: {value!r}") from exc


def parse_expense_date(value: Any) -> date:
    """Convert a raw date (date, datetime or ISO string) into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ExpenseValidationError(
            f"Invalid expense date: {value!r}. Expected YYYY-MM-DD."
        ) from exc


def parse_category_name(value: Any) -> str:
    name = "" if value is None else str(value).strip()
    if not name:
        raise ExpenseValidationError("Expense category cannot be empty.")
    return name


def to_cents(amount: Decimal) -> int:
    """Convert a Decimal amount to integer cents for storage."""
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)
