# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Persistence gateways.

`PersistenceGateway` is the abstract contract the period engine relies on.
Every method is a coroutine: stores are potentially network bound, and
callers must await each operation before moving on.

Two implementations are provided:

- `SQLiteGateway`: backed by the `db` module. Blocking sqlite3 calls run in
  a worker thread; any sqlite3/OS failure is reported as StoreUnavailable.
- `MemoryGateway`: in-process dictionaries, for tests and throwaway runs.
  State is lost when the process exits.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, TypeVar

from . import db
from .db import DatabaseConfig
from .errors import ArchiveConflict, StoreUnavailable
from .models import ArchiveRecord, BudgetCategory, Expense, NewExpense

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PersistenceGateway(ABC):
    """Minimal persistence contract consumed by the period engine."""

    # --- Expenses -----------------------------------------------------------

    @abstractmethod
    async def get_expenses(self, uid: str) -> list[Expense]:
        """Return the active working set of expenses."""

    @abstractmethod
    async def add_expense(self, uid: str, expense: NewExpense) -> Expense:
        """Store a new expense and return it with its assigned id."""

    @abstractmethod
    async def remove_expenses(
        self, uid: str, period_id: str, expense_ids: Iterable[str]
    ) -> int:
        """
        Remove expenses from the working set on behalf of an archived period.

        Expenses that already left the working set are ignored. Returns the
        number of expenses removed by this call.
        """

    # --- Categories ---------------------------------------------------------

    @abstractmethod
    async def get_categories(self, uid: str) -> list[BudgetCategory]:
        ...

    @abstractmethod
    async def add_category(
        self, uid: str, name: str, planned_amount: Decimal
    ) -> BudgetCategory:
        ...

    # --- Period marker ------------------------------------------------------

    @abstractmethod
    async def get_last_acknowledged_period(self, uid: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set_last_acknowledged_period(self, uid: str, period_id: str) -> None:
        ...

    # --- Archive records ----------------------------------------------------

    @abstractmethod
    async def get_archive_record(
        self, uid: str, period_id: str
    ) -> Optional[ArchiveRecord]:
        ...

    @abstractmethod
    async def write_archive_record(
        self, uid: str, period_id: str, snapshot: Sequence[Expense]
    ) -> ArchiveRecord:
        """
        Write an immutable archive record.

        Raises ArchiveConflict if a record already exists for the period.
        """

    @abstractmethod
    async def list_archive_records(self, uid: str) -> list[ArchiveRecord]:
        ...


class SQLiteGateway(PersistenceGateway):
    """PersistenceGateway backed by a SQLite database file."""

    def __init__(self, cfg: DatabaseConfig) -> None:
        self.cfg = cfg
        self._initialized = False

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        if not self._initialized:
            db.init_database(self.cfg)
            self._initialized = True
        return fn(self.cfg, *args)

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(self._call, fn, *args)
        except ArchiveConflict:
            raise
        except (sqlite3.Error, OSError) as exc:
            logger.error("Store operation %s failed: %s", fn.__name__, exc)
            raise StoreUnavailable(f"{fn.__name__} failed: {exc}") from exc

    async def get_expenses(self, uid: str) -> list[Expense]:
        return await self._run(db.list_expenses, uid)

    async def add_expense(self, uid: str, expense: NewExpense) -> Expense:
        return await self._run(db.insert_expense, uid, expense)

    async def remove_expenses(
        self, uid: str, period_id: str, expense_ids: Iterable[str]
    ) -> int:
        return await self._run(
            db.mark_expenses_archived, uid, period_id, list(expense_ids)
        )

    async def get_categories(self, uid: str) -> list[BudgetCategory]:
        return await self._run(db.list_categories, uid)

    async def add_category(
        self, uid: str, name: str, planned_amount: Decimal
    ) -> BudgetCategory:
        return await self._run(db.insert_category, uid, name, planned_amount)

    async def get_last_acknowledged_period(self, uid: str) -> Optional[str]:
        return await self._run(db.get_period_marker, uid)

    async def set_last_acknowledged_period(self, uid: str, period_id: str) -> None:
        await self._run(db.set_period_marker, uid, period_id)

    async def get_archive_record(
        self, uid: str, period_id: str
    ) -> Optional[ArchiveRecord]:
        return await self._run(db.get_archive_record, uid, period_id)

    async def write_archive_record(
        self, uid: str, period_id: str, snapshot: Sequence[Expense]
    ) -> ArchiveRecord:
        return await self._run(
            db.insert_archive_record, uid, period_id, list(snapshot)
        )

    async def list_archive_records(self, uid: str) -> list[ArchiveRecord]:
        return await self._run(db.list_archive_records, uid)


class MemoryGateway(PersistenceGateway):
    """In-process gateway keeping everything in dictionaries."""

    def __init__(self) -> None:
        self._expenses: dict[str, dict[str, Expense]] = {}
        self._archived_ids: dict[str, set[str]] = {}
        self._categories: dict[str, dict[str, BudgetCategory]] = {}
        self._markers: dict[str, str] = {}
        self._archives: dict[tuple[str, str], ArchiveRecord] = {}

    async def get_expenses(self, uid: str) -> list[Expense]:
        archived = self._archived_ids.get(uid, set())
        active = [
            e for e in self._expenses.get(uid, {}).values() if e.id not in archived
        ]
        return sorted(active, key=lambda e: e.date, reverse=True)

    async def add_expense(self, uid: str, expense: NewExpense) -> Expense:
        stored = expense.with_id(uuid.uuid4().hex)
        self._expenses.setdefault(uid, {})[stored.id] = stored
        return stored

    async def remove_expenses(
        self, uid: str, period_id: str, expense_ids: Iterable[str]
    ) -> int:
        known = self._expenses.get(uid, {})
        archived = self._archived_ids.setdefault(uid, set())
        removed = 0
        for expense_id in expense_ids:
            if expense_id in known and expense_id not in archived:
                archived.add(expense_id)
                removed += 1
        return removed

    async def get_categories(self, uid: str) -> list[BudgetCategory]:
        return sorted(self._categories.get(uid, {}).values(), key=lambda c: c.name)

    async def add_category(
        self, uid: str, name: str, planned_amount: Decimal
    ) -> BudgetCategory:
        categories = self._categories.setdefault(uid, {})
        existing = categories.get(name)
        category = BudgetCategory(
            id=existing.id if existing else uuid.uuid4().hex,
            name=name,
            planned_amount=planned_amount,
        )
        categories[name] = category
        return category

    async def get_last_acknowledged_period(self, uid: str) -> Optional[str]:
        return self._markers.get(uid)

    async def set_last_acknowledged_period(self, uid: str, period_id: str) -> None:
        self._markers[uid] = period_id

    async def get_archive_record(
        self, uid: str, period_id: str
    ) -> Optional[ArchiveRecord]:
        return self._archives.get((uid, period_id))

    async def write_archive_record(
        self, uid: str, period_id: str, snapshot: Sequence[Expense]
    ) -> ArchiveRecord:
        key = (uid, period_id)
        if key in self._archives:
            raise ArchiveConflict(uid, period_id)
        record = ArchiveRecord(
            period_id=period_id,
            snapshot=tuple(snapshot),
            archived_at=datetime.now(timezone.utc),
        )
        self._archives[key] = record
        return record

    async def list_archive_records(self, uid: str) -> list[ArchiveRecord]:
        records = [r for (u, _), r in self._archives.items() if u == uid]
        return sorted(records, key=lambda r: r.period_id, reverse=True)
