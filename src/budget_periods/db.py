# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for Budget Periods.

This module provides the low-level accessors used by the SQLite gateway
(see `gateway.SQLiteGateway`). All functions are synchronous; the gateway
runs them in a worker thread.

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) expenses
   Active working set and archived expenses (archived rows are kept and
   flagged, never physically deleted).

   - id               TEXT    PRIMARY KEY      -- uuid4 hex
   - uid              TEXT    NOT NULL
   - date             TEXT    NOT NULL         -- ISO date "YYYY-MM-DD"
   - category         TEXT    NOT NULL
   - amount_cents     INTEGER NOT NULL         -- >= 0
   - note             TEXT    NOT NULL DEFAULT ''
   - created_at       TEXT    NOT NULL         -- ISO datetime, UTC
   - archived_period  TEXT                     -- period id once archived
   - archived_at      TEXT                     -- ISO datetime, UTC

2) categories
   - id, uid, name (unique per uid), planned_cents, created_at

3) archive_records
   One row per (uid, period_id). The primary key is what makes archiving
   idempotent: a second insert for the same period fails and is reported
   as `ArchiveConflict`.

   - uid, period_id, archived_at, expense_count

4) archived_expenses
   Snapshot rows belonging to an archive record. Written in the same
   transaction as the record itself.

5) period_markers
   One row per uid holding the last acknowledged period id.

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- All timestamps are stored as ISO-8601 text (UTC).
- Foreign key enforcement is explicitly enabled.
- Amounts are stored as integer cents.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

from .errors import ArchiveConflict
from .models import (
    ArchiveRecord,
    BudgetCategory,
    Expense,
    NewExpense,
    from_cents,
    to_cents,
)

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for Budget Periods.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _get_table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Return the set of column names for the given table."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    return {row[1] for row in cur.fetchall()}


def _migrate_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Bring databases created before archiving support up to date.

    Idempotent. Older `expenses` tables lack the archive flags; they are
    added with NULL defaults so existing rows stay in the working set.
    """
    expense_columns = _get_table_columns(conn, "expenses")
    if "archived_period" not in expense_columns:
        conn.execute("ALTER TABLE expenses ADD COLUMN archived_period TEXT;")
    if "archived_at" not in expense_columns:
        conn.execute("ALTER TABLE expenses ADD COLUMN archived_at TEXT;")


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet and migrate the schema.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS expenses (
            id              TEXT    PRIMARY KEY,
            uid             TEXT    NOT NULL,
            date            TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            category        TEXT    NOT NULL,
            amount_cents    INTEGER NOT NULL CHECK (amount_cents >= 0),
            note            TEXT    NOT NULL DEFAULT '',
            created_at      TEXT    NOT NULL,
            archived_period TEXT,
            archived_at     TEXT
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS categories (
            id              TEXT    PRIMARY KEY,
            uid             TEXT    NOT NULL,
            name            TEXT    NOT NULL,
            planned_cents   INTEGER NOT NULL DEFAULT 0,
            created_at      TEXT    NOT NULL,
            UNIQUE (uid, name)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS archive_records (
            uid             TEXT    NOT NULL,
            period_id       TEXT    NOT NULL,
            archived_at     TEXT    NOT NULL,
            expense_count   INTEGER NOT NULL,
            PRIMARY KEY (uid, period_id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS archived_expenses (
            uid             TEXT    NOT NULL,
            period_id       TEXT    NOT NULL,
            expense_id      TEXT    NOT NULL,
            date            TEXT    NOT NULL,
            category        TEXT    NOT NULL,
            amount_cents    INTEGER NOT NULL,
            note            TEXT    NOT NULL DEFAULT '',
            PRIMARY KEY (uid, period_id, expense_id),
            FOREIGN KEY (uid, period_id)
                REFERENCES archive_records(uid, period_id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS period_markers (
            uid             TEXT    PRIMARY KEY,
            period_id       TEXT    NOT NULL,
            updated_at      TEXT    NOT NULL
        );
        """
    )

    _migrate_schema_if_needed(conn)

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_expenses_uid_date
            ON expenses(uid, date);
        """
    )

    conn.commit()


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _row_to_expense(row: tuple) -> Expense:
    expense_id, iso_date, category, amount_cents, note = row
    return Expense(
        id=expense_id,
        date=date.fromisoformat(iso_date),
        category=category,
        amount=from_cents(amount_cents),
        note=note or "",
    )


def _placeholders(values: Sequence) -> str:
    return ", ".join("?" for _ in values)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


# --- expenses ---------------------------------------------------------------


def list_expenses(cfg: DatabaseConfig, uid: str) -> list[Expense]:
    """
    Return the active (not archived) expenses of a user, newest first.
    """
    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT id, date, category, amount_cents, note
              FROM expenses
             WHERE uid = ?
               AND archived_period IS NULL
             ORDER BY date DESC, created_at DESC;
            """,
            (uid,),
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    return [_row_to_expense(row) for row in rows]


def insert_expense(cfg: DatabaseConfig, uid: str, new_expense: NewExpense) -> Expense:
    """Insert a new expense and return it with its generated id."""
    expense = new_expense.with_id(uuid.uuid4().hex)

    conn = _connect(cfg)
    try:
        conn.execute(
            """
            INSERT INTO expenses (
                id, uid, date, category, amount_cents, note, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                expense.id,
                uid,
                expense.date.isoformat(),
                expense.category,
                to_cents(expense.amount),
                expense.note,
                _now_utc_iso(),
            ),
        )
        conn.commit()
    finally:
        conn.close()

    return expense


def mark_expenses_archived(
    cfg: DatabaseConfig,
    uid: str,
    period_id: str,
    expense_ids: Iterable[str],
) -> int:
    """
    Remove expenses from the active working set by flagging them archived.

    Only rows still active are touched, so repeating the call is harmless.

    Returns
    -------
    int
        Number of expenses that left the working set during this call.
    """
    ids = list(expense_ids)
    if not ids:
        return 0

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            f"""
            UPDATE expenses
               SET archived_period = ?,
                   archived_at     = ?
             WHERE uid = ?
               AND archived_period IS NULL
               AND id IN ({_placeholders(ids)});
            """,
            (period_id, _now_utc_iso(), uid, *ids),
        )
        conn.commit()
        return cur.rowcount
    finally:
        conn.close()


# --- categories -------------------------------------------------------------


def list_categories(cfg: DatabaseConfig, uid: str) -> list[BudgetCategory]:
    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT id, name, planned_cents
              FROM categories
             WHERE uid = ?
             ORDER BY name;
            """,
            (uid,),
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    return [
        BudgetCategory(id=cid, name=name, planned_amount=from_cents(cents))
        for cid, name, cents in rows
    ]


def insert_category(
    cfg: DatabaseConfig,
    uid: str,
    name: str,
    planned_amount: Decimal,
) -> BudgetCategory:
    """
    Insert a category, or update the planned amount of an existing one.
    """
    conn = _connect(cfg)
    try:
        conn.execute(
            """
            INSERT INTO categories (id, uid, name, planned_cents, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (uid, name)
            DO UPDATE SET planned_cents = excluded.planned_cents;
            """,
            (uuid.uuid4().hex, uid, name, to_cents(planned_amount), _now_utc_iso()),
        )
        conn.commit()
        row = conn.execute(
            "SELECT id, name, planned_cents FROM categories WHERE uid = ? AND name = ?;",
            (uid, name),
        ).fetchone()
    finally:
        conn.close()

    return BudgetCategory(id=row[0], name=row[1], planned_amount=from_cents(row[2]))


# --- period marker ----------------------------------------------------------


def get_period_marker(cfg: DatabaseConfig, uid: str) -> str | None:
    """Return the last acknowledged period id of a user, or None."""
    conn = _connect(cfg)
    try:
        row = conn.execute(
            "SELECT period_id FROM period_markers WHERE uid = ?;",
            (uid,),
        ).fetchone()
    finally:
        conn.close()

    return None if row is None else row[0]


def set_period_marker(cfg: DatabaseConfig, uid: str, period_id: str) -> None:
    """Create or overwrite the marker row of a user (last write wins)."""
    conn = _connect(cfg)
    try:
        conn.execute(
            """
            INSERT INTO period_markers (uid, period_id, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT (uid)
            DO UPDATE SET period_id  = excluded.period_id,
                          updated_at = excluded.updated_at;
            """,
            (uid, period_id, _now_utc_iso()),
        )
        conn.commit()
    finally:
        conn.close()


# --- archive records --------------------------------------------------------


def _load_snapshot(
    conn: sqlite3.Connection, uid: str, period_id: str
) -> tuple[Expense, ...]:
    cur = conn.execute(
        """
        SELECT expense_id, date, category, amount_cents, note
          FROM archived_expenses
         WHERE uid = ? AND period_id = ?
         ORDER BY date, expense_id;
        """,
        (uid, period_id),
    )
    return tuple(_row_to_expense(row) for row in cur.fetchall())


def get_archive_record(
    cfg: DatabaseConfig, uid: str, period_id: str
) -> ArchiveRecord | None:
    """Load the archive record of a period, with its snapshot, or None."""
    conn = _connect(cfg)
    try:
        row = conn.execute(
            """
            SELECT archived_at
              FROM archive_records
             WHERE uid = ? AND period_id = ?;
            """,
            (uid, period_id),
        ).fetchone()
        if row is None:
            return None
        snapshot = _load_snapshot(conn, uid, period_id)
    finally:
        conn.close()

    return ArchiveRecord(
        period_id=period_id,
        snapshot=snapshot,
        archived_at=datetime.fromisoformat(row[0]),
    )


def insert_archive_record(
    cfg: DatabaseConfig,
    uid: str,
    period_id: str,
    snapshot: Sequence[Expense],
) -> ArchiveRecord:
    """
    Write an archive record and its snapshot rows in a single transaction.

    Raises
    ------
    ArchiveConflict
        If a record already exists for (uid, period_id). Nothing is written.
    """
    archived_at = _now_utc_iso()

    conn = _connect(cfg)
    try:
        with conn:
            try:
                conn.execute(
                    """
                    INSERT INTO archive_records (
                        uid, period_id, archived_at, expense_count
                    )
                    VALUES (?, ?, ?, ?);
                    """,
                    (uid, period_id, archived_at, len(snapshot)),
                )
            except sqlite3.IntegrityError as exc:
                raise ArchiveConflict(uid, period_id) from exc

            conn.executemany(
                """
                INSERT INTO archived_expenses (
                    uid, period_id, expense_id, date, category, amount_cents, note
                )
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                [
                    (
                        uid,
                        period_id,
                        e.id,
                        e.date.isoformat(),
                        e.category,
                        to_cents(e.amount),
                        e.note,
                    )
                    for e in snapshot
                ],
            )
    finally:
        conn.close()

    return ArchiveRecord(
        period_id=period_id,
        snapshot=tuple(snapshot),
        archived_at=datetime.fromisoformat(archived_at),
    )


def list_archive_records(cfg: DatabaseConfig, uid: str) -> list[ArchiveRecord]:
    """Return all archive records of a user, most recent period first."""
    conn = _connect(cfg)
    try:
        rows = conn.execute(
            """
            SELECT period_id, archived_at
              FROM archive_records
             WHERE uid = ?
             ORDER BY period_id DESC;
            """,
            (uid,),
        ).fetchall()
        records = [
            ArchiveRecord(
                period_id=period_id,
                snapshot=_load_snapshot(conn, uid, period_id),
                archived_at=datetime.fromisoformat(archived_at),
            )
            for period_id, archived_at in rows
        ]
    finally:
        conn.close()

    return records
