# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for Budget Periods.

The CLI is intentionally thin: it loads the configuration, opens the SQLite
gateway and forwards each subcommand to the period engine or the expense
services.

Configuration
-------------
By default the CLI reads ``budget_periods_config.toml`` from the current
directory (built-in defaults are used when it does not exist). Use
``--config PATH`` to point to another file and ``--uid`` to act on behalf of
a user other than the configured default.

``--today YYYY-MM-DD`` replaces the system clock, which is handy to replay a
rollover or backfill data.

Subcommands
-----------
status
    Show the current budget period, the last acknowledged period and
    whether a rollover is pending.
check
    Run the new-period prompt. Asks interactively, or applies
    ``--choice archive|continue``.
archive
    Archive the elapsed period(s) and acknowledge the current one.
continue
    Acknowledge the current period without archiving.
expenses add | list | import
    Log an expense, list the working set, import a CSV file.
categories add | list
    Manage spending categories.
archives list | show PERIOD_ID
    Inspect archived periods.
"""

import argparse
import asyncio
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from . import __version__
from .archive import ArchiveManager
from .config import AppConfig, load_app_config
from .detector import check_user_period
from .errors import ExpenseValidationError, StoreUnavailable
from .expenses_service import (
    ExpenseLog,
    daily_total,
    ensure_period_open,
    expenses_on,
    expenses_to_dataframe,
    summarize_by_category,
)
from .gateway import PersistenceGateway, SQLiteGateway
from .io import read_expenses_csv
from .models import NewExpense, parse_amount, parse_category_name
from .periods import compute_period, format_period_range
from .prompt import ARCHIVE, CONTINUE, PROMPT_ACTIONS, Notice, PromptController


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m budget_periods.cli",
        description=(
            "Budget Periods - track expenses within monthly budget periods "
            "and archive or carry them forward when a new period begins."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of budget_periods and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. If omitted, "
            "'budget_periods_config.toml' in the current directory is used "
            "when present."
        ),
    )
    ap.add_argument(
        "--uid",
        help="User id to act on. Defaults to [user].uid from the configuration.",
    )
    ap.add_argument(
        "--today",
        help="Reference date (YYYY-MM-DD) used instead of the system clock.",
    )
    ap.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override [logging].level from the configuration.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    subparsers.add_parser(
        "status", help="Show the current period and the rollover state."
    )

    check = subparsers.add_parser(
        "check", help="Run the new-period prompt if a rollover is pending."
    )
    check.add_argument(
        "--choice",
        choices=[ARCHIVE, CONTINUE],
        help="Apply this decision instead of asking interactively.",
    )

    subparsers.add_parser(
        "archive", help="Archive the previous period and start the current one."
    )
    subparsers.add_parser(
        "continue", help="Acknowledge the current period without archiving."
    )

    # ------------------------------------------------------------------
    # expenses
    # ------------------------------------------------------------------
    expenses = subparsers.add_parser("expenses", help="Log and list expenses.")
    expenses_sub = expenses.add_subparsers(
        dest="expenses_command", metavar="expenses-command"
    )

    expenses_add = expenses_sub.add_parser("add", help="Log a new expense.")
    expenses_add.add_argument("--category", required=True)
    expenses_add.add_argument("--amount", required=True)
    expenses_add.add_argument(
        "--date",
        dest="expense_date",
        help="Expense date (YYYY-MM-DD). Defaults to today.",
    )
    expenses_add.add_argument("--note", default="")

    expenses_list = expenses_sub.add_parser(
        "list", help="List the expenses of the current period."
    )
    expenses_list.add_argument(
        "--all",
        dest="show_all",
        action="store_true",
        help="List the whole working set, not only the current period.",
    )

    expenses_import = expenses_sub.add_parser(
        "import", help="Import expenses from a CSV file."
    )
    expenses_import.add_argument("csv_path", metavar="CSV_PATH")

    # ------------------------------------------------------------------
    # categories
    # ------------------------------------------------------------------
    categories = subparsers.add_parser("categories", help="Manage categories.")
    categories_sub = categories.add_subparsers(
        dest="categories_command", metavar="categories-command"
    )
    categories_add = categories_sub.add_parser(
        "add", help="Create a category or update its planned amount."
    )
    categories_add.add_argument("name")
    categories_add.add_argument("--planned", default="0")
    categories_sub.add_parser("list", help="List categories.")

    # ------------------------------------------------------------------
    # archives
    # ------------------------------------------------------------------
    archives = subparsers.add_parser("archives", help="Inspect archived periods.")
    archives_sub = archives.add_subparsers(
        dest="archives_command", metavar="archives-command"
    )
    archives_sub.add_parser("list", help="List archived periods.")
    archives_show = archives_sub.add_parser(
        "show", help="Show the snapshot of an archived period."
    )
    archives_show.add_argument("period_id", metavar="PERIOD_ID")

    return ap


def _parse_optional_date(value: Optional[str]) -> Optional[date]:
    """
    Parse an optional CLI date argument (YYYY-MM-DD).

    Raises
    ------
    SystemExit
        If the date format is invalid.
    """
    if value is None:
        return None

    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        msg = f"Invalid date format: {value!r}. Expected YYYY-MM-DD."
        raise SystemExit(msg) from exc


def _reference_now(args: argparse.Namespace) -> datetime:
    today = _parse_optional_date(args.today)
    if today is None:
        return datetime.now()
    return datetime(today.year, today.month, today.day)


def _print_notice(notice: Notice) -> None:
    prefix = "!" if notice.destructive else "*"
    print(f"{prefix} {notice.title}")
    if notice.description:
        print(f"  {notice.description}")


# ---------------------------------------------------------------------------
# Period lifecycle commands
# ---------------------------------------------------------------------------


async def _handle_status(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    now = _reference_now(args)
    check = await check_user_period(
        gateway, args.uid, config.budget.start_day, now
    )
    period = check.current_period

    print(f"User:                  {args.uid}")
    print(f"Current period:        {period.id} ({format_period_range(period)})")
    print(f"Last acknowledged:     {check.last_acknowledged or '-'}")
    print(f"Marker state:          {check.marker_state}")
    print(f"Rollover pending:      {'yes' if check.is_new else 'no'}")


async def _handle_check(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    now = _reference_now(args)
    manager = ArchiveManager(gateway, config.budget.start_day)
    controller = PromptController(
        gateway,
        manager,
        args.uid,
        on_close=lambda: print("Prompt closed."),
        notify=_print_notice,
    )

    view = await controller.on_load(now)
    if view is None:
        print("No new budget period. Nothing to do.")
        return

    print(f"=== {view.title} ===")
    print(f"Current period: {view.period_range}")
    print(view.message)

    choice = args.choice
    if choice is None:
        for index, action in enumerate(view.actions, start=1):
            print(f"  [{index}] {action.label}")
        answer = input("Choose an option: ").strip()
        keys = {str(i): a.key for i, a in enumerate(PROMPT_ACTIONS, start=1)}
        choice = keys.get(answer, answer.lower())
        if choice not in (ARCHIVE, CONTINUE):
            raise SystemExit(f"Unknown option: {answer!r}")

    if not await controller.choose(choice, now):
        raise SystemExit(1)


async def _handle_archive(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    manager = ArchiveManager(gateway, config.budget.start_day)
    outcome = await manager.archive_current_period(args.uid, _reference_now(args))

    if outcome.skipped_reason:
        print(f"Nothing archived: {outcome.skipped_reason}.")
    for record in outcome.created:
        print(
            f"Archived period {record.period_id}: "
            f"{len(record.snapshot)} expenses, total {record.total:.2f}"
        )
    for period_id in outcome.reused:
        print(f"Period {period_id} was already archived.")
    print(f"Expenses removed from the working set: {outcome.removed}")
    print(f"Current period: {outcome.marker}")


async def _handle_continue(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    manager = ArchiveManager(gateway, config.budget.start_day)
    marker = await manager.mark_period_as_checked(args.uid, _reference_now(args))
    print(f"Current period acknowledged: {marker}")


# ---------------------------------------------------------------------------
# Expenses, categories, archives
# ---------------------------------------------------------------------------


async def _handle_expenses_add(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    expense_date = _parse_optional_date(args.expense_date)
    if expense_date is None:
        expense_date = _reference_now(args).date()
    log = ExpenseLog(gateway, args.uid, config.budget.start_day)
    stored = await log.log_expense(
        {
            "date": expense_date,
            "category": args.category,
            "amount": args.amount,
            "note": args.note,
        }
    )
    currency = config.budget.currency
    print(f"Expense logged: {stored.amount:.2f} {currency} on {stored.category}")
    print(
        f"Total spent on {expense_date.isoformat()}: "
        f"{daily_total(log.expenses, expense_date):.2f} {currency} "
        f"({len(expenses_on(log.expenses, expense_date))} expenses)"
    )


async def _handle_expenses_list(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    log = ExpenseLog(gateway, args.uid, config.budget.start_day)
    if not await log.load():
        raise SystemExit(log.failure.message)

    period = compute_period(_reference_now(args), config.budget.start_day)
    expenses = log.expenses
    if not args.show_all:
        expenses = [e for e in expenses if period.contains(e.date)]
        print(f"Applied period: {period.id} ({format_period_range(period)})")

    if not expenses:
        print("No expenses found.")
        return

    df = expenses_to_dataframe(expenses)
    df["date"] = df["date"].dt.date.astype(str)
    print()
    print(df.to_string(index=False))

    print()
    summary = summarize_by_category(expenses, period, log.categories)
    print(summary.to_string(index=False))

    total = sum(e.amount for e in expenses)
    print()
    print(f"Total expenses: {len(expenses)} | Total amount: {total:.2f}")


async def _handle_expenses_import(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    csv_path = Path(args.csv_path)
    if not csv_path.is_file():
        raise SystemExit(f"CSV file not found: {csv_path}")

    records: list[NewExpense] = read_expenses_csv(csv_path)
    for line, record in enumerate(records, start=2):
        try:
            await ensure_period_open(
                gateway, args.uid, record.date, config.budget.start_day
            )
        except ExpenseValidationError as exc:
            raise ExpenseValidationError(f"Line {line}: {exc}") from exc

    print(f"Importing {len(records)} expenses from {csv_path}...")
    imported = 0
    try:
        for record in records:
            await gateway.add_expense(args.uid, record)
            imported += 1
    except StoreUnavailable:
        print(
            f"Import interrupted: {imported} of {len(records)} expenses "
            "were saved."
        )
        raise
    print(f"Imported {imported} expenses.")


async def _handle_categories_add(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    category = await gateway.add_category(
        args.uid, parse_category_name(args.name), parse_amount(args.planned)
    )
    print(f"Category {category.name}: planned {category.planned_amount:.2f}")


async def _handle_categories_list(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    categories = await gateway.get_categories(args.uid)
    if not categories:
        print("No categories defined.")
        return
    for category in categories:
        print(f"{category.name:<24} {category.planned_amount:>12.2f}")


async def _handle_archives_list(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    records = await gateway.list_archive_records(args.uid)
    if not records:
        print("No archived periods.")
        return
    for record in records:
        print(
            f"{record.period_id}  {len(record.snapshot):>4} expenses  "
            f"{record.total:>12.2f}  archived {record.archived_at.isoformat()}"
        )


async def _handle_archives_show(
    args: argparse.Namespace, config: AppConfig, gateway: PersistenceGateway
) -> None:
    record = await gateway.get_archive_record(args.uid, args.period_id)
    if record is None:
        raise SystemExit(f"No archive found for period {args.period_id!r}.")

    print(f"Archived period {record.period_id} ({record.archived_at.isoformat()})")
    if not record.snapshot:
        print("The snapshot is empty.")
        return
    df = expenses_to_dataframe(record.snapshot)
    df["date"] = df["date"].dt.date.astype(str)
    print(df.to_string(index=False))
    print(f"Total amount: {record.total:.2f}")


_HANDLERS = {
    ("status", None): _handle_status,
    ("check", None): _handle_check,
    ("archive", None): _handle_archive,
    ("continue", None): _handle_continue,
    ("expenses", "add"): _handle_expenses_add,
    ("expenses", "list"): _handle_expenses_list,
    ("expenses", "import"): _handle_expenses_import,
    ("categories", "add"): _handle_categories_add,
    ("categories", "list"): _handle_categories_list,
    ("archives", "list"): _handle_archives_list,
    ("archives", "show"): _handle_archives_show,
}


def _resolve_handler(args: argparse.Namespace):
    sub = (
        getattr(args, "expenses_command", None)
        or getattr(args, "categories_command", None)
        or getattr(args, "archives_command", None)
    )
    return _HANDLERS.get((args.command, sub))


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the Budget Periods CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"budget_periods version {__version__}")
        return

    if args.command is None:
        parser.print_help()
        return

    handler = _resolve_handler(args)
    if handler is None:
        parser.error(f"Missing subcommand for {args.command!r}.")

    config = load_app_config(args.config_path)
    logging.basicConfig(
        level=args.log_level or config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.uid = args.uid or config.default_uid

    gateway = SQLiteGateway(config.database)
    try:
        asyncio.run(handler(args, config, gateway))
    except ValueError as exc:
        parser.error(str(exc))
    except StoreUnavailable as exc:
        raise SystemExit(f"Store unavailable: {exc}") from exc


if __name__ == "__main__":
    main()
