# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Budget Periods
--------------

A personal budgeting tool that tracks expenses against categories within
recurring monthly budget periods, and asks the user to archive or carry
forward their data when a new period begins.

Main capabilities:
- budget period computation with a configurable start day (1..28),
- rollover detection against the last acknowledged period,
- idempotent archive-or-continue transitions,
- an async persistence contract with SQLite and in-memory implementations,
- expense logging with optimistic updates that roll back on failure,
- CSV import of expenses and a command-line interface.

Version: 0.2.0

Usage:
    python -m budget_periods.cli --help
"""

__all__ = ["periods", "detector", "archive", "gateway"]

__version__ = "0.2.0"
