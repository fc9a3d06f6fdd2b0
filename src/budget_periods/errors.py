# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Exception types for Budget Periods.

- StoreUnavailable: the persistence layer failed on a read or a write.
- ArchiveConflict: an archive record already exists for the period.
- InvalidMarkerState: the last acknowledged period marker is corrupted or
  points to a period after the current one.
- ExpenseValidationError: malformed expense or category input.
"""


class BudgetPeriodsError(Exception):
    """Base class for all Budget Periods errors."""


class StoreUnavailable(BudgetPeriodsError):
    """Raised when the underlying store cannot be read or written."""


class ArchiveConflict(BudgetPeriodsError):
    """Raised when an archive record already exists for a period."""

    def __init__(self, uid: str, period_id: str) -> None:
        super().__init__(
            f"An archive record already exists for period {period_id!r} "
            f"(user {uid!r})."
        )
        self.uid = uid
        self.period_id = period_id


class InvalidMarkerState(BudgetPeriodsError):
    """Raised when a period marker cannot be interpreted."""


class ExpenseValidationError(BudgetPeriodsError, ValueError):
    """Raised when an expense or category record fails validation."""
