# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for Budget Periods.

This module reads expenses from a CSV file and turns every row into a
validated `NewExpense`.

Expected input format
---------------------
Column names are case-insensitive:

    date, category, amount, note

- ``date``:     date of the expense (YYYY-MM-DD)
- ``category``: category name
- ``amount``:   non-negative amount
- ``note``:     optional free text

The column ``description`` is accepted as an alias for ``note``. Any other
columns are ignored.

If the CSV structure does not match, or a row is invalid, a ValueError is
raised (ExpenseValidationError is a ValueError) naming the offending line.
"""

import os
from typing import Union

import pandas as pd

from .errors import ExpenseValidationError
from .models import NewExpense


def read_expenses_csv(path: Union[str, "os.PathLike[str]"]) -> list[NewExpense]:
    """
    Read expenses from a CSV file.

    Parameters
    ----------
    path:
        Path to the CSV file.

    Returns
    -------
    list[NewExpense]
        One validated record per row, in file order.

    Raises
    ------
    ValueError
        If required columns are missing or a row cannot be validated.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)

    df.columns = [c.lower().strip() for c in df.columns]
    cols = set(df.columns)

    if "description" in cols and "note" not in cols:
        df = df.rename(columns={"description": "note"})
        cols = set(df.columns)

    required = {"date", "category", "amount"}
    if not required.issubset(cols):
        raise ValueError(
            "Invalid expenses CSV structure. Expected columns: "
            "date, category, amount[, note] "
            "(column names are case-insensitive; 'description' is accepted "
            "as an alias for 'note')."
        )

    if "note" not in cols:
        df["note"] = ""

    expenses: list[NewExpense] = []
    for index, row in enumerate(df.to_dict(orient="records")):
        try:
            expenses.append(NewExpense.from_raw(row))
        except ExpenseValidationError as exc:
            # +2: header line and 1-based numbering
            raise ExpenseValidationError(f"Line {index + 2}: {exc}") from exc

    return expenses
