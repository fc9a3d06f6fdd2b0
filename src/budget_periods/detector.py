# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Rollover detection.

Compares the period implied by "now" with the user's last acknowledged
period marker:

    marker missing            -> new period (first use)
    marker == current id      -> nothing to do
    marker <  current id      -> new period (rollover)
    marker >  current id      -> not new; clock moved back or marker is wrong
    marker malformed          -> not new; corrupted marker

The last two cases are logged and never re-trigger the prompt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Literal, Optional

from .errors import InvalidMarkerState
from .periods import Instant, Period, compare_period_ids, compute_period

if TYPE_CHECKING:
    from .gateway import PersistenceGateway

logger = logging.getLogger(__name__)

MarkerState = Literal["missing", "current", "stale", "ahead", "corrupt"]


@dataclass(frozen=True)
class PeriodCheck:
    """Outcome of a rollover check."""

    is_new: bool
    current_period: Period
    last_acknowledged: Optional[str]
    marker_state: MarkerState


def classify_marker(last_acknowledged: Optional[str], current_id: str) -> MarkerState:
    """Position the marker relative to the current period id."""
    if last_acknowledged is None:
        return "missing"
    try:
        order = compare_period_ids(last_acknowledged, current_id)
    except InvalidMarkerState:
        return "corrupt"
    if order == 0:
        return "current"
    return "stale" if order < 0 else "ahead"


def check_for_new_period(
    last_acknowledged: Optional[str],
    now: Instant,
    start_day: int,
) -> PeriodCheck:
    """
    Decide whether a new budget period started since the last acknowledgement.

    Pure apart from logging: safe to call on every load.
    """
    current = compute_period(now, start_day)
    state = classify_marker(last_acknowledged, current.id)

    if state == "ahead":
        logger.warning(
            "Last acknowledged period %s is after the current period %s; "
            "check the system clock or the stored marker.",
            last_acknowledged,
            current.id,
        )
    elif state == "corrupt":
        logger.warning(
            "Ignoring malformed last acknowledged period %r.", last_acknowledged
        )

    return PeriodCheck(
        is_new=state in ("missing", "stale"),
        current_period=current,
        last_acknowledged=last_acknowledged,
        marker_state=state,
    )


async def check_user_period(
    gateway: PersistenceGateway,
    uid: str,
    start_day: int,
    now: Optional[Instant] = None,
) -> PeriodCheck:
    """Read the user's marker once and run `check_for_new_period`."""
    marker = await gateway.get_last_acknowledged_period(uid)
    return check_for_new_period(
        marker, now if now is not None else datetime.now(), start_day
    )
