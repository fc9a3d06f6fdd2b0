# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Archive-or-continue transitions.

When a rollover is detected the user either:

- archives: the expenses of the elapsed period(s) are snapshotted into
  immutable ArchiveRecords and leave the active working set, or
- continues: nothing moves, the marker simply catches up.

Both operations end by moving the last acknowledged period marker to the
current period and are idempotent per period:

- an ArchiveRecord is keyed by period id; when one already exists the
  snapshot is not rewritten, only the removal of its expenses is retried;
- a concurrent writer (another device) surfaces as ArchiveConflict and is
  handled exactly like an existing record;
- the marker is written last, so any store failure leaves the rollover
  pending and the whole operation can simply be invoked again.

The marker never moves backwards: a marker already ahead of the current
period is left untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .detector import check_for_new_period
from .errors import ArchiveConflict
from .gateway import PersistenceGateway
from .models import ArchiveRecord, Expense
from .periods import (
    Instant,
    Period,
    compute_period,
    iter_periods,
    period_from_id,
    previous_period,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveOutcome:
    """What an archive call did."""

    current_period: Period
    marker: Optional[str]
    created: tuple[ArchiveRecord, ...] = ()
    reused: tuple[str, ...] = ()
    removed: int = 0
    skipped_reason: Optional[str] = None

    @property
    def archived_period_ids(self) -> list[str]:
        return [r.period_id for r in self.created] + list(self.reused)


@dataclass
class _Progress:
    created: list[ArchiveRecord] = field(default_factory=list)
    reused: list[str] = field(default_factory=list)
    removed: int = 0


class ArchiveManager:
    """
    Executes the user's decision on rollover.

    Parameters
    ----------
    gateway:
        Store holding expenses, archive records and the period marker.
    start_day:
        Day of month on which budget periods start.
    clock:
        Callable returning "now"; defaults to `datetime.now`.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        start_day: int,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.gateway = gateway
        self.start_day = start_day
        self.clock = clock or datetime.now

    async def archive_current_period(
        self, uid: str, now: Optional[Instant] = None
    ) -> ArchiveOutcome:
        """
        Archive the elapsed period(s) and start the current one.

        The previous period is the one named by the stale marker or, without
        a usable marker, the period right before the current one. Expenses
        older than that (left behind by earlier "continue" decisions) are
        archived under their own periods, so that every expense dated before
        the current period ends up in exactly one ArchiveRecord.

        Raises
        ------
        StoreUnavailable
            If any read or write fails. The marker is then left unchanged.
        """
        marker = await self.gateway.get_last_acknowledged_period(uid)
        check = check_for_new_period(marker, now or self.clock(), self.start_day)
        current = check.current_period

        if check.marker_state == "ahead":
            return ArchiveOutcome(
                current_period=current,
                marker=marker,
                skipped_reason="marker is ahead of the current period",
            )

        if check.marker_state == "current":
            await self.gateway.set_last_acknowledged_period(uid, current.id)
            return ArchiveOutcome(
                current_period=current,
                marker=current.id,
                skipped_reason="current period already acknowledged",
            )

        if check.marker_state == "stale":
            previous = period_from_id(marker, self.start_day, current.start.tzinfo)
        else:
            previous = previous_period(current, self.start_day)

        expenses = await self.gateway.get_expenses(uid)
        backlog = [e for e in expenses if e.date < current.first_day]
        first = self._first_elapsed_period(previous, backlog, current)

        progress = _Progress()
        for period in iter_periods(first, current, self.start_day):
            in_period = [e for e in backlog if period.contains(e.date)]
            if period.id != previous.id and not in_period:
                continue
            await self._archive_period(uid, period, in_period, progress)

        await self.gateway.set_last_acknowledged_period(uid, current.id)
        logger.info(
            "Archived periods %s for user %s; marker %s -> %s",
            [r.period_id for r in progress.created] + progress.reused,
            uid,
            marker,
            current.id,
        )

        return ArchiveOutcome(
            current_period=current,
            marker=current.id,
            created=tuple(progress.created),
            reused=tuple(progress.reused),
            removed=progress.removed,
        )

    async def mark_period_as_checked(
        self, uid: str, now: Optional[Instant] = None
    ) -> Optional[str]:
        """
        Acknowledge the current period without moving any data.

        Returns the marker value after the call.
        """
        marker = await self.gateway.get_last_acknowledged_period(uid)
        check = check_for_new_period(marker, now or self.clock(), self.start_day)

        if check.marker_state == "ahead":
            return marker

        target = check.current_period.id
        await self.gateway.set_last_acknowledged_period(uid, target)
        if marker != target:
            logger.info(
                "User %s continued into period %s (was %s)", uid, target, marker
            )
        return target

    def _first_elapsed_period(
        self,
        previous: Period,
        backlog: Sequence[Expense],
        current: Period,
    ) -> Period:
        if not backlog:
            return previous
        oldest = min(e.date for e in backlog)
        oldest_id = compute_period(oldest, self.start_day).id
        oldest_period = period_from_id(oldest_id, self.start_day, current.start.tzinfo)
        return oldest_period if oldest_period.start < previous.start else previous

    async def _archive_period(
        self,
        uid: str,
        period: Period,
        expenses: Sequence[Expense],
        progress: _Progress,
    ) -> None:
        existing = await self.gateway.get_archive_record(uid, period.id)

        if existing is None:
            snapshot = sorted(expenses, key=lambda e: (e.date, e.id))
            try:
                record = await self.gateway.write_archive_record(
                    uid, period.id, snapshot
                )
            except ArchiveConflict:
                logger.info(
                    "Period %s was archived concurrently for user %s",
                    period.id,
                    uid,
                )
                existing = await self.gateway.get_archive_record(uid, period.id)
                if existing is None:
                    raise
            else:
                progress.created.append(record)
                progress.removed += await self.gateway.remove_expenses(
                    uid, period.id, record.expense_ids
                )
                return

        # Snapshot already stored: only retry the removal of what it holds.
        progress.reused.append(period.id)
        progress.removed += await self.gateway.remove_expenses(
            uid, period.id, existing.expense_ids
        )
