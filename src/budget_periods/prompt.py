# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
New-period prompt controller.

UI-agnostic glue between a front-end and the period engine:

1) `on_load()` checks for a rollover and, when there is one, returns the
   content of the prompt to display.
2) `choose("archive" | "continue")` runs the matching ArchiveManager
   operation, awaits it, reports the result through `notify` and only then
   calls `on_close`.

A failed action keeps the prompt open so the user can retry; retries are
safe because the underlying operations are idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from .archive import ArchiveManager
from .detector import PeriodCheck, check_user_period
from .errors import StoreUnavailable
from .gateway import PersistenceGateway
from .periods import Instant, format_period_range

logger = logging.getLogger(__name__)

ARCHIVE = "archive"
CONTINUE = "continue"


@dataclass(frozen=True)
class PromptAction:
    key: str
    label: str


PROMPT_ACTIONS = (
    PromptAction(ARCHIVE, "Archive & Start New Period"),
    PromptAction(CONTINUE, "Continue with Current Data"),
)


@dataclass(frozen=True)
class Notice:
    """A toast-like message for the user."""

    title: str
    description: str = ""
    destructive: bool = False


@dataclass(frozen=True)
class PromptView:
    """Content of the new-period prompt."""

    title: str
    period_range: str
    message: str
    actions: tuple[PromptAction, ...] = PROMPT_ACTIONS


class PromptController:
    """Drives the new-period prompt for one user session."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        manager: ArchiveManager,
        uid: str,
        *,
        on_close: Callable[[], None],
        notify: Optional[Callable[[Notice], None]] = None,
    ) -> None:
        self.gateway = gateway
        self.manager = manager
        self.uid = uid
        self.on_close = on_close
        self.notify = notify or (lambda notice: None)
        self.check: Optional[PeriodCheck] = None

    @property
    def is_open(self) -> bool:
        return self.check is not None

    async def on_load(self, now: Optional[Instant] = None) -> Optional[PromptView]:
        """
        Check for a rollover; return the prompt to show, or None.

        A store failure is reported through `notify` and yields no prompt;
        the check runs again on the next load.
        """
        try:
            check = await check_user_period(
                self.gateway, self.uid, self.manager.start_day, now
            )
        except StoreUnavailable:
            logger.exception("Rollover check failed for user %s", self.uid)
            self.notify(Notice("Could not check the budget period", destructive=True))
            return None

        if not check.is_new:
            self.check = None
            return None

        self.check = check
        return PromptView(
            title="New Budget Period Detected",
            period_range=format_period_range(check.current_period),
            message=(
                "It looks like you're in a new budget period. Would you like to "
                "archive your previous expenses and start fresh?"
            ),
        )

    async def choose(self, action: str, now: Optional[Instant] = None) -> bool:
        """
        Apply the user's decision. Returns True once the prompt is closed.
        """
        if action not in (ARCHIVE, CONTINUE):
            raise ValueError(f"Unknown prompt action: {action!r}")

        try:
            if action == ARCHIVE:
                await self.manager.archive_current_period(self.uid, now)
            else:
                await self.manager.mark_period_as_checked(self.uid, now)
        except StoreUnavailable:
            logger.exception("Prompt action %s failed for user %s", action, self.uid)
            self.notify(
                Notice(
                    "Something went wrong",
                    "The new period was not started. Please try again.",
                    destructive=True,
                )
            )
            return False

        if action == ARCHIVE:
            self.notify(
                Notice(
                    "New period started! 🎉",
                    "Previous expenses have been archived and your budget is "
                    "ready for the new month.",
                )
            )

        self.check = None
        self.on_close()
        return True
