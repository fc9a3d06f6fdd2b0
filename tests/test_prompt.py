from datetime import date, datetime
from decimal import Decimal

import pytest

from budget_periods.archive import ArchiveManager
from budget_periods.errors import StoreUnavailable
from budget_periods.gateway import MemoryGateway
from budget_periods.models import NewExpense
from budget_periods.prompt import ARCHIVE, CONTINUE, PromptController

JUNE_3 = datetime(2024, 6, 3, 9, 0)


class BrokenMarkerGateway(MemoryGateway):
    async def get_last_acknowledged_period(self, uid):
        raise StoreUnavailable("offline")


class FailingArchiveGateway(MemoryGateway):
    async def write_archive_record(self, uid, period_id, snapshot):
        raise StoreUnavailable("write rejected")


def make_controller(gateway, start_day=1):
    closed = []
    notices = []
    controller = PromptController(
        gateway,
        ArchiveManager(gateway, start_day),
        "alice",
        on_close=lambda: closed.append(True),
        notify=notices.append,
    )
    return controller, closed, notices


@pytest.mark.asyncio
async def test_on_load_shows_prompt_for_stale_marker():
    gateway = MemoryGateway()
    await gateway.set_last_acknowledged_period("alice", "2024-05")
    controller, _, _ = make_controller(gateway, start_day=15)

    view = await controller.on_load(datetime(2024, 6, 20))

    assert view is not None
    assert view.title == "New Budget Period Detected"
    assert view.period_range == "Jun 15, 2024 – Jul 14, 2024"
    assert [a.key for a in view.actions] == [ARCHIVE, CONTINUE]
    assert controller.is_open


@pytest.mark.asyncio
async def test_on_load_shows_nothing_when_period_is_acknowledged():
    gateway = MemoryGateway()
    await gateway.set_last_acknowledged_period("alice", "2024-06")
    controller, _, notices = make_controller(gateway)

    assert await controller.on_load(JUNE_3) is None
    assert not controller.is_open
    assert notices == []


@pytest.mark.asyncio
async def test_on_load_failure_is_reported_without_prompt():
    controller, closed, notices = make_controller(BrokenMarkerGateway())

    assert await controller.on_load(JUNE_3) is None
    assert len(notices) == 1
    assert notices[0].destructive
    assert closed == []


@pytest.mark.asyncio
async def test_choose_archive_notifies_then_closes():
    gateway = MemoryGateway()
    await gateway.set_last_acknowledged_period("alice", "2024-05")
    await gateway.add_expense(
        "alice", NewExpense(date(2024, 5, 10), "Food", Decimal("4.20"))
    )
    controller, closed, notices = make_controller(gateway)
    await controller.on_load(JUNE_3)

    assert await controller.choose(ARCHIVE, JUNE_3) is True

    assert closed == [True]
    assert notices[0].title == "New period started! 🎉"
    assert not controller.is_open
    assert await gateway.get_expenses("alice") == []
    assert await gateway.get_last_acknowledged_period("alice") == "2024-06"


@pytest.mark.asyncio
async def test_choose_continue_closes_silently():
    gateway = MemoryGateway()
    await gateway.set_last_acknowledged_period("alice", "2024-05")
    await gateway.add_expense(
        "alice", NewExpense(date(2024, 5, 10), "Food", Decimal("4.20"))
    )
    controller, closed, notices = make_controller(gateway)
    await controller.on_load(JUNE_3)

    assert await controller.choose(CONTINUE, JUNE_3) is True

    assert closed == [True]
    assert notices == []
    assert len(await gateway.get_expenses("alice")) == 1
    assert await gateway.get_archive_record("alice", "2024-05") is None
    assert await gateway.get_last_acknowledged_period("alice") == "2024-06"


@pytest.mark.asyncio
async def test_failed_archive_keeps_prompt_open():
    gateway = FailingArchiveGateway()
    await gateway.set_last_acknowledged_period("alice", "2024-05")
    controller, closed, notices = make_controller(gateway)
    await controller.on_load(JUNE_3)

    assert await controller.choose(ARCHIVE, JUNE_3) is False

    assert closed == []
    assert controller.is_open
    assert notices[0].title == "Something went wrong"
    assert notices[0].destructive
    assert await gateway.get_last_acknowledged_period("alice") == "2024-05"


@pytest.mark.asyncio
async def test_unknown_action_is_rejected():
    controller, closed, _ = make_controller(MemoryGateway())

    with pytest.raises(ValueError):
        await controller.choose("delete-everything", JUNE_3)
    assert closed == []
