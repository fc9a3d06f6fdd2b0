import logging
from datetime import datetime

import pytest

from budget_periods.detector import check_for_new_period, check_user_period
from budget_periods.gateway import MemoryGateway


def test_rollover_detected_when_marker_is_previous_period() -> None:
    """start_day=1, marker 2024-05, now 2024-06-03 -> new period 2024-06."""
    check = check_for_new_period("2024-05", datetime(2024, 6, 3), 1)

    assert check.is_new is True
    assert check.current_period.id == "2024-06"
    assert check.marker_state == "stale"


def test_missing_marker_is_new() -> None:
    check = check_for_new_period(None, datetime(2024, 6, 3), 1)

    assert check.is_new is True
    assert check.marker_state == "missing"


def test_marker_equal_to_current_period_is_not_new() -> None:
    check = check_for_new_period("2024-05", datetime(2024, 6, 10), 15)

    assert check.is_new is False
    assert check.marker_state == "current"


def test_marker_ahead_of_now_is_not_new_and_logged(caplog) -> None:
    """A marker in the future (clock moved back) never re-triggers the prompt."""
    with caplog.at_level(logging.WARNING, logger="budget_periods.detector"):
        check = check_for_new_period("2024-08", datetime(2024, 6, 3), 1)

    assert check.is_new is False
    assert check.marker_state == "ahead"
    assert "2024-08" in caplog.text


def test_corrupted_marker_is_not_new_and_logged(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="budget_periods.detector"):
        check = check_for_new_period("not-a-period", datetime(2024, 6, 3), 1)

    assert check.is_new is False
    assert check.marker_state == "corrupt"
    assert "not-a-period" in caplog.text


def test_marker_several_periods_behind_is_new() -> None:
    check = check_for_new_period("2023-11", datetime(2024, 6, 3), 1)
    assert check.is_new is True


@pytest.mark.asyncio
async def test_check_user_period_reads_marker_from_gateway() -> None:
    gateway = MemoryGateway()
    await gateway.set_last_acknowledged_period("alice", "2024-06")

    check = await check_user_period(gateway, "alice", 1, datetime(2024, 6, 20))
    assert check.is_new is False
    assert check.last_acknowledged == "2024-06"

    other = await check_user_period(gateway, "bob", 1, datetime(2024, 6, 20))
    assert other.is_new is True
    assert other.last_acknowledged is None
