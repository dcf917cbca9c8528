"""Delay classification."""

from datetime import timedelta

import pytest

from conftest import at
from o2d.delay import DelayStatus, classify

PLANNED = at(12)


def test_completed_late_is_delayed():
    info = classify(PLANNED, PLANNED + timedelta(minutes=90))

    assert info.status is DelayStatus.DELAYED
    assert (info.hours, info.minutes, info.sign) == (1, 30, "+")
    assert info.display == "1h 30m Delay"
    assert info.is_delayed
    assert not info.pending


def test_completed_early_is_ahead():
    info = classify(PLANNED, PLANNED - timedelta(minutes=90))

    assert info.status is DelayStatus.AHEAD
    assert info.sign == "-"
    assert info.display == "1h 30m Ahead"
    assert not info.is_delayed


@pytest.mark.parametrize("offset", [timedelta(seconds=30), timedelta(seconds=-60), timedelta(0)])
def test_within_a_minute_is_on_time(offset):
    info = classify(PLANNED, PLANNED + offset)

    assert info.status is DelayStatus.ON_TIME
    assert info.display == "On Time"


def test_pending_step_before_target_shows_time_left():
    info = classify(PLANNED, None, now=PLANNED - timedelta(minutes=45))

    assert info.status is DelayStatus.LEFT
    assert info.pending
    assert info.display == "45m Left"


def test_pending_step_past_target_grows_with_clock():
    early = classify(PLANNED, None, now=PLANNED + timedelta(minutes=5))
    late = classify(PLANNED, None, now=PLANNED + timedelta(hours=3, minutes=5))

    assert early.display == "5m Delay"
    assert late.display == "3h 5m Delay"
    assert late.magnitude > early.magnitude


def test_no_planned_time_has_no_target():
    info = classify(None, at(13))

    assert info.status is DelayStatus.NO_TARGET
    assert info.display == ""
    assert not info.is_delayed


def test_exactly_on_target_has_positive_sign():
    assert classify(PLANNED, PLANNED).sign == "+"
    assert classify(PLANNED, PLANNED - timedelta(seconds=1)).sign == "-"
