"""Tests for the counter delta engine."""
from __future__ import annotations

import pytest

from conftest import make_sample
from ifstat.counters import (
    AMBIGUOUS_SPEED,
    COUNTER_RESET,
    MISSING_COUNTER,
    NARROW_MODULUS,
    SPEED_SATURATED,
    UNREADABLE_COUNTER,
    WIDE_MODULUS,
    compute_rate,
    counter_delta,
    resolve_speed,
)
from ifstat.schemas import MISSING, Unreadable


def _pair(prev_fields: dict, cur_fields: dict, elapsed: float = 10.0):
    previous = make_sample(1, timestamp=1000.0, **prev_fields)
    current = make_sample(1, timestamp=1000.0 + elapsed, **cur_fields)
    return current, previous


# =========================================================================
# Plain deltas and wraparound
# =========================================================================


@pytest.mark.parametrize("prev, now", [(0, 0), (5, 5), (100, 250), (0, NARROW_MODULUS - 1)])
def test_narrow_delta_without_wrap(prev, now):
    current, previous = _pair({"in_errors": prev}, {"in_errors": now}, elapsed=1)
    assert compute_rate(current, previous, 1, "in_errors").value == now - prev


def test_narrow_wrap_adds_two_to_the_32():
    prev, now = NARROW_MODULUS - 100, 50
    current, previous = _pair({"in_octets": prev}, {"in_octets": now}, elapsed=1)
    result = compute_rate(current, previous, 1, "in_octets", "hc_in_octets")
    assert result.value == NARROW_MODULUS + now - prev == 150
    assert result.diagnostics == []


def test_wide_wrap_adds_two_to_the_64():
    prev, now = WIDE_MODULUS - 10, 5
    current, previous = _pair({"hc_in_octets": prev}, {"hc_in_octets": now}, elapsed=1)
    result = compute_rate(current, previous, 1, "in_octets", "hc_in_octets")
    assert result.value == WIDE_MODULUS + now - prev == 15


def test_counter_delta_helper():
    assert counter_delta(10, 4, NARROW_MODULUS) == 6
    assert counter_delta(4, 10, NARROW_MODULUS) == NARROW_MODULUS - 6


def test_rate_is_per_second():
    current, previous = _pair({"hc_in_octets": 1000}, {"hc_in_octets": 6000}, elapsed=10)
    assert compute_rate(current, previous, 10, "in_octets", "hc_in_octets").value == 500


def test_wide_preferred_over_narrow():
    current, previous = _pair(
        {"in_octets": 100, "hc_in_octets": 100},
        {"in_octets": 50, "hc_in_octets": 300},
        elapsed=1,
    )
    # the narrow counter would have wrapped; the wide one did not
    assert compute_rate(current, previous, 1, "in_octets", "hc_in_octets").value == 200


def test_falls_back_to_narrow_when_wide_missing_in_previous():
    current, previous = _pair(
        {"in_octets": 100},
        {"in_octets": 300, "hc_in_octets": 300},
        elapsed=2,
    )
    assert compute_rate(current, previous, 2, "in_octets", "hc_in_octets").value == 100


# =========================================================================
# Conditions
# =========================================================================


def test_discontinuity_change_suppresses_rate():
    current, previous = _pair(
        {"hc_in_octets": 100, "discontinuity": 5},
        {"hc_in_octets": 200, "discontinuity": 9},
    )
    result = compute_rate(current, previous, 10, "in_octets", "hc_in_octets")
    assert result.value is None
    assert [d.kind for d in result.diagnostics] == [COUNTER_RESET]


def test_discontinuity_newly_present_is_a_reset():
    current, previous = _pair({"hc_in_octets": 100}, {"hc_in_octets": 200, "discontinuity": 0})
    result = compute_rate(current, previous, 10, "in_octets", "hc_in_octets")
    assert result.value is None
    assert result.diagnostics[0].kind == COUNTER_RESET


def test_discontinuity_missing_in_current_is_ignored():
    current, previous = _pair(
        {"hc_in_octets": 100, "discontinuity": 3},
        {"hc_in_octets": 200, "discontinuity": MISSING},
    )
    assert compute_rate(current, previous, 10, "in_octets", "hc_in_octets").value == 10


def test_unreadable_counter():
    current, previous = _pair(
        {"in_errors": 10},
        {"in_errors": Unreadable(raw="garbage")},
    )
    result = compute_rate(current, previous, 10, "in_errors", metric="in errors")
    assert result.value is None
    assert result.diagnostics[0].kind == UNREADABLE_COUNTER
    assert result.diagnostics[0].metric == "in errors"
    assert "garbage" in str(result.diagnostics[0])


def test_missing_counter():
    current, previous = _pair({}, {"in_errors": MISSING})
    result = compute_rate(current, previous, 10, "in_errors")
    assert result.value is None
    assert result.diagnostics[0].kind == MISSING_COUNTER


def test_zero_elapsed_yields_nothing():
    current, previous = _pair({"in_errors": 1}, {"in_errors": 2}, elapsed=0)
    result = compute_rate(current, previous, 0, "in_errors")
    assert result.value is None
    assert result.diagnostics == []


# =========================================================================
# Speed
# =========================================================================


def test_speed_from_if_speed():
    sample = make_sample(speed=100_000_000, high_speed=100)
    assert resolve_speed(sample) == (100_000_000, [])


def test_saturated_speed_uses_high_speed():
    sample = make_sample(speed=SPEED_SATURATED, high_speed=10_000)
    assert resolve_speed(sample) == (10_000_000_000, [])


def test_saturated_speed_without_high_speed_is_ambiguous():
    sample = make_sample(speed=SPEED_SATURATED, high_speed=MISSING)
    speed, diags = resolve_speed(sample)
    assert speed is None
    assert diags[0].kind == AMBIGUOUS_SPEED


def test_speed_override_wins():
    sample = make_sample(speed=0)
    assert resolve_speed(sample, override=1_000_000) == (1_000_000, [])
