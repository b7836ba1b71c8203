import math
from datetime import datetime, timedelta, timezone
from itertools import permutations

import pytest

from caffeine_dash.core.caffeine_engine import (
    carryover_series,
    dose_timeline,
    lookback_hours,
    resolve_half_life_hours,
    residual_body_mg,
    simulate,
)
from caffeine_dash.core.models import (
    BodyProfile,
    BrewEvent,
    SimulationOptions,
    from_epoch_ms,
    to_epoch_ms,
)

ESPRESSO_MG = 38 * 2.1 * 0.99


def _round(x):
    return int(math.floor(x + 0.5))


def _espresso(ms, **kwargs):
    return BrewEvent(from_epoch_ms(ms), "espresso", **kwargs)


def _hourly(start_ms, end_ms, **kwargs):
    return SimulationOptions(start_ms=start_ms, end_ms=end_ms, grid_minutes=60, **kwargs)


# ── Scenarios ────────────────────────────────────────────────────────

def test_single_espresso_point(at):
    points = simulate([_espresso(at(8))], BodyProfile(), _hourly(at(8), at(9)))
    assert len(points) == 1
    assert points[0].intake_mg == _round(ESPRESSO_MG) == 79
    assert points[0].body_mg == 79
    assert points[0].time_iso == "2024-03-05T08:00:00.000Z"


def test_single_espresso_decays_hourly(at):
    points = simulate([_espresso(at(8))], BodyProfile(), _hourly(at(8), at(14)))
    assert len(points) == 6
    levels = [p.body_mg for p in points]
    assert all(a > b for a, b in zip(levels, levels[1:]))
    # last point is 13:00, five hours (one half-life) after the dose
    assert levels[-1] == _round(ESPRESSO_MG * 2 ** (-5 / 5))
    assert [p.intake_mg for p in points] == [79, 0, 0, 0, 0, 0]


def test_second_espresso_stacks_on_remainder(at):
    events = [_espresso(at(8)), _espresso(at(10))]
    points = simulate(events, BodyProfile(), _hourly(at(8), at(12)))
    assert points[2].intake_mg == 79
    assert points[2].body_mg == _round(ESPRESSO_MG + ESPRESSO_MG * 2 ** (-2 / 5))


# ── Properties ───────────────────────────────────────────────────────

def test_no_events_gives_zero_series(at):
    points = simulate([], BodyProfile(), SimulationOptions(), now_ms=at(12))
    assert len(points) == 96
    assert all(p.intake_mg == 0 and p.body_mg == 0 and p.blood_mg_per_l == 0 for p in points)


def test_levels_never_negative(at):
    events = [BrewEvent(from_epoch_ms(at(8)), "v60", amount_ml=-200), _espresso(at(9))]
    points = simulate(events, BodyProfile(), SimulationOptions(start_ms=at(7), end_ms=at(12)))
    assert all(p.body_mg >= 0 and p.intake_mg >= 0 and p.blood_mg_per_l >= 0 for p in points)
    assert points[4].intake_mg == 0


def test_monotone_decay_between_doses(at):
    events = [_espresso(at(8)), _espresso(at(11))]
    points = simulate(events, BodyProfile(), SimulationOptions(start_ms=at(8), end_ms=at(16)))
    by_time = {p.timestamp.hour * 60 + p.timestamp.minute: p.blood_mg_per_l for p in points}
    first = [by_time[m] for m in sorted(by_time) if 8 * 60 <= m < 11 * 60]
    second = [by_time[m] for m in sorted(by_time) if m >= 11 * 60]
    assert all(a > b for a, b in zip(first, first[1:]))
    assert all(a > b for a, b in zip(second, second[1:]))


def test_dose_is_linear_in_volume(at):
    opts = _hourly(at(8), at(12))
    one = simulate([BrewEvent(from_epoch_ms(at(8)), "v60", amount_ml=150)], BodyProfile(), opts)
    two = simulate([BrewEvent(from_epoch_ms(at(8)), "v60", amount_ml=300)], BodyProfile(), opts)
    for a, b in zip(one, two):
        assert b.blood_mg_per_l == pytest.approx(2 * a.blood_mg_per_l)


def test_event_order_does_not_matter(at):
    events = [
        _espresso(at(9)),
        BrewEvent(from_epoch_ms(at(9)), "v60", amount_ml=250),
        BrewEvent(from_epoch_ms(at(7, 30)), "moka"),
        _espresso(at(11), mg=120),
    ]
    opts = SimulationOptions(start_ms=at(8), end_ms=at(14))
    expected = simulate(events, BodyProfile(), opts)
    for perm in permutations(events):
        assert simulate(list(perm), BodyProfile(), opts) == expected


def test_dose_before_window_carries_over_without_intake(at):
    points = simulate([_espresso(at(6))], BodyProfile(), _hourly(at(8), at(10)))
    assert [p.intake_mg for p in points] == [0, 0]
    assert points[0].body_mg == _round(ESPRESSO_MG * 2 ** (-2 / 5))


def test_future_dose_contributes_nothing(at):
    points = simulate([_espresso(at(11))], BodyProfile(), _hourly(at(8), at(11)))
    assert all(p.body_mg == 0 and p.intake_mg == 0 for p in points)


def test_intake_is_bucketed_per_step(at):
    events = [_espresso(at(8, 10)), _espresso(at(8, 50))]
    points = simulate(events, BodyProfile(), _hourly(at(8), at(10)))
    assert points[0].intake_mg == _round(2 * ESPRESSO_MG)


def test_concentration_uses_distribution_volume(at):
    body = BodyProfile(weight_kg=80)
    points = simulate([_espresso(at(8))], body, _hourly(at(8), at(9)))
    assert points[0].blood_mg_per_l == pytest.approx(ESPRESSO_MG / 48)


def test_half_life_override(at):
    opts = _hourly(at(8), at(11), half_life_hours=2)
    points = simulate([_espresso(at(8))], BodyProfile(half_life_hours=8), opts)
    assert points[2].body_mg == _round(ESPRESSO_MG / 2)


def test_profile_factors_scale_dose(at):
    body = BodyProfile(bioavailability=0.5, caffeine_sensitivity=1.5)
    points = simulate([_espresso(at(8))], body, _hourly(at(8), at(9)))
    assert points[0].intake_mg == _round(38 * 2.1 * 0.75)


def test_density_override(at):
    opts = _hourly(at(8), at(9), mg_per_ml={"espresso": 3.0})
    points = simulate([_espresso(at(8))], BodyProfile(), opts)
    assert points[0].intake_mg == _round(38 * 3.0 * 0.99)


def test_events_as_mappings_and_bad_timestamps(at):
    events = [
        {"timestamp": "2024-03-05T08:00:00Z", "type": "espresso"},
        {"timestamp": "not a date", "type": "espresso"},
        {"type": "espresso"},
    ]
    points = simulate(events, BodyProfile(), _hourly(at(8), at(9)))
    assert points[0].intake_mg == 79


def test_aligned_options(at):
    opts = SimulationOptions(start_ms=at(8, 30), end_ms=at(11, 15), align_to_hour=True)
    points = simulate([_espresso(at(8, 45))], BodyProfile(), opts)
    assert [p.timestamp.hour for p in points] == [8, 9, 10]
    assert points[0].intake_mg == 79
    assert points[0].body_mg == 0


def test_dose_timeline_sorted(at):
    doses = dose_timeline([_espresso(at(10)), _espresso(at(8))], BodyProfile())
    assert [t for t, _ in doses] == [at(8), at(10)]


# ── Parameters / carry-over ──────────────────────────────────────────

def test_half_life_resolution():
    assert resolve_half_life_hours(BodyProfile(), SimulationOptions()) == 5
    assert resolve_half_life_hours(BodyProfile(half_life_hours=6), SimulationOptions()) == 6
    assert resolve_half_life_hours(BodyProfile(), SimulationOptions(half_life_hours=float("nan"))) == 5
    assert resolve_half_life_hours(BodyProfile(), SimulationOptions(half_life_hours=0)) == pytest.approx(1 / 60)


def test_lookback_hours():
    assert lookback_hours() == 24
    assert lookback_hours(5) == 24
    assert lookback_hours(8) == 32


def test_residual_excludes_dose_at_instant(at):
    events = [_espresso(at(22, day=4)), _espresso(at(0))]
    residual = residual_body_mg(events, BodyProfile(), at(0))
    assert residual == pytest.approx(ESPRESSO_MG * 2 ** (-2 / 5))


def test_carryover_series(at):
    events = [_espresso(at(22, day=4)), _espresso(at(20, day=5))]
    values = carryover_series(events, BodyProfile(), [at(0), at(0, day=6)])
    assert values[0] == _round(ESPRESSO_MG * 2 ** (-2 / 5))
    later = ESPRESSO_MG * 2 ** (-26 / 5) + ESPRESSO_MG * 2 ** (-4 / 5)
    assert values[1] == _round(later)


@pytest.mark.parametrize("bounds", [
    {"start_ms": float("nan"), "end_ms": 3_600_000},
    {"start_ms": 0, "end_ms": float("inf")},
    {"start_ms": float("-inf")},
])
def test_non_finite_window_gives_no_points(at, bounds):
    assert simulate([_espresso(at(8))], BodyProfile(), SimulationOptions(**bounds)) == []


@pytest.mark.parametrize("timestamp", [
    1709625600000,
    1709625600000.0,
    datetime(2024, 3, 5, 8, 0),
    datetime(2024, 3, 5, 9, 0, tzinfo=timezone(timedelta(hours=1))),
    "2024-03-05T08:00:00Z",
    "2024-03-05T08:00:00",
])
def test_timestamp_forms(at, timestamp):
    assert to_epoch_ms(timestamp) == at(8)
    points = simulate([BrewEvent(timestamp, "espresso")], BodyProfile(), _hourly(at(8), at(9)))
    assert points[0].intake_mg == 79


@pytest.mark.parametrize("timestamp", [None, True, "", "soon", float("nan"), object()])
def test_unparseable_timestamps(timestamp):
    assert to_epoch_ms(timestamp) is None


def test_junk_events_are_skipped(at):
    events = [None, 42, "espresso", ["2024-03-05T08:00:00Z"], _espresso(at(8))]
    points = simulate(events, BodyProfile(), _hourly(at(8), at(9)))
    assert points[0].intake_mg == 79
