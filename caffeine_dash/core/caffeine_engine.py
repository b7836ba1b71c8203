"""
Caffeine Engine: one-compartment pharmacokinetic model for coffee intake.

Each brew is an instantaneous dose that decays first-order:
  A_i(t) = D_i * exp(-k * (t - t_i)) * H(t - t_i)
  k      = ln(2) / t_half                    (per minute)

Body caffeine is the linear superposition of all doses (Heaviside: future
doses contribute 0), concentration divides by the distribution volume:
  body_mg(t)        = SUM_i A_i(t)
  blood_mg_per_l(t) = body_mg(t) / Vd_L

Doses dated before the sampling window still decay into it (carry-over)
but are never reported as intake inside it.

The engine is pure: no I/O, no module-level state, safe to call from any
number of request handlers at once.
"""

import math
from typing import Iterable, Optional, Union

from caffeine_dash.config import (
    DEFAULT_BIOAVAILABILITY,
    DEFAULT_HALF_LIFE_HOURS,
    DEFAULT_SENSITIVITY,
    LOOKBACK_HALF_LIVES,
    MIN_HALF_LIFE_HOURS,
    MIN_LOOKBACK_HOURS,
)
from caffeine_dash.core.distribution import distribution_volume_liters
from caffeine_dash.core.dosing import DoseTables, estimate_dose
from caffeine_dash.core.grid import build_grid
from caffeine_dash.core.models import (
    MINUTE_MS,
    BodyProfile,
    BrewEvent,
    CaffeinePoint,
    SimulationOptions,
    as_float,
    from_epoch_ms,
)

LN2 = math.log(2)

EventLike = Union[BrewEvent, dict]


# ── Parameters ───────────────────────────────────────────────────────

def resolve_half_life_hours(body: BodyProfile, options: SimulationOptions) -> float:
    """options -> body profile -> 5 h; floored at one minute."""
    half_life = as_float(options.half_life_hours)
    if half_life is None:
        half_life = as_float(body.half_life_hours)
    if half_life is None:
        half_life = DEFAULT_HALF_LIFE_HOURS
    return max(MIN_HALF_LIFE_HOURS, half_life)


def elimination_rate_per_minute(half_life_hours: float) -> float:
    return LN2 / (half_life_hours * 60.0)


def _factor(value, default: float) -> float:
    number = as_float(value)
    if number is None:
        return default
    return max(0.0, number)


def lookback_hours(half_life_hours: Optional[float] = None) -> int:
    """How far before a window to fetch events so carry-over is complete."""
    half_life = as_float(half_life_hours)
    if half_life is None or half_life <= 0:
        half_life = DEFAULT_HALF_LIFE_HOURS
    return max(MIN_LOOKBACK_HOURS, math.ceil(half_life * LOOKBACK_HALF_LIVES))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ── Dosing ───────────────────────────────────────────────────────────

def _as_event(event: EventLike) -> Optional[BrewEvent]:
    if isinstance(event, BrewEvent):
        return event
    if isinstance(event, dict):
        return BrewEvent.from_mapping(event)
    return None


def dose_timeline(
    events: Iterable[EventLike],
    body: BodyProfile,
    options: Optional[SimulationOptions] = None,
) -> list[tuple[int, float]]:
    """
    Absorbed dose per valid event as (epoch_ms, mg), chronologically.
    Events without a parseable timestamp are dropped. Ties sort by dose so
    any permutation of the same events yields the same sequence.
    """
    options = options or SimulationOptions()
    tables = DoseTables.merged(options.mg_per_ml, options.default_shot_ml)
    bioavailability = _factor(body.bioavailability, DEFAULT_BIOAVAILABILITY)
    sensitivity = _factor(body.caffeine_sensitivity, DEFAULT_SENSITIVITY)

    doses = []
    for raw in events:
        event = _as_event(raw)
        if event is None:
            continue
        t_ms = event.epoch_ms
        if t_ms is None:
            continue
        mg = estimate_dose(event, tables.mg_per_ml, tables.shot_ml,
                           bioavailability, sensitivity)
        doses.append((t_ms, mg))
    doses.sort()
    return doses


def _body_mg_at(doses: list[tuple[int, float]], t_ms: int, k_per_min: float,
                inclusive: bool = True) -> float:
    total = 0.0
    for dose_ms, mg in doses:
        if dose_ms > t_ms or (not inclusive and dose_ms == t_ms):
            break
        dt_min = (t_ms - dose_ms) / MINUTE_MS
        total += mg * math.exp(-k_per_min * dt_min)
    return total


# ── Simulation ───────────────────────────────────────────────────────

def simulate(
    events: Iterable[EventLike],
    body: BodyProfile,
    options: Optional[SimulationOptions] = None,
    now_ms: Optional[int] = None,
) -> list[CaffeinePoint]:
    """
    Model caffeine intake, body mass and blood concentration on a fixed grid.

    `now_ms` only matters when the options leave the window end open.
    Returns one point per grid step; an empty window yields an empty list.
    """
    options = options or SimulationOptions()
    doses = dose_timeline(events, body, options)

    k_per_min = elimination_rate_per_minute(resolve_half_life_hours(body, options))
    vd_l = distribution_volume_liters(body)
    grid = build_grid(options, now_ms=now_ms)

    # Pre-bucket in-window intake at grid resolution
    buckets: dict[int, float] = {}
    for dose_ms, mg in doses:
        if not grid.contains(dose_ms):
            continue
        key = grid.index_of(dose_ms)
        buckets[key] = buckets.get(key, 0.0) + mg

    points = []
    for step, t_ms in enumerate(grid.points):
        body_mg = _body_mg_at(doses, t_ms, k_per_min)
        points.append(CaffeinePoint(
            timestamp=from_epoch_ms(t_ms),
            intake_mg=_round_half_up(buckets.get(step, 0.0)),
            body_mg=_round_half_up(body_mg),
            blood_mg_per_l=body_mg / vd_l,
        ))
    return points


# ── Carry-over ───────────────────────────────────────────────────────

def residual_body_mg(
    events: Iterable[EventLike],
    body: BodyProfile,
    at_ms: int,
    options: Optional[SimulationOptions] = None,
) -> float:
    """Caffeine left at `at_ms` from doses taken strictly before it."""
    options = options or SimulationOptions()
    doses = dose_timeline(events, body, options)
    k_per_min = elimination_rate_per_minute(resolve_half_life_hours(body, options))
    return _body_mg_at(doses, at_ms, k_per_min, inclusive=False)


def carryover_series(
    events: Iterable[EventLike],
    body: BodyProfile,
    instants_ms: Iterable[int],
    options: Optional[SimulationOptions] = None,
) -> list[int]:
    """
    Rounded residual caffeine at each instant, e.g. at midnight before
    each night's sleep. Dosing runs once for all instants.
    """
    options = options or SimulationOptions()
    doses = dose_timeline(events, body, options)
    k_per_min = elimination_rate_per_minute(resolve_half_life_hours(body, options))
    return [
        _round_half_up(_body_mg_at(doses, int(at_ms), k_per_min, inclusive=False))
        for at_ms in instants_ms
    ]
