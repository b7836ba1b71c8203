"""
Fixed-step time axis the caffeine model is sampled on.

Window: [start, end), default the 24 h ending now. With align_to_hour both
bounds snap down to the start of their (UTC) hour. Step: grid_minutes, else
60 min when aligned, else 15 min. The number of points depends only on the
window and the step.
"""

import math
import time
from dataclasses import dataclass
from typing import Optional

from caffeine_dash.config import (
    ALIGNED_GRID_MINUTES,
    DEFAULT_GRID_MINUTES,
    DEFAULT_WINDOW_HOURS,
)
from caffeine_dash.core.models import HOUR_MS, MINUTE_MS, SimulationOptions, as_float


@dataclass(frozen=True)
class Grid:
    start_ms: int
    end_ms: int
    step_ms: int
    points: tuple

    def __len__(self) -> int:
        return len(self.points)

    def contains(self, ms: int) -> bool:
        return self.start_ms <= ms < self.end_ms

    def index_of(self, ms: int) -> int:
        """Bucket index of an instant (only meaningful inside the window)."""
        return (ms - self.start_ms) // self.step_ms


def floor_to_hour(ms: int) -> int:
    return ms - ms % HOUR_MS


def grid_step_minutes(options: SimulationOptions) -> float:
    minutes = as_float(options.grid_minutes)
    if minutes is None:
        minutes = ALIGNED_GRID_MINUTES if options.align_to_hour else DEFAULT_GRID_MINUTES
    return max(1.0, minutes)


def _bound(value) -> Optional[float]:
    """None stays None (use the default); anything non-finite becomes NaN."""
    if value is None:
        return None
    number = as_float(value)
    return math.nan if number is None else number


def build_grid(options: SimulationOptions, now_ms: Optional[int] = None) -> Grid:
    end_ms = _bound(options.end_ms)
    if end_ms is None:
        end_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    start_ms = _bound(options.start_ms)
    if start_ms is None:
        start_ms = end_ms - DEFAULT_WINDOW_HOURS * HOUR_MS

    # A non-finite bound yields no points
    if not (math.isfinite(start_ms) and math.isfinite(end_ms)):
        return Grid(start_ms=0, end_ms=0, step_ms=0, points=())
    start_ms, end_ms = int(start_ms), int(end_ms)

    if options.align_to_hour:
        start_ms = floor_to_hour(start_ms)
        end_ms = floor_to_hour(end_ms)

    step_ms = int(round(grid_step_minutes(options) * MINUTE_MS))
    points = tuple(range(start_ms, end_ms, step_ms))
    return Grid(start_ms=start_ms, end_ms=end_ms, step_ms=step_ms, points=points)
