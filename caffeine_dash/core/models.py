"""
Value types shared by the caffeine model: brew events, body profile
snapshots, simulation options and the output points.

All of them are frozen dataclasses. Times are handled as epoch
milliseconds (UTC) inside the model; these helpers convert to and from
datetimes / ISO strings at the edges.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

Timestamp = Union[datetime, str, int, float, None]

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


# ── Number / time coercion ───────────────────────────────────────────

def as_float(value: Any) -> Optional[float]:
    """Finite float or None. Booleans and non-numeric strings count as missing."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def to_epoch_ms(value: Timestamp) -> Optional[int]:
    """
    Parse a timestamp into epoch milliseconds.
    Accepts datetimes (naive = UTC), ISO-8601 strings (trailing Z allowed)
    and epoch milliseconds. Returns None for anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return int(value)
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000))


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def iso_utc(dt: datetime) -> str:
    """UTC ISO string with millisecond precision and a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Input types ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class BrewEvent:
    """One logged coffee. `type` is open-ended; unknown values dose as "other"."""
    timestamp: Timestamp
    type: str = "other"
    amount_ml: Optional[float] = None
    mg: Optional[float] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "BrewEvent":
        ts = row.get("timestamp")
        if ts is None:
            ts = row.get("time", row.get("timeISO"))
        mg = row.get("mg")
        if mg is None:
            mg = row.get("caffeine_mg")
        return cls(
            timestamp=ts,
            type=row.get("type") or "other",
            amount_ml=row.get("amount_ml"),
            mg=mg,
        )

    @property
    def epoch_ms(self) -> Optional[int]:
        return to_epoch_ms(self.timestamp)


_PROFILE_NUMBERS = (
    "weight_kg",
    "height_cm",
    "vd_l_per_kg",
    "half_life_hours",
    "caffeine_sensitivity",
    "bioavailability",
    "body_fat_percentage",
    "muscle_percentage",
    "age",
)


@dataclass(frozen=True)
class BodyProfile:
    """Snapshot of the person's physiology as read from the profile store."""
    weight_kg: Optional[float] = None
    height_cm: Optional[float] = None
    vd_l_per_kg: Optional[float] = None
    half_life_hours: Optional[float] = None
    caffeine_sensitivity: Optional[float] = None
    bioavailability: Optional[float] = None
    body_fat_percentage: Optional[float] = None
    muscle_percentage: Optional[float] = None
    age: Optional[float] = None
    sex: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "BodyProfile":
        values = {name: as_float(row.get(name)) for name in _PROFILE_NUMBERS}
        sex = row.get("sex")
        return cls(sex=str(sex) if sex else None, **values)


@dataclass(frozen=True)
class SimulationOptions:
    """Caller overrides; anything left as None falls back to the model defaults."""
    half_life_hours: Optional[float] = None
    grid_minutes: Optional[float] = None
    mg_per_ml: Mapping[str, float] = field(default_factory=dict)
    default_shot_ml: Mapping[str, float] = field(default_factory=dict)
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    align_to_hour: bool = False


# ── Output type ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class CaffeinePoint:
    timestamp: datetime
    intake_mg: int
    body_mg: int
    blood_mg_per_l: float

    @property
    def time_iso(self) -> str:
        return iso_utc(self.timestamp)

    def to_dict(self) -> dict:
        return {
            "time": self.time_iso,
            "intake_mg": self.intake_mg,
            "body_mg": self.body_mg,
            "blood_mg_per_l": self.blood_mg_per_l,
        }
