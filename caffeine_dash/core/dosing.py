"""
Dose estimation: turns one logged brew into absorbed caffeine (mg).

Priority per event:
  1. explicit mg on the event
  2. poured volume x caffeine density of the brew type
  3. typical serving volume x density (nothing recorded)

  dose = max(0, base) * bioavailability * sensitivity

Unknown brew types use the "other" row of each table. Nothing here raises.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from caffeine_dash.config import MG_PER_ML, REFERENCE_SERVINGS, SHOT_ML
from caffeine_dash.core.models import BrewEvent, as_float


class BrewType(str, Enum):
    ESPRESSO = "espresso"
    V60 = "v60"
    CHEMEX = "chemex"
    MOKA = "moka"
    AERO = "aero"
    COLD_BREW = "cold_brew"
    OTHER = "other"


OTHER = BrewType.OTHER.value

# Indexing by the enum makes a missing config row fail at import time.
DEFAULT_MG_PER_ML: Mapping[str, float] = MappingProxyType(
    {t.value: float(MG_PER_ML[t.value]) for t in BrewType}
)
DEFAULT_SHOT_ML: Mapping[str, float] = MappingProxyType(
    {t.value: float(SHOT_ML[t.value]) for t in BrewType}
)
_REFERENCE_SERVINGS: Mapping[str, tuple] = MappingProxyType(
    {t.value: REFERENCE_SERVINGS[t.value] for t in BrewType}
)


def normalize_brew_type(brew_type: Optional[str]) -> str:
    if not brew_type:
        return OTHER
    return str(brew_type).strip().lower() or OTHER


def lookup(table: Mapping, brew_type: Optional[str]):
    """Row for the brew type, or the table's "other" row."""
    key = normalize_brew_type(brew_type)
    if key in table:
        return table[key]
    return table[OTHER]


def _merge(defaults: Mapping[str, float], overrides: Optional[Mapping[str, float]]) -> Mapping[str, float]:
    merged = dict(defaults)
    for key, value in (overrides or {}).items():
        number = as_float(value)
        if number is None:
            continue
        merged[normalize_brew_type(key)] = number
    return MappingProxyType(merged)


@dataclass(frozen=True)
class DoseTables:
    """Density and serving tables for one simulation run."""
    mg_per_ml: Mapping[str, float]
    shot_ml: Mapping[str, float]

    @classmethod
    def merged(cls, mg_overrides: Optional[Mapping[str, float]] = None,
               shot_overrides: Optional[Mapping[str, float]] = None) -> "DoseTables":
        """Layer caller overrides over the built-in tables (defaults stay untouched)."""
        return cls(
            mg_per_ml=_merge(DEFAULT_MG_PER_ML, mg_overrides),
            shot_ml=_merge(DEFAULT_SHOT_ML, shot_overrides),
        )


def base_dose_mg(event: BrewEvent, mg_per_ml: Mapping[str, float],
                 shot_ml: Mapping[str, float]) -> float:
    """Ingested caffeine before bioavailability/sensitivity. May be negative."""
    explicit = as_float(event.mg)
    if explicit is not None and explicit > 0:
        return explicit

    density = lookup(mg_per_ml, event.type)
    amount = as_float(event.amount_ml)
    if amount is not None and amount != 0:
        return amount * density

    # amount_ml == 0 is the coffee log's "not recorded"
    return lookup(shot_ml, event.type) * density


def estimate_dose(
    event: BrewEvent,
    mg_per_ml: Mapping[str, float],
    shot_ml: Mapping[str, float],
    bioavailability: float,
    sensitivity: float,
) -> float:
    """Absorbed caffeine (mg, >= 0) for one brew event."""
    base = max(0.0, base_dose_mg(event, mg_per_ml, shot_ml))
    return base * max(0.0, bioavailability) * max(0.0, sensitivity)


def estimate_intake_mg_for(brew_type: Optional[str], amount_ml: Optional[float] = None) -> float:
    """
    Label estimate of the caffeine in a serving, from reference servings.
    Scales linearly with volume; missing or zero volume means one reference
    serving, negative volume means 0 mg. Rounded to one decimal.
    """
    ref_mg, ref_ml = lookup(_REFERENCE_SERVINGS, brew_type)
    amount = as_float(amount_ml)
    volume = amount if amount else ref_ml
    return round(max(0.0, volume) / ref_ml * ref_mg, 1)
