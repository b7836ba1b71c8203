import pytest

from caffeine_dash.core.dosing import (
    DEFAULT_MG_PER_ML,
    DEFAULT_SHOT_ML,
    BrewType,
    DoseTables,
    base_dose_mg,
    estimate_dose,
    estimate_intake_mg_for,
    lookup,
    normalize_brew_type,
)
from caffeine_dash.core.models import BrewEvent

T = "2024-03-05T08:00:00Z"


def _base(event, tables=None):
    tables = tables or DoseTables.merged()
    return base_dose_mg(event, tables.mg_per_ml, tables.shot_ml)


def test_every_brew_type_has_table_rows():
    for brew in BrewType:
        assert brew.value in DEFAULT_MG_PER_ML
        assert brew.value in DEFAULT_SHOT_ML


def test_explicit_mg_wins():
    assert _base(BrewEvent(T, "espresso", amount_ml=100, mg=42)) == 42


def test_volume_times_density():
    assert _base(BrewEvent(T, "v60", amount_ml=300)) == pytest.approx(300 * 0.8)


def test_missing_or_zero_volume_uses_typical_serving():
    assert _base(BrewEvent(T, "espresso")) == pytest.approx(38 * 2.1)
    assert _base(BrewEvent(T, "espresso", amount_ml=0)) == pytest.approx(38 * 2.1)


def test_zero_mg_falls_through_to_volume():
    assert _base(BrewEvent(T, "moka", amount_ml=50, mg=0)) == pytest.approx(50 * 1.6)


def test_unknown_type_uses_other_row():
    assert _base(BrewEvent(T, "turkish")) == pytest.approx(200 * 1.0)
    assert lookup(DEFAULT_MG_PER_ML, "turkish") == DEFAULT_MG_PER_ML["other"]


def test_type_is_case_insensitive():
    assert normalize_brew_type(" Espresso ") == "espresso"
    assert normalize_brew_type("") == "other"
    assert normalize_brew_type(None) == "other"


def test_negative_volume_gives_zero_dose():
    tables = DoseTables.merged()
    event = BrewEvent(T, "v60", amount_ml=-50)
    assert _base(event) < 0
    assert estimate_dose(event, tables.mg_per_ml, tables.shot_ml, 0.99, 1.0) == 0


def test_bioavailability_and_sensitivity_scale_dose():
    tables = DoseTables.merged()
    event = BrewEvent(T, "espresso")
    dose = estimate_dose(event, tables.mg_per_ml, tables.shot_ml, 0.5, 2.0)
    assert dose == pytest.approx(38 * 2.1)


def test_overrides_do_not_touch_defaults():
    tables = DoseTables.merged({"espresso": 3.0, "Turkish": 4.0}, {"espresso": 20})
    assert tables.mg_per_ml["espresso"] == 3.0
    assert tables.mg_per_ml["turkish"] == 4.0
    assert tables.shot_ml["espresso"] == 20
    assert DEFAULT_MG_PER_ML["espresso"] == 2.1
    assert DEFAULT_SHOT_ML["espresso"] == 38
    assert "turkish" not in DEFAULT_MG_PER_ML


def test_defaults_are_read_only():
    with pytest.raises(TypeError):
        DEFAULT_MG_PER_ML["espresso"] = 9.9


def test_label_estimate():
    assert estimate_intake_mg_for("espresso") == 80.0
    assert estimate_intake_mg_for("espresso", 76) == 160.0
    assert estimate_intake_mg_for("v60", 0) == 120.0
    assert estimate_intake_mg_for("unknown", 100) == 50.0
    assert estimate_intake_mg_for("chemex", -10) == 0.0
