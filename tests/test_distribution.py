import pytest

from caffeine_dash.core.distribution import distribution_volume_liters
from caffeine_dash.core.models import BodyProfile


def test_default_profile():
    assert distribution_volume_liters(BodyProfile()) == pytest.approx(0.6 * 75)


def test_scales_with_weight():
    assert distribution_volume_liters(BodyProfile(weight_kg=90, vd_l_per_kg=0.7)) == pytest.approx(63)


def test_weight_floor():
    assert distribution_volume_liters(BodyProfile(weight_kg=5)) == pytest.approx(0.6 * 30)
    assert distribution_volume_liters(BodyProfile(weight_kg=0)) == pytest.approx(0.6 * 30)


def test_volume_floor():
    assert distribution_volume_liters(BodyProfile(weight_kg=80, vd_l_per_kg=0.001)) == 1.0


def test_body_composition_does_not_change_volume():
    lean = BodyProfile(weight_kg=80, body_fat_percentage=10, muscle_percentage=45)
    heavy = BodyProfile(weight_kg=80, body_fat_percentage=35, muscle_percentage=25)
    assert distribution_volume_liters(lean) == distribution_volume_liters(heavy)
