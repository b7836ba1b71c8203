"""
Volume of distribution for the one-compartment caffeine model.

  Vd_L = max(1, vd_l_per_kg * max(30, weight_kg))

The 30 kg floor keeps missing / near-zero weights from blowing up the
concentration; the 1 L floor rules out a degenerate sub-liter volume.
Body composition (fat / muscle percentage) is stored with the profile but
does not enter the volume.
"""

from caffeine_dash.config import (
    DEFAULT_VD_L_PER_KG,
    DEFAULT_WEIGHT_KG,
    MIN_VD_L,
    MIN_WEIGHT_KG,
)
from caffeine_dash.core.models import BodyProfile, as_float


def distribution_volume_liters(body: BodyProfile) -> float:
    vd_l_per_kg = as_float(body.vd_l_per_kg)
    if vd_l_per_kg is None:
        vd_l_per_kg = DEFAULT_VD_L_PER_KG

    weight_kg = as_float(body.weight_kg)
    if weight_kg is None:
        weight_kg = DEFAULT_WEIGHT_KG

    return max(MIN_VD_L, vd_l_per_kg * max(MIN_WEIGHT_KG, weight_kg))
