"""
Caffeine-Dashboard Configuration.
All settings via environment variables with sensible defaults.
"""

import os
from pathlib import Path

# --- Paths ---
BASE_DIR = Path(os.getenv("CAFFEINE_DATA_DIR", "/data"))
DB_PATH = BASE_DIR / "caffeine.db"

# --- Auth ---
API_KEY = os.getenv("CAFFEINE_API_KEY", "")

# --- Timezone ---
TIMEZONE = os.getenv("TZ", "Europe/Berlin")

# --- Body profile fallbacks (used when no measurement is stored) ---
BODY_WEIGHT_KG: float = float(os.getenv("BODY_WEIGHT_KG", "75"))
BODY_HEIGHT_CM: float = float(os.getenv("BODY_HEIGHT_CM", "180"))
BODY_VD_L_PER_KG: float = float(os.getenv("BODY_VD_L_PER_KG", "0.6"))
BODY_HALF_LIFE_H: float = float(os.getenv("BODY_HALF_LIFE_H", "5"))
BODY_CAFFEINE_SENSITIVITY: float = float(os.getenv("BODY_CAFFEINE_SENSITIVITY", "1.0"))
BODY_BIOAVAILABILITY: float = float(os.getenv("BODY_BIOAVAILABILITY", "0.99"))

# --- One-compartment model defaults ---
DEFAULT_HALF_LIFE_HOURS: float = 5.0
DEFAULT_VD_L_PER_KG: float = 0.6
DEFAULT_WEIGHT_KG: float = 75.0
DEFAULT_BIOAVAILABILITY: float = 0.99   # oral caffeine is almost fully absorbed
DEFAULT_SENSITIVITY: float = 1.0        # personal multiplier, 0.5..2

# Floors that keep the model finite for degenerate profiles
MIN_WEIGHT_KG: float = 30.0
MIN_VD_L: float = 1.0
MIN_HALF_LIFE_HOURS: float = 1.0 / 60.0  # one minute

# --- Dose tables (per brew type) ---
# Caffeine density of the poured drink (mg/ml)
MG_PER_ML = {
    "espresso": 2.1,
    "v60": 0.8,
    "chemex": 0.8,
    "moka": 1.6,
    "aero": 1.1,
    "cold_brew": 1.0,
    "other": 1.0,
}

# Typical serving when no volume was recorded (ml)
SHOT_ML = {
    "espresso": 38,
    "v60": 250,
    "chemex": 300,
    "moka": 60,
    "aero": 200,
    "cold_brew": 250,
    "other": 200,
}

# Label estimates: (caffeine mg, reference volume ml) per serving
REFERENCE_SERVINGS = {
    "espresso": (80.0, 38.0),
    "v60": (120.0, 250.0),
    "chemex": (200.0, 300.0),
    "moka": (100.0, 60.0),
    "aero": (100.0, 200.0),
    "cold_brew": (150.0, 250.0),
    "other": (100.0, 200.0),
}

# --- Time grid ---
DEFAULT_GRID_MINUTES = 15
ALIGNED_GRID_MINUTES = 60
DEFAULT_WINDOW_HOURS = 24

# --- Caffeine curve endpoint ---
CURVE_DEFAULT_RESOLUTION_MIN = 60
CURVE_MIN_RESOLUTION_MIN = 15
CURVE_MAX_RESOLUTION_MIN = 240
CURVE_CACHE_SECONDS = 60          # realtime data, 1 min
MIN_LOOKBACK_HOURS = 24
LOOKBACK_HALF_LIVES = 4           # 4 half-lives leave ~6% of a dose
