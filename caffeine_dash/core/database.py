"""
SQLite database setup and access layer.
Schema: coffee_log, body_profile (measurement history, latest row = current).

Timestamps are stored as UTC ISO strings with millisecond precision and a
Z suffix, so lexical order equals time order in range queries.
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from caffeine_dash.config import DB_PATH
from caffeine_dash.core.models import iso_utc

_local = threading.local()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS coffee_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp   TEXT    NOT NULL,
    type        TEXT    NOT NULL DEFAULT 'other',
    amount_ml   REAL    CHECK(amount_ml IS NULL OR amount_ml >= 0),
    caffeine_mg REAL    CHECK(caffeine_mg IS NULL OR caffeine_mg >= 0),
    notes       TEXT    DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_coffee_ts ON coffee_log(timestamp);

CREATE TABLE IF NOT EXISTS body_profile (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    measured_at          TEXT    NOT NULL,
    weight_kg            REAL    NOT NULL CHECK(weight_kg > 0),
    height_cm            REAL    CHECK(height_cm IS NULL OR height_cm > 0),
    body_fat_percentage  REAL    CHECK(body_fat_percentage IS NULL OR body_fat_percentage BETWEEN 0 AND 100),
    muscle_percentage    REAL    CHECK(muscle_percentage IS NULL OR muscle_percentage BETWEEN 0 AND 100),
    vd_l_per_kg          REAL    CHECK(vd_l_per_kg IS NULL OR vd_l_per_kg > 0),
    half_life_hours      REAL    CHECK(half_life_hours IS NULL OR half_life_hours > 0),
    caffeine_sensitivity REAL    CHECK(caffeine_sensitivity IS NULL OR caffeine_sensitivity > 0),
    bioavailability      REAL    CHECK(bioavailability IS NULL OR (bioavailability > 0 AND bioavailability <= 1)),
    age                  INTEGER CHECK(age IS NULL OR (age > 0 AND age < 150)),
    sex                  TEXT    CHECK(sex IS NULL OR sex IN ('male','female','other')),
    notes                TEXT    DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_body_measured ON body_profile(measured_at);
"""

BODY_PROFILE_FIELDS = (
    "weight_kg",
    "height_cm",
    "body_fat_percentage",
    "muscle_percentage",
    "vd_l_per_kg",
    "half_life_hours",
    "caffeine_sensitivity",
    "bioavailability",
    "age",
    "sex",
    "notes",
)


def get_connection() -> sqlite3.Connection:
    """Thread-local SQLite connection with WAL mode (reopened if DB_PATH changed)."""
    conn = getattr(_local, "conn", None)
    if conn is None or getattr(_local, "path", None) != DB_PATH:
        if conn is not None:
            conn.close()
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        _local.conn = conn
        _local.path = DB_PATH
    return conn


def close_connection():
    conn = getattr(_local, "conn", None)
    if conn is not None:
        conn.close()
    _local.conn = None
    _local.path = None


@contextmanager
def db_cursor():
    """Yield a cursor, auto-commit on success, rollback on error."""
    conn = get_connection()
    cur = conn.cursor()
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _migrate_tables():
    """
    Run schema migrations on an existing database.
    SQLite can't ALTER CHECK constraints, so tables are recreated when needed.
    """
    conn = get_connection()
    cur = conn.cursor()

    # --- Migration 1: coffee_log add caffeine_mg (explicit dose override) ---
    cur.execute("SELECT sql FROM sqlite_master WHERE type='table' AND name='coffee_log'")
    row = cur.fetchone()
    if row:
        create_sql = row[0] or ""
        if "caffeine_mg" not in create_sql:
            print("[caffeine-db] Migrating coffee_log: adding caffeine_mg", flush=True)
            cur.execute(
                "ALTER TABLE coffee_log ADD COLUMN caffeine_mg REAL "
                "CHECK(caffeine_mg IS NULL OR caffeine_mg >= 0)"
            )
            conn.commit()
            print("[caffeine-db] coffee_log migration complete", flush=True)

    # --- Migration 2: body_profile add composition tracking ---
    cur.execute("SELECT sql FROM sqlite_master WHERE type='table' AND name='body_profile'")
    row = cur.fetchone()
    if row:
        create_sql = row[0] or ""
        if "body_fat_percentage" not in create_sql:
            print("[caffeine-db] Migrating body_profile: adding body composition", flush=True)
            for col_sql in [
                "ALTER TABLE body_profile ADD COLUMN body_fat_percentage REAL "
                "CHECK(body_fat_percentage IS NULL OR body_fat_percentage BETWEEN 0 AND 100)",
                "ALTER TABLE body_profile ADD COLUMN muscle_percentage REAL "
                "CHECK(muscle_percentage IS NULL OR muscle_percentage BETWEEN 0 AND 100)",
            ]:
                cur.execute(col_sql)
            conn.commit()
            print("[caffeine-db] body_profile migration complete", flush=True)


def init_db():
    """Create tables if they don't exist, run migrations."""
    _migrate_tables()
    with db_cursor() as cur:
        cur.executescript(SCHEMA_SQL)
    print("[caffeine-db] Database initialized at", DB_PATH, flush=True)


def _ts(value) -> str:
    """Normalize a datetime / ISO string / None (= now) to the stored format."""
    if value is None:
        return iso_utc(datetime.now(timezone.utc))
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return iso_utc(value)


# --- Coffee log ---

def insert_brew(brew_type: str, amount_ml: Optional[float] = None,
                caffeine_mg: Optional[float] = None, notes: str = "",
                timestamp=None) -> int:
    ts = _ts(timestamp)
    with db_cursor() as cur:
        cur.execute(
            "INSERT INTO coffee_log (timestamp, type, amount_ml, caffeine_mg, notes) VALUES (?,?,?,?,?)",
            (ts, brew_type, amount_ml, caffeine_mg, notes),
        )
        return cur.lastrowid


def query_brews(start, end) -> list[dict]:
    """Brews with start <= timestamp < end, oldest first."""
    with db_cursor() as cur:
        cur.execute(
            "SELECT * FROM coffee_log WHERE timestamp >= ? AND timestamp < ? ORDER BY timestamp",
            (_ts(start), _ts(end)),
        )
        return [dict(r) for r in cur.fetchall()]


def query_brews_with_lookback(start: datetime, end: datetime,
                              lookback_hours: float) -> list[dict]:
    """Brews in [start - lookback, end), so doses before the window can decay into it."""
    return query_brews(start - timedelta(hours=max(0.0, lookback_hours)), end)


def get_recent_brews(limit: int = 50) -> list[dict]:
    with db_cursor() as cur:
        cur.execute(
            "SELECT * FROM coffee_log ORDER BY timestamp DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [dict(r) for r in cur.fetchall()]


def delete_brew(brew_id: int) -> bool:
    with db_cursor() as cur:
        cur.execute("DELETE FROM coffee_log WHERE id=?", (brew_id,))
        return cur.rowcount > 0


# --- Body profile ---

def insert_body_profile(data: dict, measured_at=None) -> dict:
    """Store a new measurement; returns the stored row."""
    ts = _ts(measured_at)
    values = [data.get(name) for name in BODY_PROFILE_FIELDS]
    if values[-1] is None:
        values[-1] = ""
    columns = ", ".join(("measured_at",) + BODY_PROFILE_FIELDS)
    placeholders = ",".join("?" * (len(BODY_PROFILE_FIELDS) + 1))
    with db_cursor() as cur:
        cur.execute(
            f"INSERT INTO body_profile ({columns}) VALUES ({placeholders})",
            (ts, *values),
        )
        cur.execute("SELECT * FROM body_profile WHERE id=?", (cur.lastrowid,))
        return dict(cur.fetchone())


def get_latest_body_profile() -> Optional[dict]:
    with db_cursor() as cur:
        cur.execute(
            "SELECT * FROM body_profile ORDER BY measured_at DESC, id DESC LIMIT 1"
        )
        row = cur.fetchone()
        return dict(row) if row else None


def get_body_profile_history(limit: int = 30) -> list[dict]:
    with db_cursor() as cur:
        cur.execute(
            """SELECT id, measured_at, weight_kg, body_fat_percentage, muscle_percentage
               FROM body_profile ORDER BY measured_at DESC, id DESC LIMIT ?""",
            (limit,),
        )
        return [dict(r) for r in cur.fetchall()]
