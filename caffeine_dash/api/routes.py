"""
FastAPI API routes for the Caffeine-Dashboard.
"""

import logging
import re
from datetime import date as date_type
from datetime import datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from caffeine_dash import config
from caffeine_dash.config import (
    BODY_BIOAVAILABILITY,
    BODY_CAFFEINE_SENSITIVITY,
    BODY_HALF_LIFE_H,
    BODY_HEIGHT_CM,
    BODY_VD_L_PER_KG,
    BODY_WEIGHT_KG,
    CURVE_CACHE_SECONDS,
    CURVE_DEFAULT_RESOLUTION_MIN,
    CURVE_MAX_RESOLUTION_MIN,
    CURVE_MIN_RESOLUTION_MIN,
    DEFAULT_BIOAVAILABILITY,
    DEFAULT_HALF_LIFE_HOURS,
    DEFAULT_SENSITIVITY,
)
from caffeine_dash.core.caffeine_engine import carryover_series, lookback_hours, simulate
from caffeine_dash.core.database import (
    BODY_PROFILE_FIELDS,
    delete_brew,
    get_body_profile_history,
    get_latest_body_profile,
    get_recent_brews,
    insert_body_profile,
    insert_brew,
    query_brews_with_lookback,
)
from caffeine_dash.core.distribution import distribution_volume_liters
from caffeine_dash.core.dosing import estimate_intake_mg_for, normalize_brew_type
from caffeine_dash.core.models import BodyProfile, BrewEvent, SimulationOptions, to_epoch_ms

router = APIRouter(prefix="/api")
log = logging.getLogger("caffeine.api")

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# --- Auth ---

def verify_api_key(x_api_key: str = Header(default="")):
    if config.API_KEY and x_api_key != config.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


# --- Models ---

class BrewRequest(BaseModel):
    type: str = Field(default="other", pattern="^[A-Za-z0-9_]{1,32}$")
    amount_ml: Optional[float] = Field(None, ge=0, le=2000)
    mg: Optional[float] = Field(None, ge=0, le=1000)
    notes: str = ""
    timestamp: Optional[datetime] = None


class BodyProfileRequest(BaseModel):
    weight_kg: float = Field(..., gt=0, le=400)
    height_cm: Optional[float] = Field(None, gt=0, le=300)
    body_fat_percentage: Optional[float] = Field(None, ge=0, le=100)
    muscle_percentage: Optional[float] = Field(None, ge=0, le=100)
    vd_l_per_kg: Optional[float] = Field(None, gt=0, le=5)
    half_life_hours: Optional[float] = Field(None, gt=0, le=48)
    caffeine_sensitivity: Optional[float] = Field(None, gt=0, le=5)
    bioavailability: Optional[float] = Field(None, gt=0, le=1)
    age: Optional[int] = Field(None, gt=0, lt=150)
    sex: Optional[str] = Field(None, pattern="^(male|female|other)$")
    notes: str = ""
    measured_at: Optional[datetime] = None


# --- Helpers ---

def _tz() -> ZoneInfo:
    return ZoneInfo(config.TIMEZONE)


def _localize(ts: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps from the logging clients are local wall-clock time."""
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=_tz())
    return ts


def _today() -> date_type:
    return datetime.now(_tz()).date()


def _day_bounds(day: date_type) -> tuple[datetime, datetime]:
    """Local midnight to next local midnight (23/25 h across DST changes)."""
    tz = _tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def _fallback_profile() -> dict:
    return {
        "weight_kg": BODY_WEIGHT_KG,
        "height_cm": BODY_HEIGHT_CM,
        "vd_l_per_kg": BODY_VD_L_PER_KG,
        "half_life_hours": BODY_HALF_LIFE_H,
        "caffeine_sensitivity": BODY_CAFFEINE_SENSITIVITY,
        "bioavailability": BODY_BIOAVAILABILITY,
    }


def _current_body_profile() -> BodyProfile:
    """Latest stored measurement, falling back to the environment defaults."""
    latest = get_latest_body_profile()
    if latest:
        return BodyProfile.from_mapping(latest)
    return BodyProfile.from_mapping(_fallback_profile())


def api_error(message: str, status: int, details=None, code: Optional[str] = None) -> JSONResponse:
    content = {"error": message}
    if code:
        content["code"] = code
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status, content=content)


def _brew_response(row_id: int, req: BrewRequest) -> dict:
    brew_type = normalize_brew_type(req.type)
    estimated = req.mg if req.mg else estimate_intake_mg_for(brew_type, req.amount_ml)
    return {"id": row_id, "type": brew_type, "estimated_mg": estimated}


# --- Coffee log ---

@router.post("/coffee", dependencies=[Depends(verify_api_key)])
def log_coffee(req: Union[list[BrewRequest], BrewRequest] = Body(...)):
    """Log one brew or a list of brews."""
    items = req if isinstance(req, list) else [req]
    results = []
    for item in items:
        row_id = insert_brew(
            normalize_brew_type(item.type),
            item.amount_ml,
            item.mg,
            item.notes,
            _localize(item.timestamp),
        )
        results.append(_brew_response(row_id, item))
    log.info("Logged %d brew(s)", len(results))
    return {"status": "ok", "inserted": len(results), "items": results}


@router.get("/coffee", dependencies=[Depends(verify_api_key)])
def get_coffee(limit: int = Query(default=50, ge=1, le=500)):
    """Recent brews, newest first."""
    rows = get_recent_brews(limit)
    for row in rows:
        row["estimated_mg"] = row["caffeine_mg"] or estimate_intake_mg_for(
            row["type"], row["amount_ml"]
        )
    return rows


@router.delete("/coffee/{brew_id}", dependencies=[Depends(verify_api_key)])
def delete_coffee(brew_id: int):
    """Delete a brew by ID."""
    deleted = delete_brew(brew_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Brew not found")
    return {"deleted": brew_id, "status": "ok"}


@router.get("/coffee/estimate", dependencies=[Depends(verify_api_key)])
def estimate_coffee(type: str = "other", amount_ml: Optional[float] = None):
    """Label estimate of the caffeine in one serving."""
    brew_type = normalize_brew_type(type)
    return {
        "type": brew_type,
        "amount_ml": amount_ml,
        "estimated_mg": estimate_intake_mg_for(brew_type, amount_ml),
    }


# --- Body profile ---

@router.get("/body", dependencies=[Depends(verify_api_key)])
def get_body():
    """Current body profile (most recent measurement)."""
    latest = get_latest_body_profile()
    if not latest:
        return {"found": False, "source": "config", **_fallback_profile()}
    return {"found": True, **latest}


@router.post("/body", dependencies=[Depends(verify_api_key)])
def log_body(req: BodyProfileRequest):
    """
    Store a new body measurement; the caffeine curve uses the latest one.
    Fields left out of the request keep the previous measurement's values,
    an explicit null clears them.
    """
    latest = get_latest_body_profile() or {}
    data = {name: latest.get(name) for name in BODY_PROFILE_FIELDS if name != "notes"}
    data.update(req.model_dump(exclude={"measured_at"}, exclude_unset=True))
    row = insert_body_profile(data, _localize(req.measured_at))
    log.info("Body profile #%d stored (%.1f kg)", row["id"], row["weight_kg"])
    return {"status": "ok", "profile": row}


@router.get("/body/history", dependencies=[Depends(verify_api_key)])
def get_body_history(limit: int = Query(default=30, ge=1, le=365)):
    return get_body_profile_history(limit)


# --- Caffeine curve ---

def _caffeine_curve(day: date_type, resolution: int) -> dict:
    body = _current_body_profile()
    start, end = _day_bounds(day)

    # Fetch enough history for earlier doses to decay into the day
    events = [
        BrewEvent.from_mapping(row)
        for row in query_brews_with_lookback(start, end, lookback_hours(body.half_life_hours))
    ]

    points = simulate(events, body, SimulationOptions(
        start_ms=to_epoch_ms(start),
        end_ms=to_epoch_ms(end),
        align_to_hour=True,
        grid_minutes=resolution,
        half_life_hours=body.half_life_hours,
    ))

    return {
        "date": day.isoformat(),
        "series": [
            {"time": p.time_iso, "intake_mg": p.intake_mg, "body_mg": p.body_mg}
            for p in points
        ],
        "body_profile": {
            "half_life_hours": body.half_life_hours or DEFAULT_HALF_LIFE_HOURS,
            "sensitivity": body.caffeine_sensitivity or DEFAULT_SENSITIVITY,
            "bioavailability": body.bioavailability or DEFAULT_BIOAVAILABILITY,
            "vd_l": distribution_volume_liters(body),
        },
    }


@router.get("/coffee/caffeine-curve", dependencies=[Depends(verify_api_key)])
def get_caffeine_curve(date: Optional[str] = None, resolution: Optional[str] = None):
    """
    Caffeine curve for one local day: intake per step and modeled body level.

    date:       YYYY-MM-DD, default today in the configured timezone
    resolution: minutes between points (15-240, default 60)
    """
    if date:
        try:
            if not DATE_RE.match(date):
                raise ValueError(f"expected YYYY-MM-DD, got {date!r}")
            day = datetime.strptime(date, "%Y-%m-%d").date()
        except ValueError as e:
            return api_error("Invalid date parameter", 400, str(e), "VALIDATION_ERROR")
    else:
        day = _today()

    step = CURVE_DEFAULT_RESOLUTION_MIN
    if resolution:
        try:
            step = int(resolution)
            if not CURVE_MIN_RESOLUTION_MIN <= step <= CURVE_MAX_RESOLUTION_MIN:
                raise ValueError(
                    f"must be between {CURVE_MIN_RESOLUTION_MIN} and {CURVE_MAX_RESOLUTION_MIN}"
                )
        except ValueError as e:
            return api_error("Invalid resolution parameter", 400, str(e), "VALIDATION_ERROR")

    try:
        payload = _caffeine_curve(day, step)
    except Exception:
        log.exception("Error fetching caffeine curve for %s", day)
        return api_error("Failed to fetch caffeine curve", 500, code="INTERNAL_ERROR")

    tags = [f"coffee:caffeine:{payload['date']}", "coffee:caffeine"]
    response = JSONResponse(content=payload)
    response.headers["X-Cache-Tags"] = ",".join(tags)
    response.headers["Cache-Control"] = f"s-maxage={CURVE_CACHE_SECONDS}, stale-while-revalidate"
    return response


@router.get("/coffee/carryover", dependencies=[Depends(verify_api_key)])
def get_caffeine_carryover(days: int = Query(default=14, ge=1, le=90)):
    """
    Modeled caffeine still in the body at local midnight, for each of the
    last N nights (the input for sleep-vs-caffeine comparisons).
    """
    body = _current_body_profile()
    today = _today()
    nights = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    midnights = [_day_bounds(day)[0] for day in nights]

    rows = query_brews_with_lookback(
        midnights[0], midnights[-1], lookback_hours(body.half_life_hours)
    )
    residuals = carryover_series(
        [BrewEvent.from_mapping(r) for r in rows],
        body,
        [to_epoch_ms(m) for m in midnights],
        SimulationOptions(half_life_hours=body.half_life_hours),
    )
    return {
        "days": days,
        "points": [
            {"date": day.isoformat(), "caffeine_at_midnight_mg": mg}
            for day, mg in zip(nights, residuals)
        ],
    }


@router.get("/status")
def status():
    """Health check endpoint."""
    return {
        "service": "caffeine-dashboard",
        "status": "ok",
        "version": "1.0.0",
        "timestamp": datetime.now(_tz()).isoformat(),
        "timezone": config.TIMEZONE,
        "model": "one-compartment-superposition",
    }
