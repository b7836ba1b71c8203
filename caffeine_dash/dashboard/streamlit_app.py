"""
Streamlit Koffein-Dashboard.
Hauptseite: Kaffee loggen + Tageskurve.
Sidebar: Nachwirkung (Koffein um Mitternacht), Körperprofil, System.
Mobile-first, no emojis.
"""

import os
from datetime import datetime
from zoneinfo import ZoneInfo

import httpx
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

# --- Config ---
API_BASE = os.getenv("CAFFEINE_API_URL", "http://localhost:8000")
API_KEY = os.getenv("CAFFEINE_API_KEY", "")
HEADERS = {"x-api-key": API_KEY} if API_KEY else {}
TIMEZONE = os.getenv("TZ", "Europe/Berlin")

BREW_TYPES = ["espresso", "v60", "chemex", "moka", "aero", "cold_brew", "other"]
BREW_LABELS = {
    "espresso": "Espresso",
    "v60": "V60",
    "chemex": "Chemex",
    "moka": "Moka",
    "aero": "AeroPress",
    "cold_brew": "Cold Brew",
    "other": "Andere",
}


def api_get(path: str, params: dict | None = None) -> dict | list:
    try:
        r = httpx.get(f"{API_BASE}{path}", params=params, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except Exception as e:
        st.error(f"API Error: {e}")
        return {}


def api_post(path: str, data: dict) -> dict:
    try:
        r = httpx.post(f"{API_BASE}{path}", json=data, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except Exception as e:
        st.error(f"API Error: {e}")
        return {}


def api_delete(path: str) -> dict:
    try:
        r = httpx.delete(f"{API_BASE}{path}", headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except Exception as e:
        st.error(f"API Error: {e}")
        return {}


# --- Plotly mobile-friendly helper ---
PLOTLY_MOBILE_CONFIG = {
    "displayModeBar": False,
    "scrollZoom": False,
    "staticPlot": False,
    "responsive": True,
}

PLOTLY_MOBILE_LAYOUT = dict(
    dragmode=False,
    template="plotly_dark",
    margin=dict(l=40, r=40, t=40, b=35),
    legend=dict(orientation="h", yanchor="bottom", y=1.02),
    xaxis=dict(fixedrange=True),
    yaxis=dict(fixedrange=True),
)


def mobile_chart(fig, height=350, **kwargs):
    """Render a Plotly chart with mobile-friendly settings (no accidental zoom/pan)."""
    fig.update_layout(**PLOTLY_MOBILE_LAYOUT, height=height, **kwargs)
    st.plotly_chart(fig, use_container_width=True, config=PLOTLY_MOBILE_CONFIG)


# --- Page Config ---
st.set_page_config(
    page_title="Koffein-Dashboard",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed",
)

st.markdown("""
<style>
    .block-container {
        padding-top: 0.3rem;
        padding-left: 0.5rem;
        padding-right: 0.5rem;
        max-width: 100%;
    }
    div[data-testid="stMetric"] {
        background-color: #1e1e2e;
        border: 1px solid #333;
        border-radius: 10px;
        padding: 8px 10px;
    }
    .stButton > button {
        min-height: 52px;
        font-size: 1rem;
        border-radius: 10px;
    }
</style>
""", unsafe_allow_html=True)

# =========================================================
# SIDEBAR: Navigation
# =========================================================
PAGES = ["Kaffee & Kurve", "Nachwirkung", "Körperprofil", "System"]
PAGE_MAP = {
    "Kaffee & Kurve": "main",
    "Nachwirkung": "carryover",
    "Körperprofil": "body",
    "System": "system",
}

with st.sidebar:
    st.header("Koffein-Dashboard")
    sidebar_page = st.radio("Navigation", PAGES, index=0, label_visibility="collapsed")

current_page = PAGE_MAP.get(sidebar_page, "main")


# =========================================================
# PAGE: Kaffee loggen + Tageskurve
# =========================================================
if current_page == "main":
    st.subheader("Kaffee loggen")
    bc1, bc2 = st.columns(2)
    with bc1:
        if st.button("Espresso", use_container_width=True, type="primary"):
            r = api_post("/api/coffee", {"type": "espresso"})
            if r.get("status") == "ok":
                st.success("Espresso geloggt")
                st.rerun()
    with bc2:
        if st.button("V60", use_container_width=True, type="primary"):
            r = api_post("/api/coffee", {"type": "v60"})
            if r.get("status") == "ok":
                st.success("V60 geloggt")
                st.rerun()

    with st.expander("Nachtragen / Andere"):
        hc1, hc2 = st.columns(2)
        with hc1:
            brew = st.selectbox("Zubereitung", BREW_TYPES, format_func=BREW_LABELS.get, key="brew")
        with hc2:
            amount = st.number_input("ml (0 = Standardportion)", min_value=0.0, step=10.0, value=0.0, key="ml")
        mg_override = st.number_input("mg (optional, überschreibt Schätzung)", min_value=0.0, step=5.0, value=0.0, key="mg")
        est = api_get("/api/coffee/estimate", {"type": brew, "amount_ml": amount or None})
        if isinstance(est, dict) and "estimated_mg" in est:
            st.caption(f"Schätzung: ca. {est['estimated_mg']:.0f} mg")
        dc1, dc2 = st.columns(2)
        with dc1:
            hdate = st.date_input("Datum", value=datetime.now().date(), key="hdate")
        with dc2:
            htime = st.time_input("Uhrzeit", value=datetime.now().time().replace(second=0, microsecond=0), key="htime")
        if st.button("Nachtragen", type="primary", use_container_width=True):
            r = api_post("/api/coffee", {
                "type": brew,
                "amount_ml": amount or None,
                "mg": mg_override or None,
                "timestamp": datetime.combine(hdate, htime).isoformat(),
            })
            if r.get("status") == "ok":
                st.success("Nachgetragen")
                st.rerun()

    # ---- Tageskurve ----
    st.divider()
    st.subheader("Koffein im Körper")
    cc1, cc2 = st.columns(2)
    with cc1:
        day = st.date_input("Datum", value=datetime.now().date(), key="curve_date")
    with cc2:
        resolution = st.select_slider("Auflösung (min)", options=[15, 30, 60, 120, 240], value=60)

    curve = api_get("/api/coffee/caffeine-curve", {"date": day.isoformat(), "resolution": resolution})
    if isinstance(curve, dict) and curve.get("series"):
        df = pd.DataFrame(curve["series"])
        df["time"] = pd.to_datetime(df["time"]).dt.tz_convert(TIMEZONE).dt.tz_localize(None)
        bp = curve.get("body_profile", {})
        df["blood_mg_per_l"] = df["body_mg"] / bp.get("vd_l", 45.0)

        fig = go.Figure()
        fig.add_trace(go.Bar(
            x=df["time"], y=df["intake_mg"],
            name="Aufnahme (mg)",
            marker_color="#FF9800",
        ))
        fig.add_trace(go.Scatter(
            x=df["time"], y=df["body_mg"],
            mode="lines", name="Im Körper (mg)",
            line=dict(color="#8D6E63", width=3),
            fill="tozeroy", fillcolor="rgba(141,110,99,0.12)",
        ))
        fig.add_trace(go.Scatter(
            x=df["time"], y=df["blood_mg_per_l"],
            mode="lines", name="Konzentration (mg/L)",
            line=dict(color="#4FC3F7", width=1, dash="dot"),
            yaxis="y2",
        ))
        if day == datetime.now().date():
            fig.add_vline(x=datetime.now(ZoneInfo(TIMEZONE)).replace(tzinfo=None), line=dict(color="#F44336", width=2))
        mobile_chart(
            fig,
            height=380,
            yaxis_title="mg",
            yaxis2=dict(title="mg/L", overlaying="y", side="right", fixedrange=True, showgrid=False),
        )

        m1, m2, m3 = st.columns(3)
        m1.metric("Aufnahme", f"{df['intake_mg'].sum():.0f} mg")
        m2.metric("Spitze", f"{df['body_mg'].max():.0f} mg")
        m3.metric("Halbwertszeit", f"{bp.get('half_life_hours', 5):.1f} h")
    else:
        st.info("Keine Kurvendaten.")

    # ---- Letzte Einträge ----
    st.divider()
    st.subheader("Letzte Einträge")
    recent = api_get("/api/coffee", {"limit": 10})
    if isinstance(recent, list) and recent:
        for row in recent:
            ec1, ec2 = st.columns([5, 1])
            ts = row.get("timestamp", "")
            ec1.text(f"{ts[0:16].replace('T', ' ')}  {BREW_LABELS.get(row['type'], row['type'])}  ~{row.get('estimated_mg', 0):.0f} mg")
            with ec2:
                if st.button("X", key=f"del_{row['id']}"):
                    api_delete(f"/api/coffee/{row['id']}")
                    st.rerun()
    else:
        st.caption("Noch kein Kaffee geloggt.")


# =========================================================
# PAGE: Nachwirkung (Koffein um Mitternacht)
# =========================================================
elif current_page == "carryover":
    st.header("Koffein um Mitternacht")
    days = st.slider("Tage", 7, 60, 14)
    carry = api_get("/api/coffee/carryover", {"days": days})
    if isinstance(carry, dict) and carry.get("points"):
        cdf = pd.DataFrame(carry["points"])
        cdf["date"] = pd.to_datetime(cdf["date"])
        fig_c = go.Figure()
        fig_c.add_trace(go.Bar(
            x=cdf["date"], y=cdf["caffeine_at_midnight_mg"],
            marker_color="#AB47BC",
            name="mg um 00:00",
        ))
        mobile_chart(fig_c, height=300, yaxis_title="mg")
        st.caption(
            "Modellierte Restmenge beim Tageswechsel. "
            "Über ca. 50 mg kann das Einschlafen spürbar leiden."
        )
    else:
        st.info("Keine Daten.")


# =========================================================
# PAGE: Körperprofil
# =========================================================
elif current_page == "body":
    st.header("Körperprofil")
    body = api_get("/api/body")
    if isinstance(body, dict) and body:
        b1, b2, b3 = st.columns(3)
        b1.metric("Gewicht", f"{body.get('weight_kg', 0):.1f} kg")
        b2.metric("Halbwertszeit", f"{body.get('half_life_hours') or 5:.1f} h")
        b3.metric("Sensitivität", f"{body.get('caffeine_sensitivity') or 1:.2f}")
        if not body.get("found"):
            st.caption("Quelle: Standardwerte (kein Profil in DB)")
        else:
            st.caption(f"Gemessen: {str(body.get('measured_at', ''))[0:16].replace('T', ' ')}")

    history = api_get("/api/body/history", {"limit": 60})
    if isinstance(history, list) and len(history) > 1:
        hdf = pd.DataFrame(history)
        hdf["time"] = pd.to_datetime(hdf["measured_at"])
        fig_w = go.Figure()
        fig_w.add_trace(go.Scatter(
            x=hdf["time"], y=hdf["weight_kg"],
            mode="lines+markers",
            line=dict(color="#AB47BC", width=2),
            marker=dict(size=5),
            name="Gewicht",
        ))
        mobile_chart(fig_w, height=250, yaxis_title="kg")

    with st.form("body_form"):
        current = body if isinstance(body, dict) else {}
        fc1, fc2 = st.columns(2)
        with fc1:
            weight = st.number_input("Gewicht (kg)", min_value=30.0, max_value=250.0,
                                     value=float(current.get("weight_kg") or 75.0), step=0.1)
            half_life = st.number_input("Halbwertszeit (h)", min_value=1.0, max_value=24.0,
                                        value=float(current.get("half_life_hours") or 5.0), step=0.5)
        with fc2:
            body_fat = st.number_input("Körperfett (%)", min_value=0.0, max_value=60.0,
                                       value=float(current.get("body_fat_percentage") or 0.0), step=0.5)
            sensitivity = st.number_input("Sensitivität", min_value=0.5, max_value=2.0,
                                          value=float(current.get("caffeine_sensitivity") or 1.0), step=0.05)
        if st.form_submit_button("Speichern", use_container_width=True):
            r = api_post("/api/body", {
                "weight_kg": weight,
                "half_life_hours": half_life,
                "caffeine_sensitivity": sensitivity,
                "body_fat_percentage": body_fat or None,
            })
            if r.get("status") == "ok":
                st.success("Profil gespeichert")
                st.rerun()


# =========================================================
# PAGE: System
# =========================================================
elif current_page == "system":
    st.header("System")
    status_data = api_get("/api/status")
    if isinstance(status_data, dict):
        sc1, sc2 = st.columns(2)
        sc1.metric("Service", status_data.get("service", "?"))
        sc2.metric("Status", status_data.get("status", "?"))
        st.caption(f"Server: {status_data.get('timestamp', '?')} ({status_data.get('timezone', '?')})")
        st.caption(f"Modell: {status_data.get('model', '?')}")
