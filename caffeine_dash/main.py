"""
FastAPI application for the Caffeine-Dashboard.
Run with any ASGI server, e.g. `uvicorn caffeine_dash.main:app`.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from caffeine_dash.api.routes import router
from caffeine_dash.core.database import init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Caffeine-Dashboard", version="1.0.0", lifespan=lifespan)
app.include_router(router)
