"""FastAPI application entry point for AdLaunch.

Publish-readiness service: validates campaign setup, ad-account funding
and admin access before an ad goes to Meta, and drives the ad's status
through review, pause/resume and archive.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adlaunch.api import ads, campaigns
from adlaunch.config import settings
from adlaunch.orchestrator.scheduler import start_scheduler, stop_scheduler
from adlaunch.services.database import DatabaseService

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-25s | %(levelname)-7s | %(message)s",
)
logger = logging.getLogger("adlaunch")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ──
    logger.info("AdLaunch starting up (env=%s, store=%s)", settings.app_env, settings.record_store_backend)

    if settings.record_store_backend == "sql":
        await DatabaseService.init_tables()
        logger.info("Database tables ready")

    start_scheduler()

    yield

    # ── Shutdown ──
    stop_scheduler()
    await DatabaseService.close()
    logger.info("AdLaunch shut down cleanly")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="AdLaunch",
    description=(
        "Publish-readiness checks and status lifecycle for Meta ads: "
        "campaign completeness, ad-account funding, admin access."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# CORS (allow frontend)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
app.include_router(ads.router, prefix="/api")
app.include_router(campaigns.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "AdLaunch",
        "tagline": "publish-readiness for Meta ads",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "publish-gate", "simulation": settings.publish_simulation}
