"""Routes package: assembles the sub-routers into a single ``router``."""

from __future__ import annotations

from fastapi import APIRouter

from ._helpers import aggregator, search_backend, settings  # noqa: F401
from .health import router as health_router
from .sessions import router as sessions_router

router = APIRouter()

router.include_router(health_router)
router.include_router(sessions_router)
