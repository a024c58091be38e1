from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..config import get_settings
from .routes import router

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from .routes import search_backend

    logger.info(
        "API started.  Shard prefix=%s, business timezone=%s",
        settings.shard_prefix,
        settings.business_timezone,
    )
    try:
        yield
    finally:
        search_backend.close()


app = FastAPI(title="sidlens API", version="0.1.0", lifespan=lifespan)

app.include_router(router)
