from __future__ import annotations

import asyncio

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from . import _helpers

router = APIRouter()


@router.get("/health")
async def health():
    if await asyncio.to_thread(_helpers.search_backend.ping):
        return {"ok": True}
    return JSONResponse(status_code=503, content={"ok": False})
