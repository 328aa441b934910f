"""Liveness endpoint with a database probe."""

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from grounded.core.db_client import DBClient
from grounded.interface.dependencies import get_db


router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request, db: DBClient = Depends(get_db)) -> JSONResponse:
    """Report service status; 503 when the database does not answer."""
    connected = await db.ping()
    started_at = getattr(request.app.state, "started_at", time.monotonic())
    return JSONResponse(
        content={
            "status": "ok" if connected else "error",
            "timestamp": datetime.now(UTC).isoformat(),
            "uptime": int(time.monotonic() - started_at),
            "database": "connected" if connected else "disconnected",
        },
        status_code=200 if connected else 503,
    )
