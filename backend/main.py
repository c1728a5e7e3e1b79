"""
FireLog - incident reports (meldunki) for Polish volunteer fire departments (OSP)
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rate_limiter import start_cleanup_task
from responses import (
    ApiError,
    ServiceError,
    api_error_handler,
    request_validation_handler,
    service_error_handler,
    unhandled_error_handler,
)
from routers import admin, auth, lookups, meldunki

logging.basicConfig(
    level=os.environ.get("FIRELOG_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"
CORS_ORIGINS = [o.strip() for o in os.environ.get("FIRELOG_CORS_ORIGINS", "*").split(",") if o.strip()]

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("FireLog starting up...")
    cleanup_task = asyncio.create_task(start_cleanup_task())
    yield
    # Shutdown
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    logger.info("FireLog shutting down...")


app = FastAPI(
    title="FireLog API",
    description="Incident reports for OSP fire departments",
    version=VERSION,
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Errors -> {"success": false, "error": {...}}
app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(ServiceError, service_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# Routers
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(meldunki.router, prefix="/api/meldunki", tags=["Meldunki"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(lookups.router, prefix="/api", tags=["Lookups"])


@app.get("/api/health")
async def health():
    """Answers without touching the database."""
    return JSONResponse(
        {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - _started_at, 3),
            "environment": os.environ.get("FIRELOG_ENV", "development"),
            "version": VERSION,
        },
        headers={"Cache-Control": "no-cache"},
    )
