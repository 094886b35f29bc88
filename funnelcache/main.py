"""FunnelCache: FastAPI Application Entry Point.

Period-level ad metrics with a canonical funnel, served from the summary
store for closed periods and a single-flight cache for open ones.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from funnelcache.database import init_db, test_connection, db_url, _mask_url
from funnelcache.scheduler.jobs import start_scheduler, stop_scheduler
from funnelcache.api.metrics_routes import router as metrics_router
from funnelcache.core.logging import get_logger

logger = get_logger("main")

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("FunnelCache starting up...")
    logger.info(f"Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    if test_connection():
        init_db()
    else:
        logger.error("Database NOT connected; endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("FunnelCache shut down")


app = FastAPI(
    title="FunnelCache",
    description="Normalized funnel metrics per client, platform and reporting period.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(metrics_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "funnelcache",
        "version": "1.0.0",
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Check database connectivity."""
    backend = "postgresql" if db_url.startswith("postgresql") else "sqlite"
    return {
        "connected": test_connection(),
        "backend": backend,
        "url": _mask_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
    }
