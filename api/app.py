"""
SEO Dashboard API

FastAPI application that:
1. Serves the dashboard's JSON REST API under /api
2. Dispatches audits, rank tracking, geo-grid scans and AI-SEO runs as background jobs
3. Runs the hourly and daily schedulers when SCHEDULER_ENABLED is set

Run with:
    uvicorn api.app:app --reload
"""

import logging
import sys
from datetime import datetime

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from seo_dashboard import __version__  # noqa: E402
from seo_dashboard.database.session import check_db_connection, init_db  # noqa: E402
from seo_dashboard.dataforseo.cache import get_cache  # noqa: E402
from seo_dashboard.jobs import scheduler  # noqa: E402
from seo_dashboard.utils.config import get_settings  # noqa: E402

from . import (  # noqa: E402
    ai_seo,
    archive,
    audits,
    dashboard,
    domains,
    keyword_tracking,
    keywords,
    local_seo,
    seo_audit,
)
from .errors import install_exception_handlers, ok  # noqa: E402

settings = get_settings()

# Configure logging to stdout
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

app = FastAPI(
    title="SEO Audit Dashboard",
    description="SEO audits, rank tracking, local geo-grid scans and AI visibility powered by DataForSEO",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_exception_handlers(app)

for module in (domains, keywords, audits, dashboard, keyword_tracking, local_seo, ai_seo, seo_audit, archive):
    app.include_router(module.router)


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize the database and start the scheduler."""
    logger.info("Initializing database...")
    try:
        init_db()
        if check_db_connection():
            logger.info("Database connection verified")
        else:
            logger.warning("Database connection check failed - continuing anyway")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    if settings.SCHEDULER_ENABLED:
        await scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    if scheduler.running:
        await scheduler.stop()
    await get_cache().close()


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/api/health")
async def health():
    """Database and cache connectivity, DataForSEO configuration."""
    db_connected = check_db_connection()
    cache = get_cache()
    cache_connected = await cache.ping() if cache.is_enabled() else False

    return ok({
        "status": "healthy" if db_connected else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__,
        "database": "connected" if db_connected else "disconnected",
        "cache": "connected" if cache_connected else ("disconnected" if cache.is_enabled() else "disabled"),
        "dataforseoConfigured": settings.dataforseo_configured,
        "schedulerRunning": scheduler.running,
    })
