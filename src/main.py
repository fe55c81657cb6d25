"""
Discubot - Main Application Entry Point

FastAPI application that turns Slack, Figma and Notion discussions into
Notion tasks. Webhook endpoints, team-scoped collections and a background
maintenance scheduler.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from .database import init_database, close_database
from .middleware.rate_limit import RateLimitMiddleware
from .monitoring import metrics_middleware
from .scheduler.jobs import get_scheduler_manager
from .web.collections import router as collections_router
from .web.discussions import router as discussions_router
from .web.notion import router as notion_router
from .web.oauth import router as oauth_router
from .web.system import router as system_router
from .web.webhooks import router as webhooks_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    logger.info("Starting Discubot...")

    try:
        if await init_database():
            logger.info("PostgreSQL database initialized")
        else:
            logger.warning("PostgreSQL not configured or failed to initialize")
    except Exception as e:
        logger.warning(f"PostgreSQL init failed: {e}")

    scheduler = get_scheduler_manager()
    try:
        scheduler.start()
    except Exception as e:
        logger.warning(f"Scheduler failed: {e}")

    logger.info("Discubot started")

    yield

    logger.info("Shutting down Discubot...")

    try:
        scheduler.stop()
    except Exception as e:
        logger.warning(f"Scheduler shutdown failed: {e}")

    await close_database()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Discubot",
    description="Discussion to Notion task automation",
    version=settings.app_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.rate_limit_enabled:
    app.add_middleware(RateLimitMiddleware)

app.middleware("http")(metrics_middleware)

app.include_router(system_router)
app.include_router(webhooks_router)
app.include_router(oauth_router)
app.include_router(collections_router)
app.include_router(discussions_router)
app.include_router(notion_router)


@app.get("/")
async def root():
    return {
        "status": "healthy",
        "service": "Discubot",
        "version": settings.app_version
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
