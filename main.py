"""
Video Platform API - Main Application Entry Point.

This module initializes and configures the FastAPI application for the Video
Platform API: user accounts and sessions, channel profiles, watch history and
playlists. It sets up logging, the database, middleware, and routes.

Key Responsibilities:
- Configure and launch the FastAPI application.
- Set up middleware for correlation, error handling and request timing.
- Initialize the token manager and the media storage provider.
- Mount API routers (health, users, playlists).
- Manage the application's lifecycle with startup and shutdown events.

Middleware order: Starlette runs the most recently added middleware first, so
`CorrelationMiddleware` is added last and wraps everything else.
"""

import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.health_router import health_router, monitoring_router
from api.playlist_endpoints import router as playlist_router
from api.user_endpoints import router as user_router
from core.auth import init_jwt_manager
from core.database import create_db_and_tables, engine
from core.logging_config import setup_logging, get_logger
from core.middleware import (
    CorrelationMiddleware,
    ErrorHandlingMiddleware,
    PerformanceMiddleware,
    register_exception_handlers,
)
from providers.storage_provider import init_storage_provider


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger = get_logger("api.startup")
    try:
        await create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    init_jwt_manager()
    logger.info("Token manager initialized")

    storage = init_storage_provider()
    logger.info(f"Storage provider initialized: {storage.source_name}")

    logger.info("Service startup completed")
    yield

    # Cleanup on shutdown
    logger.info("Shutting down Video Platform API")
    await engine.dispose()
    logger.info("Cleanup completed")


app = FastAPI(
    title="Video Platform API",
    description="Accounts, sessions, channel profiles, watch history and playlists",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware (cookies require explicit origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(PerformanceMiddleware)
app.add_middleware(CorrelationMiddleware)

register_exception_handlers(app)

# Health routers first (no authentication required for monitoring)
app.include_router(health_router)
app.include_router(monitoring_router)

app.include_router(user_router)
app.include_router(playlist_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info",
    )
