"""Timeloo API entrypoint: ``uvicorn timeloo.main:app``."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timeloo.common.exceptions import register_exception_handlers
from timeloo.common.logging import setup_logging
from timeloo.common.rate_limit import limiter
from timeloo.config import settings
from timeloo.database import engine
from timeloo.leave.router import router as leave_router
from timeloo.notifications.router import router as notifications_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Timeloo API up (environment=%s)", settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("Timeloo API shut down, connection pool disposed")


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)
    show_docs = settings.ENVIRONMENT != "production"

    app = FastAPI(
        title="Timeloo",
        description="Leave management: balances, overlap checks, approvals, notifications",
        version=API_VERSION,
        docs_url=f"{API_PREFIX}/docs" if show_docs else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.limiter = limiter
    register_exception_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get(f"{API_PREFIX}/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": API_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    app.include_router(leave_router, prefix=f"{API_PREFIX}/leave", tags=["leave"])
    app.include_router(notifications_router, prefix=f"{API_PREFIX}/notifications")
    return app


app = create_app()
