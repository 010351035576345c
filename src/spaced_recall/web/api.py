"""FastAPI application factory.

Main entry point for the Spaced Recall Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from spaced_recall import __version__
from spaced_recall.config.app_config import load_app_config
from spaced_recall.db.database import get_db_path, init_db
from spaced_recall.web.routes import (
    activities_router,
    ai_router,
    health_router,
    integrations_router,
    pathways_router,
    reviews_router,
    subjects_router,
    users_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    # Startup
    init_db(load_app_config().db_path)
    logger.info("api_startup", db_path=str(get_db_path().absolute()))
    yield
    # Shutdown (nothing to do for now)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Spaced Recall API",
        description="Web API for the Spaced Recall study tracker",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(subjects_router)
    app.include_router(reviews_router)
    app.include_router(activities_router)
    app.include_router(integrations_router)
    app.include_router(ai_router)
    app.include_router(pathways_router)

    return app


# Default app instance for uvicorn
app = create_app()
