"""
FastAPI main application for the Books Management API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from api import authors, books, categories
from api.config import config as api_config
from api.dependencies import get_database
from api.errors import register_exception_handlers
from api.middleware import RequestLoggingMiddleware
from api.models import HealthResponse
from catalog.covers import PUBLIC_PREFIX, CoverImageStorage
from catalog.database import CatalogDatabase
from utilities.config import config
from utilities.logger import setup_logging

# Setup logging
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Books Management API", environment=config.environment)

    config.get_upload_path().mkdir(parents=True, exist_ok=True)

    # A database handle placed on app.state beforehand is used as is
    database = getattr(app.state, "database", None)
    owns_database = database is None
    if owns_database:
        database = CatalogDatabase(
            connection_url=config.mongodb_url,
            database_name=config.mongodb_database,
            use_transactions=config.mongodb_use_transactions,
        )
        try:
            await database.connect()
        except Exception as e:
            logger.error("Failed to connect to database", error=str(e))
            raise
        app.state.database = database

    logger.info(
        "Books Management API is ready",
        database=config.mongodb_database,
        transactions=database.transactions_enabled,
    )

    yield

    # Shutdown
    logger.info("Shutting down Books Management API")
    if owns_database:
        await database.disconnect()
        app.state.database = None


def create_app() -> FastAPI:
    """Assemble the application: middleware, routers, static uploads and error handlers."""
    app = FastAPI(
        title=api_config.api_title,
        description=api_config.api_description,
        version=api_config.api_version,
        lifespan=lifespan
    )

    app.state.database = None
    app.state.cover_storage = CoverImageStorage(config.upload_dir, config.max_cover_size)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=api_config.cors_allow_credentials,
        allow_methods=api_config.cors_allow_methods,
        allow_headers=api_config.cors_allow_headers,
    )

    register_exception_handlers(app)

    app.include_router(authors.router)
    app.include_router(categories.router)
    app.include_router(books.router)

    app.mount(PUBLIC_PREFIX, StaticFiles(directory=config.upload_dir, check_dir=False), name="uploads")

    @app.get("/", tags=["Root"])
    async def root():
        """Welcome document listing the endpoint roots."""
        return {
            "message": "Welcome to Books Management API",
            "version": api_config.api_version,
            "endpoints": {
                "books": "/api/books",
                "authors": "/api/authors",
                "categories": "/api/categories",
            },
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(database: CatalogDatabase = Depends(get_database)):
        """Health check endpoint."""
        health_info = await database.health_check()
        db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.now(timezone.utc),
            version=api_config.api_version,
            database_status=db_status,
            transactions=health_info.get("transactions"),
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=api_config.log_level.lower()
    )
