"""
FastAPI application for the Kunstpakket search API
"""
import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from kpsearch import __version__
from kpsearch.core.config import settings
from kpsearch.core.logging import setup_logging
from kpsearch.middleware.logging_middleware import RequestLoggingMiddleware
from kpsearch.routers import search
from kpsearch.services.catalog_metadata import CatalogMetadata
from kpsearch.services.search_pipeline import build_search_pipeline

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info(f"Starting {settings.app_name} {__version__} ({settings.environment})")

    if settings.openai_api_key:
        key = settings.openai_api_key
        key_preview = f"{key[:7]}...{key[-4:]}" if len(key) > 11 else "***"
        logger.info(f"✅ OPENAI_API_KEY is set: {key_preview}")
    else:
        logger.error("❌ OPENAI_API_KEY is NOT set - queries will use the fallback filter")

    sanitized = re.sub(r"://[^:]*:[^@]*@", "://***:***@", settings.database_url)
    logger.info(f"Database: {sanitized}")

    metadata = CatalogMetadata.load(settings.catalog_metadata_path)
    app.state.catalog_metadata = metadata
    app.state.search_pipeline = build_search_pipeline(metadata)
    logger.info("Application started")

    yield

    logger.info(f"Shutting down {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    description="Natural-language product search for Kunstpakket.nl",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers"""
    return {
        "status": "ok",
        "timestamp": time.time(),
        "version": __version__,
    }


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.environment == "development" else None,
        "endpoints": {
            "search": "/api/search",
            "diagnostics": "/api/search/diagnostics",
            "health": "/health",
        },
    }


app.include_router(search.router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kpsearch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_config=None,  # Use our custom logging
        access_log=False,  # Request logging happens in middleware
    )
