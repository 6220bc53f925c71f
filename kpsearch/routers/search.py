"""
Search API routes
"""
import logging
import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from kpsearch.core.database import get_db
from kpsearch.schemas.search import SearchErrorResponse, SearchMeta, SearchRequest
from kpsearch.services.catalog_store import catalog_store
from kpsearch.services.search_pipeline import SearchPipeline

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/search", tags=["search"])


def get_search_pipeline(request: Request) -> SearchPipeline:
    """Pipeline built at startup"""
    return request.app.state.search_pipeline


def _invalid_request(message: str, start_time: float, details=None) -> JSONResponse:
    body = SearchErrorResponse(
        error="invalid_request",
        message=message,
        meta=SearchMeta(took_ms=int((time.time() - start_time) * 1000)),
        details=details,
    )
    return JSONResponse(status_code=400, content=body.model_dump(exclude_none=True))


@router.post("")
async def search_products(
    request: Request,
    db: AsyncSession = Depends(get_db),
    pipeline: SearchPipeline = Depends(get_search_pipeline),
):
    """Natural-language product search"""
    start_time = time.time()

    try:
        payload = await request.json()
    except ValueError:
        return _invalid_request("Request body must be JSON", start_time)

    if not isinstance(payload, dict):
        return _invalid_request("Request body must be a JSON object", start_time)

    try:
        search_request = SearchRequest(**payload)
    except ValidationError as e:
        errors = [{"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]} for err in e.errors()]
        return _invalid_request("Invalid search request", start_time, details=errors)

    result = await pipeline.search(db, search_request.query, search_request.limit, search_request.offset)

    if not result.success:
        return JSONResponse(status_code=500, content=result.model_dump(exclude_none=True))
    return JSONResponse(status_code=200, content=result.model_dump())


@router.get("/diagnostics")
async def search_diagnostics(
    db: AsyncSession = Depends(get_db),
    pipeline: SearchPipeline = Depends(get_search_pipeline),
):
    """Database reachability, product counts per type and vocabulary sizes"""
    metadata = pipeline.parser.metadata
    vocabulary = {
        "product_types": len(metadata.product_types),
        "artists": len(metadata.artists),
        "artist_aliases": len(metadata.artist_aliases),
        "tags": len(metadata.tags),
    }

    try:
        catalog = await catalog_store.diagnostics(db)
    except Exception as e:
        logger.error(f"Diagnostics database check failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "unreachable", "error": str(e), "vocabulary": vocabulary},
        )

    return {
        "status": "ok",
        "database": "connected",
        **catalog,
        "vocabulary": vocabulary,
        "completion_usage": pipeline.parser.completion_service.get_usage_stats(),
    }
