import logging

from fastapi import APIRouter, Depends, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from edge_router.config import Settings, get_settings
from edge_router.models.route import CacheOptions
from edge_router.services.pool import default_pool

logger = logging.getLogger(__name__)

RATE_LIMIT = "120/minute"

limiter = Limiter(key_func=get_remote_address)
router = APIRouter()


@router.get("/{path:path}", include_in_schema=False)
@limiter.limit(RATE_LIMIT)
async def serve(request: Request, settings: Settings = Depends(get_settings)) -> Response:
    """Route the request path through the router pooled for the current settings."""
    app_router = default_pool.get(
        settings.assets_url,
        settings.api_url,
        settings.stage,
        fetch_attempts=settings.fetch_attempts,
        fetch_timeout=settings.fetch_timeout,
        fetch_backoff=settings.fetch_backoff,
        allow_extended_ids=settings.allow_extended_app_ids,
    )
    options = CacheOptions(
        client_cache_seconds=settings.client_cache_seconds,
        shared_cache_seconds=settings.shared_cache_seconds,
    )

    result = await app_router.route(request.url.path, options)
    logger.debug("Served %s with %d", request.url.path, result.status_code)
    return Response(content=result.body, status_code=result.status_code, headers=result.headers)
