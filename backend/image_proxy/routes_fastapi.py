"""
Image Proxy API Routes

Provides endpoints for:
- Fetching and transforming external images
- Transforming images from the local image directory
- Cache statistics
- Cache management (cleanup, clear)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel

from .errors import ImageProxyError, InternalError
from .responses import LOCAL_CACHE_CONTROL, error_response, image_response
from .service import ImageProxyService

logger = logging.getLogger(__name__)


# ============================================
# Response Models
# ============================================

class CacheStats(BaseModel):
    """Cache statistics."""
    total_entries: int
    total_size_bytes: int
    total_size_mb: float
    hits: int
    misses: int
    hit_rate_percent: float
    cache_ttl_seconds: float


class CacheStatsResponse(BaseModel):
    success: bool
    stats: CacheStats


class CleanupResponse(BaseModel):
    success: bool
    removed_entries: int
    current_stats: CacheStats


class ClearResponse(BaseModel):
    success: bool
    removed_entries: int
    message: str


class HealthResponse(BaseModel):
    status: str
    service: str
    cache_stats: CacheStats


# ============================================
# Dependencies
# ============================================

def get_proxy_service(request: Request) -> ImageProxyService:
    """The service instance created in the application lifespan."""
    return request.app.state.image_proxy


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/image-proxy", tags=["Image Proxy"])


# ============================================
# Endpoints
# ============================================

@router.get("")
@router.get("/")
async def proxy_image(
    url: Optional[str] = Query(None, description="Absolute https URL of the source image"),
    w: Optional[str] = Query(None, description="Target width, 1-3840"),
    h: Optional[str] = Query(None, description="Target height, 1-3840"),
    q: Optional[str] = Query(None, description="Quality, clamped to 10-100 (default 80)"),
    f: Optional[str] = Query(None, description="Output format: webp, avif, jpeg, jpg, png"),
    if_none_match: Optional[str] = Header(None),
    service: ImageProxyService = Depends(get_proxy_service),
) -> Response:
    """
    Fetch, transform and serve an external image.

    Example:
        GET /image-proxy?url=https://example.com/image.jpg&w=400&h=300&f=webp
    """
    try:
        transform_request = service.parse(url, w, h, q, f)
        result = await service.handle(transform_request)
    except ImageProxyError as e:
        if e.status_code >= 500:
            cause = getattr(e, "cause", None)
            logger.error(f"[ImageProxy] {e.status_code} {e.detail}: {cause or ''}")
        return error_response(e)
    except Exception:
        logger.exception(f"[ImageProxy] Unexpected error for {str(url)[:60]}...")
        return error_response(InternalError())

    return image_response(result, if_none_match)


@router.get("/local/{filename}")
async def local_image(
    filename: str,
    w: Optional[str] = Query(None, description="Target width, 1-3840"),
    h: Optional[str] = Query(None, description="Target height, 1-3840"),
    q: Optional[str] = Query(None, description="Quality, clamped to 10-100 (default 80)"),
    f: Optional[str] = Query(None, description="Output format: webp, avif, jpeg, jpg, png"),
    if_none_match: Optional[str] = Header(None),
    service: ImageProxyService = Depends(get_proxy_service),
) -> Response:
    """
    Transform and serve a file from the local image directory.

    Example:
        GET /image-proxy/local/hero.jpg?w=800&f=avif
    """
    try:
        local_request = service.parse_local(filename, w, h, q, f)
        result = await service.handle_local(local_request)
    except ImageProxyError as e:
        if e.status_code >= 500:
            cause = getattr(e, "cause", None)
            logger.error(f"[LocalImage] {e.status_code} {e.detail}: {cause or ''}")
        return error_response(e)
    except Exception:
        logger.exception(f"[LocalImage] Unexpected error for {filename[:60]}")
        return error_response(InternalError())

    return image_response(result, if_none_match, cache_control=LOCAL_CACHE_CONTROL)


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(service: ImageProxyService = Depends(get_proxy_service)):
    """Get cache statistics."""
    return CacheStatsResponse(success=True, stats=CacheStats(**service.cache.get_stats()))


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_cache(service: ImageProxyService = Depends(get_proxy_service)):
    """
    Clean up expired cache entries.

    This is done opportunistically during normal operation,
    but can be triggered manually if needed.
    """
    removed = service.cache.sweep() + service.local_cache.sweep()
    return CleanupResponse(
        success=True,
        removed_entries=removed,
        current_stats=CacheStats(**service.cache.get_stats()),
    )


@router.delete("/clear", response_model=ClearResponse)
async def clear_cache(service: ImageProxyService = Depends(get_proxy_service)):
    """
    Clear all cached images.

    Use with caution - every subsequent request is a miss until the cache refills.
    """
    removed = service.cache.clear() + service.local_cache.clear()
    return ClearResponse(
        success=True,
        removed_entries=removed,
        message="Cache cleared successfully",
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(service: ImageProxyService = Depends(get_proxy_service)):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        service="image-proxy",
        cache_stats=CacheStats(**service.cache.get_stats()),
    )
