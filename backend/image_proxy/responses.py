"""
Response Composer

Builds the outbound HTTP responses for served images and for errors.
"""

import hashlib
from typing import Dict, Optional

from fastapi.responses import PlainTextResponse, Response

from .errors import ImageProxyError
from .service import ProxyResult

# Browsers keep it a day, shared caches a year
CACHE_CONTROL = "public, max-age=86400, s-maxage=31536000"

# Local files never change under the same name
LOCAL_CACHE_CONTROL = "public, max-age=31536000, immutable"


def compute_etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


def _etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    if not if_none_match:
        return False
    candidates = [tag.strip() for tag in if_none_match.split(",")]
    weak = f"W/{etag}"
    return "*" in candidates or etag in candidates or weak in candidates


def image_response(
    result: ProxyResult,
    if_none_match: Optional[str] = None,
    cache_control: str = CACHE_CONTROL,
) -> Response:
    """
    Serve transformed bytes with caching headers.

    A matching If-None-Match yields 304 with the same caching headers and
    no body.
    """
    etag = compute_etag(result.data)
    headers: Dict[str, str] = {
        "Cache-Control": cache_control,
        "Vary": "Accept",
        "X-Cache": result.cache_status,
        "ETag": etag,
    }

    if _etag_matches(if_none_match, etag):
        return Response(status_code=304, headers=headers)

    headers["Content-Length"] = str(len(result.data))
    return Response(
        content=result.data,
        status_code=200,
        media_type=result.content_type,
        headers=headers,
    )


def error_response(error: ImageProxyError) -> PlainTextResponse:
    """Plain-text error body with the status mapped from the error class."""
    return PlainTextResponse(error.detail, status_code=error.status_code)
