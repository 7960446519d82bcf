"""
Image Proxy Module

Fetches remote images and serves them resized and re-encoded.

Features:
- Parameter validation (https only, bounded dimensions, clamped quality)
- In-memory cache with TTL and opportunistic sweeping
- Hard fetch timeout and content-type checking
- WebP, AVIF, JPEG and PNG output with cover-fit resizing
- Local image directory served through the same pipeline
"""

from .cache_manager import CacheEntry, ImageCacheManager
from .config import ImageProxySettings
from .fetcher import FetchedImage, OriginFetcher
from .local_images import LocalImageStore
from .models import (
    LocalImageRequest,
    OutputFormat,
    TransformRequest,
    derive_cache_key,
    parse_local_request,
    parse_transform_request,
)
from .routes_fastapi import router
from .service import ImageProxyService, ProxyResult
from .transformer import ImageTransformer, TransformResult

__all__ = [
    "router",
    "CacheEntry",
    "ImageCacheManager",
    "ImageProxySettings",
    "FetchedImage",
    "OriginFetcher",
    "LocalImageStore",
    "OutputFormat",
    "TransformRequest",
    "derive_cache_key",
    "parse_transform_request",
    "LocalImageRequest",
    "parse_local_request",
    "ImageProxyService",
    "ProxyResult",
    "ImageTransformer",
    "TransformResult",
]
