"""
Image Proxy Service

Request flow:
1. Validate parameters and derive the cache key
2. Serve from cache if a fresh entry exists
3. Otherwise fetch, transform, cache, and serve

Local images follow the same flow with a disk read in place of the fetch
and a separate, longer-lived cache.

Concurrent misses for the same key are not coalesced: each one fetches
and transforms independently and the last store wins.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from .cache_manager import ImageCacheManager
from .config import ImageProxySettings
from .fetcher import OriginFetcher
from .local_images import LocalImageStore
from .models import LocalImageRequest, TransformRequest, parse_local_request, parse_transform_request
from .transformer import ImageTransformer

logger = logging.getLogger(__name__)

CACHE_HIT = "HIT"
CACHE_MISS = "MISS"


@dataclass(frozen=True)
class ProxyResult:
    """Bytes ready to serve plus where they came from."""
    data: bytes
    content_type: str
    cache_status: str


class ImageProxyService:
    """Coordinates validation, caching, fetching and transforming."""

    def __init__(
        self,
        cache: ImageCacheManager,
        fetcher: OriginFetcher,
        transformer: ImageTransformer,
        settings: Optional[ImageProxySettings] = None,
        local_store: Optional[LocalImageStore] = None,
        local_cache: Optional[ImageCacheManager] = None,
    ):
        self.cache = cache
        self.fetcher = fetcher
        self.transformer = transformer
        self.settings = settings or ImageProxySettings()
        self.local_store = local_store or LocalImageStore(self.settings.local_image_dir)
        if local_cache is None:
            local_cache = ImageCacheManager(
                cache_ttl_seconds=self.settings.local_cache_ttl_seconds,
                sweep_probability=self.settings.sweep_probability,
            )
        self.local_cache = local_cache

    def parse(
        self,
        url: Optional[str],
        width: Optional[str] = None,
        height: Optional[str] = None,
        quality: Optional[str] = None,
        format: Optional[str] = None,
    ) -> TransformRequest:
        return parse_transform_request(url, width, height, quality, format, settings=self.settings)

    async def handle(self, request: TransformRequest) -> ProxyResult:
        key = request.cache_key

        cached = self.cache.lookup(key)
        if cached is not None:
            logger.debug(f"[ImageProxy] Cache hit: {request.source_url[:60]}...")
            return ProxyResult(cached.data, cached.content_type, CACHE_HIT)

        fetched = await self.fetcher.fetch(request.source_url)
        result = await run_in_threadpool(self.transformer.transform, fetched.data, request)

        self.cache.store(key, result.data, result.content_type)
        self.cache.maybe_sweep()

        logger.info(
            f"[ImageProxy] Proxied: {request.source_url[:60]}... "
            f"({len(fetched.data)} -> {len(result.data)} bytes, {result.width}x{result.height} {request.format.value})"
        )
        return ProxyResult(result.data, result.content_type, CACHE_MISS)

    def parse_local(
        self,
        filename: Optional[str],
        width: Optional[str] = None,
        height: Optional[str] = None,
        quality: Optional[str] = None,
        format: Optional[str] = None,
    ) -> LocalImageRequest:
        return parse_local_request(filename, width, height, quality, format, settings=self.settings)

    async def handle_local(self, request: LocalImageRequest) -> ProxyResult:
        key = request.cache_key

        cached = self.local_cache.lookup(key)
        if cached is not None:
            logger.debug(f"[LocalImage] Cache hit: {request.filename}")
            return ProxyResult(cached.data, cached.content_type, CACHE_HIT)

        data = await run_in_threadpool(self.local_store.read, request.filename)
        result = await run_in_threadpool(self.transformer.transform, data, request)

        self.local_cache.store(key, result.data, result.content_type)
        self.local_cache.maybe_sweep()

        logger.info(
            f"[LocalImage] Served: {request.filename} "
            f"({len(data)} -> {len(result.data)} bytes, {result.width}x{result.height} {request.format.value})"
        )
        return ProxyResult(result.data, result.content_type, CACHE_MISS)
