"""
Image Proxy Server

FastAPI application hosting the image proxy.

Run:
    cd backend
    uvicorn main:app --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from image_proxy import (
    ImageCacheManager,
    ImageProxyService,
    ImageProxySettings,
    ImageTransformer,
    LocalImageStore,
    OriginFetcher,
    router as image_proxy_router,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[ImageProxySettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    cache: Optional[ImageCacheManager] = None,
) -> FastAPI:
    """
    Build the application.

    The cache, fetcher and transformer are created when the app starts and
    torn down when it stops. `transport` and `cache` let tests swap in a
    mock origin and a cache with a controlled clock.
    """
    settings = settings or ImageProxySettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        image_cache = cache
        if image_cache is None:
            image_cache = ImageCacheManager(
                cache_ttl_seconds=settings.cache_ttl_seconds,
                sweep_probability=settings.sweep_probability,
            )
        local_cache = ImageCacheManager(
            cache_ttl_seconds=settings.local_cache_ttl_seconds,
            sweep_probability=settings.sweep_probability,
        )
        fetcher = OriginFetcher(settings, transport=transport)
        app.state.image_proxy = ImageProxyService(
            cache=image_cache,
            fetcher=fetcher,
            transformer=ImageTransformer(settings),
            settings=settings,
            local_store=LocalImageStore(settings.local_image_dir),
            local_cache=local_cache,
        )
        logger.info(f"[ImageProxy] Started (ttl={settings.cache_ttl_seconds}s, timeout={settings.fetch_timeout_seconds}s)")
        try:
            yield
        finally:
            await fetcher.aclose()
            image_cache.clear()
            local_cache.clear()
            logger.info("[ImageProxy] Stopped")

    app = FastAPI(title="Image Proxy", lifespan=lifespan)
    app.include_router(image_proxy_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
