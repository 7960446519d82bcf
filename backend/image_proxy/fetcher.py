"""
Origin Fetcher

Downloads source images under a hard deadline and checks that the origin
actually returned image content. No decoding happens here.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .config import ImageProxySettings
from .errors import (
    ImageTooLarge,
    InvalidSource,
    NotAnImage,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedImage:
    """Raw bytes and declared content type from the origin."""
    url: str
    data: bytes
    content_type: str


class OriginFetcher:
    """
    Fetches images from remote origins.

    Usage:
        fetcher = OriginFetcher(settings)
        image = await fetcher.fetch("https://example.com/a.jpg")
        await fetcher.aclose()
    """

    def __init__(
        self,
        settings: Optional[ImageProxySettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or ImageProxySettings()
        self.timeout = self.settings.fetch_timeout_seconds
        self.max_bytes = self.settings.max_source_bytes

        self.http_client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=transport,
            event_hooks={"request": [self._require_https]},
            headers={
                "User-Agent": self.settings.user_agent,
                "Accept": "image/webp,image/avif,image/*,*/*;q=0.8",
                "Accept-Encoding": "gzip, deflate, br",
            },
        )

    async def _require_https(self, request: httpx.Request) -> None:
        # Runs for every hop, including redirects
        if request.url.scheme != "https":
            logger.warning(f"[ImageFetch] Refusing non-HTTPS hop: {str(request.url)[:60]}...")
            raise InvalidSource("Only HTTPS URLs are allowed")

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self.http_client.aclose()

    async def fetch(self, url: str) -> FetchedImage:
        """
        Fetch an image, cancelling the request if it runs past the timeout.

        Raises:
            UpstreamTimeout: no complete response within the timeout.
            NotAnImage: declared content type is not image/*.
            UpstreamError: origin answered with a non-2xx status.
            ImageTooLarge: body exceeds max_source_bytes.
            InvalidSource: a redirect pointed at a non-HTTPS URL.
            UpstreamUnavailable: connection or protocol failure.
        """
        logger.info(f"[ImageFetch] Fetching: {url[:80]}...")
        try:
            return await asyncio.wait_for(self._fetch(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"[ImageFetch] Timeout: {url[:60]}...")
            raise UpstreamTimeout()

    async def _fetch(self, url: str) -> FetchedImage:
        try:
            async with self.http_client.stream("GET", url) as response:
                content_type = (
                    response.headers.get("content-type", "").split(";")[0].strip().lower()
                )
                if not content_type.startswith("image/"):
                    logger.warning(
                        f"[ImageFetch] Non-image content-type: {content_type or '<none>'} "
                        f"(status {response.status_code}) for {url[:60]}..."
                    )
                    raise NotAnImage()

                if not response.is_success:
                    logger.error(f"[ImageFetch] HTTP error {response.status_code}: {url[:60]}...")
                    raise UpstreamError(response.status_code)

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise ImageTooLarge(f"Image too large (max {self.max_bytes // (1024 * 1024)}MB)")

                data = await self._read_limited(response)

        except httpx.TimeoutException:
            logger.error(f"[ImageFetch] Timeout: {url[:60]}...")
            raise UpstreamTimeout()
        except httpx.HTTPError as e:
            logger.error(f"[ImageFetch] Fetch error: {e}")
            raise UpstreamUnavailable()

        logger.info(f"[ImageFetch] Fetched: {url[:60]}... ({len(data)} bytes)")
        return FetchedImage(url=url, data=data, content_type=content_type)

    async def _read_limited(self, response: httpx.Response) -> bytes:
        buffer = bytearray()
        async for chunk in response.aiter_bytes():
            buffer.extend(chunk)
            if len(buffer) > self.max_bytes:
                raise ImageTooLarge(f"Image too large (max {self.max_bytes // (1024 * 1024)}MB)")
        return bytes(buffer)
