"""
Origin fetcher tests.

The origin is an httpx.MockTransport; no network access is needed.

Run:
    cd backend
    pytest tests/test_fetcher.py -v
"""

import asyncio

import brotli
import httpx
import pytest

from conftest import MockOrigin
from image_proxy.config import ImageProxySettings
from image_proxy.errors import (
    ImageTooLarge,
    InvalidSource,
    NotAnImage,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from image_proxy.fetcher import OriginFetcher

URL = "https://images.example.com/photo.png"


@pytest.fixture
async def make_fetcher():
    """Build fetchers against a given transport and close them afterwards."""
    created = []

    def factory(transport, settings=None):
        fetcher = OriginFetcher(settings or ImageProxySettings(), transport=transport)
        created.append(fetcher)
        return fetcher

    yield factory

    for fetcher in created:
        await fetcher.aclose()


class TestFetchSuccess:

    @pytest.mark.asyncio
    async def test_returns_bytes_and_content_type(self, make_fetcher, origin, png_bytes):
        fetcher = make_fetcher(origin.transport)
        image = await fetcher.fetch(URL)

        assert image.data == png_bytes
        assert image.content_type == "image/png"
        assert image.url == URL

    @pytest.mark.asyncio
    async def test_sends_identity_and_accept_headers(self, make_fetcher, origin):
        fetcher = make_fetcher(origin.transport)
        await fetcher.fetch(URL)

        sent = origin.requests[0]
        assert sent.headers["user-agent"] == "Mozilla/5.0 (compatible; ImageProxy/1.0)"
        assert "image/webp" in sent.headers["accept"]

    @pytest.mark.asyncio
    async def test_content_type_parameters_are_stripped(self, make_fetcher, png_bytes):
        origin = MockOrigin(body=png_bytes, content_type="Image/PNG; charset=binary")
        image = await make_fetcher(origin.transport).fetch(URL)
        assert image.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_brotli_body_is_decoded(self, make_fetcher, png_bytes):
        def handler(request):
            return httpx.Response(
                200,
                headers={"content-type": "image/png", "content-encoding": "br"},
                content=brotli.compress(png_bytes),
            )

        image = await make_fetcher(httpx.MockTransport(handler)).fetch(URL)
        assert image.data == png_bytes

    @pytest.mark.asyncio
    async def test_https_redirect_is_followed(self, make_fetcher, png_bytes):
        def handler(request):
            if request.url.path == "/old.png":
                return httpx.Response(301, headers={"location": "https://cdn.example.com/new.png"})
            return httpx.Response(200, headers={"content-type": "image/png"}, content=png_bytes)

        image = await make_fetcher(httpx.MockTransport(handler)).fetch("https://images.example.com/old.png")
        assert image.data == png_bytes


class TestFetchFailures:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 404, 500])
    async def test_html_is_not_an_image_regardless_of_status(self, make_fetcher, status):
        origin = MockOrigin(body=b"<html></html>", content_type="text/html", status_code=status)
        with pytest.raises(NotAnImage) as exc_info:
            await make_fetcher(origin.transport).fetch(URL)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_content_type_is_not_an_image(self, make_fetcher):
        def handler(request):
            return httpx.Response(200, content=b"\x89PNG")

        with pytest.raises(NotAnImage):
            await make_fetcher(httpx.MockTransport(handler)).fetch(URL)

    @pytest.mark.asyncio
    async def test_upstream_status_is_carried(self, make_fetcher):
        origin = MockOrigin(body=b"", content_type="image/png", status_code=404)
        with pytest.raises(UpstreamError) as exc_info:
            await make_fetcher(origin.transport).fetch(URL)

        assert exc_info.value.upstream_status == 404
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_slow_origin_times_out(self, make_fetcher):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, headers={"content-type": "image/png"}, content=b"x")

        settings = ImageProxySettings(fetch_timeout_seconds=0.05)
        with pytest.raises(UpstreamTimeout) as exc_info:
            await make_fetcher(httpx.MockTransport(handler), settings).fetch(URL)
        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_transport_timeout_is_a_timeout(self, make_fetcher):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(UpstreamTimeout):
            await make_fetcher(httpx.MockTransport(handler)).fetch(URL)

    @pytest.mark.asyncio
    async def test_connection_failure_is_bad_gateway(self, make_fetcher):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await make_fetcher(httpx.MockTransport(handler)).fetch(URL)
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_body_over_limit_rejected(self, make_fetcher):
        origin = MockOrigin(body=b"x" * (2 * 1024 * 1024), content_type="image/png")
        settings = ImageProxySettings(max_source_bytes=1024 * 1024)

        with pytest.raises(ImageTooLarge) as exc_info:
            await make_fetcher(origin.transport, settings).fetch(URL)
        assert exc_info.value.status_code == 413

    @pytest.mark.asyncio
    async def test_corrupt_brotli_body_is_bad_gateway(self, make_fetcher):
        def handler(request):
            return httpx.Response(
                200,
                headers={"content-type": "image/png", "content-encoding": "br"},
                # Reserved window-size bits make this an invalid stream
                content=b"\x11\x00garbage",
            )

        with pytest.raises(UpstreamUnavailable):
            await make_fetcher(httpx.MockTransport(handler)).fetch(URL)

    @pytest.mark.asyncio
    async def test_redirect_to_plain_http_is_refused(self, make_fetcher, png_bytes):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.scheme == "https":
                return httpx.Response(302, headers={"location": "http://images.example.com/photo.png"})
            return httpx.Response(200, headers={"content-type": "image/png"}, content=png_bytes)

        with pytest.raises(InvalidSource) as exc_info:
            await make_fetcher(httpx.MockTransport(handler)).fetch(URL)

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Only HTTPS URLs are allowed"
        assert len(seen) == 1
