"""
Image proxy test configuration.

Fixtures build a proxy with a mock origin (httpx.MockTransport), a cache
with a controllable clock, and small in-memory test images.
"""

import struct
import sys
import zlib
from io import BytesIO
from pathlib import Path

import httpx
import pytest
from PIL import Image

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from image_proxy import ImageCacheManager, ImageProxySettings


# ============================================
# Helpers
# ============================================

class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockOrigin:
    """
    A fake image origin that records every request.

    Usage:
        origin = MockOrigin(body=png_bytes)
        transport = origin.transport
    """

    def __init__(self, body: bytes = b"", content_type: str = "image/png", status_code: int = 200):
        self.body = body
        self.content_type = content_type
        self.status_code = status_code
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            self.status_code,
            headers={"content-type": self.content_type},
            content=self.body,
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def call_count(self) -> int:
        return len(self.requests)


def make_image_bytes(size=(64, 48), fmt="PNG", mode="RGB", color=(200, 30, 30)) -> bytes:
    """Encode a solid-color image."""
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    img = Image.new(mode, size, color)
    output = BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


def png_with_declared_size(width: int, height: int) -> bytes:
    """A 1x1 PNG whose header claims width x height. Only the header is ever valid."""
    data = make_image_bytes((1, 1), "PNG")
    ihdr = struct.pack(">II", width, height) + data[24:29]
    crc = struct.pack(">I", zlib.crc32(b"IHDR" + ihdr) & 0xFFFFFFFF)
    return data[:16] + ihdr + crc + data[33:]


def open_image(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def settings():
    return ImageProxySettings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Cache that never sweeps on its own, driven by the fake clock."""
    return ImageCacheManager(cache_ttl_seconds=3600, sweep_probability=0.0, clock=clock)


@pytest.fixture
def png_bytes():
    return make_image_bytes((64, 48), "PNG")


@pytest.fixture
def origin(png_bytes):
    return MockOrigin(body=png_bytes)
