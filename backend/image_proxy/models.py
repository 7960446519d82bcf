"""
Image Proxy Models

Validated transform parameters and the cache key derived from them.
"""

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlparse, unquote

from .config import ImageProxySettings
from .errors import InvalidSource, InvalidDimension

logger = logging.getLogger(__name__)

# Placeholder for an absent width/height in the cache key
AUTO = "auto"


class OutputFormat(str, Enum):
    """Supported output encodings."""
    WEBP = "webp"
    AVIF = "avif"
    JPEG = "jpeg"
    JPG = "jpg"
    PNG = "png"

    @property
    def content_type(self) -> str:
        if self is OutputFormat.JPG:
            return "image/jpeg"
        return f"image/{self.value}"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OutputFormat":
        """Unknown or missing values fall back to WebP."""
        if value:
            try:
                return cls(value.strip().lower())
            except ValueError:
                logger.debug(f"[ImageProxy] Unknown format {value!r}, using webp")
        return cls.WEBP


DEFAULT_FORMAT = OutputFormat.WEBP


@dataclass(frozen=True)
class TransformRequest:
    """A validated request to fetch and re-encode one image."""
    source_url: str
    width: Optional[int] = None
    height: Optional[int] = None
    quality: int = 80
    format: OutputFormat = DEFAULT_FORMAT

    @property
    def cache_key(self) -> str:
        return derive_cache_key(self)

    @property
    def resize_requested(self) -> bool:
        return self.width is not None or self.height is not None


@dataclass(frozen=True)
class LocalImageRequest:
    """A validated request to re-encode one file from the local image directory."""
    filename: str
    width: Optional[int] = None
    height: Optional[int] = None
    quality: int = 80
    format: OutputFormat = DEFAULT_FORMAT

    @property
    def cache_key(self) -> str:
        return _digest(f"local:{self.filename}", self.width, self.height, self.quality, self.format)

    @property
    def resize_requested(self) -> bool:
        return self.width is not None or self.height is not None


def _digest(source: str, width: Optional[int], height: Optional[int], quality: int, fmt: OutputFormat) -> str:
    parts = [
        str(width) if width is not None else AUTO,
        str(height) if height is not None else AUTO,
        str(quality),
        fmt.value,
        source,
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def derive_cache_key(request: TransformRequest) -> str:
    """
    Derive a stable key from the effective transform parameters.

    Missing dimensions are written as "auto" so that every field is always
    present in the digest input. The URL goes last so that any separator
    characters it contains cannot shift the numeric fields.
    """
    return _digest(request.source_url, request.width, request.height, request.quality, request.format)


def _parse_source_url(raw: Optional[str]) -> str:
    if not raw or not raw.strip():
        raise InvalidSource("Missing image URL")

    url = raw.strip()
    # Accept a URL that was encoded once more than the query string requires
    if "://" not in url:
        url = unquote(url)

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as e:
        raise InvalidSource(f"Invalid URL: {e}")

    if not parsed.scheme or not hostname:
        raise InvalidSource("Invalid URL")
    if parsed.scheme.lower() != "https":
        raise InvalidSource("Only HTTPS URLs are allowed")
    return url


def _parse_dimension(raw: Optional[str], name: str, max_dimension: int) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return None
    text = raw.strip()
    # ASCII decimal digits only
    if not (text.isascii() and text.isdigit()):
        raise InvalidDimension(f"Invalid {name} parameter")
    value = int(text)
    if value < 1 or value > max_dimension:
        raise InvalidDimension(f"Invalid {name} parameter")
    return value


def _parse_quality(raw: Optional[str], settings: ImageProxySettings) -> int:
    quality = settings.default_quality
    if raw is not None and raw.strip():
        try:
            quality = int(raw.strip())
        except ValueError:
            logger.debug(f"[ImageProxy] Non-numeric quality {raw!r}, using default")
    return min(max(quality, settings.min_quality), settings.max_quality)


def parse_transform_request(
    url: Optional[str],
    width: Optional[str] = None,
    height: Optional[str] = None,
    quality: Optional[str] = None,
    format: Optional[str] = None,
    settings: Optional[ImageProxySettings] = None,
) -> TransformRequest:
    """
    Validate raw query values into a TransformRequest.

    Raises:
        InvalidSource: url missing, malformed, or not https.
        InvalidDimension: width/height not an integer in [1, max_dimension].
    """
    settings = settings or ImageProxySettings()

    return TransformRequest(
        source_url=_parse_source_url(url),
        width=_parse_dimension(width, "width", settings.max_dimension),
        height=_parse_dimension(height, "height", settings.max_dimension),
        quality=_parse_quality(quality, settings),
        format=OutputFormat.parse(format),
    )


def _parse_filename(raw: Optional[str]) -> str:
    filename = (raw or "").strip()
    if not filename or ".." in filename or "/" in filename or "\\" in filename or "\x00" in filename:
        raise InvalidSource("Invalid filename")
    return filename


def parse_local_request(
    filename: Optional[str],
    width: Optional[str] = None,
    height: Optional[str] = None,
    quality: Optional[str] = None,
    format: Optional[str] = None,
    settings: Optional[ImageProxySettings] = None,
) -> LocalImageRequest:
    """
    Validate a local image filename and the same w/h/q/f values as the proxy.

    Raises:
        InvalidSource: filename empty or containing "..", "/" or "\\".
        InvalidDimension: width/height not an integer in [1, max_dimension].
    """
    settings = settings or ImageProxySettings()

    return LocalImageRequest(
        filename=_parse_filename(filename),
        width=_parse_dimension(width, "width", settings.max_dimension),
        height=_parse_dimension(height, "height", settings.max_dimension),
        quality=_parse_quality(quality, settings),
        format=OutputFormat.parse(format),
    )
