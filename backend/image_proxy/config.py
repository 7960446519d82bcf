"""
Image Proxy Configuration

All tunables for the proxy, read from environment variables with the
defaults below.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ImageProxySettings:
    """Configuration for fetching, transforming and caching images."""
    # Cache settings
    cache_ttl_seconds: float = 60 * 60          # 1 hour
    sweep_probability: float = 0.01             # Chance a store triggers a sweep

    # Fetch settings
    fetch_timeout_seconds: float = 10.0
    max_source_bytes: int = 25 * 1024 * 1024
    user_agent: str = "Mozilla/5.0 (compatible; ImageProxy/1.0)"

    # Transform settings
    max_pixels: int = 50 * 1024 * 1024          # 50MP
    max_dimension: int = 3840
    min_quality: int = 10
    max_quality: int = 100
    default_quality: int = 80
    webp_near_lossless: bool = True             # Lossless WebP above quality 90

    # Local image settings
    local_image_dir: str = "./public/mvp-images"
    local_cache_ttl_seconds: float = 24 * 60 * 60  # 24 hours

    @classmethod
    def from_env(cls) -> "ImageProxySettings":
        """Build settings from IMAGE_PROXY_* environment variables."""
        return cls(
            cache_ttl_seconds=float(os.getenv("IMAGE_PROXY_CACHE_TTL_SECONDS", "3600")),
            sweep_probability=float(os.getenv("IMAGE_PROXY_SWEEP_PROBABILITY", "0.01")),
            fetch_timeout_seconds=float(os.getenv("IMAGE_PROXY_FETCH_TIMEOUT_SECONDS", "10")),
            max_source_bytes=int(os.getenv("IMAGE_PROXY_MAX_SOURCE_MB", "25")) * 1024 * 1024,
            user_agent=os.getenv("IMAGE_PROXY_USER_AGENT", cls.user_agent),
            max_pixels=int(os.getenv("IMAGE_PROXY_MAX_PIXELS", str(cls.max_pixels))),
            max_dimension=int(os.getenv("IMAGE_PROXY_MAX_DIMENSION", "3840")),
            default_quality=int(os.getenv("IMAGE_PROXY_DEFAULT_QUALITY", "80")),
            webp_near_lossless=_env_bool("IMAGE_PROXY_WEBP_NEAR_LOSSLESS", True),
            local_image_dir=os.getenv("IMAGE_PROXY_LOCAL_IMAGE_DIR", cls.local_image_dir),
            local_cache_ttl_seconds=float(os.getenv("IMAGE_PROXY_LOCAL_CACHE_TTL_SECONDS", "86400")),
        )
