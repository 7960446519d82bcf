"""
Image Proxy Errors

Every failure the proxy can report maps to one of these classes. Each
carries the HTTP status and plain-text detail that the route returns.
"""

from typing import Optional


class ImageProxyError(Exception):
    """Base class for classified proxy failures."""

    status_code: int = 500
    default_detail: str = "Internal Server Error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidSource(ImageProxyError):
    status_code = 400
    default_detail = "Invalid URL"


class InvalidDimension(ImageProxyError):
    status_code = 400
    default_detail = "Invalid dimension parameter"


class NotAnImage(ImageProxyError):
    status_code = 400
    default_detail = "URL does not point to an image"


class ImageTooLarge(ImageProxyError):
    status_code = 413
    default_detail = "Image too large"


class UpstreamError(ImageProxyError):
    """Origin answered with a non-success status."""

    def __init__(self, upstream_status: int, detail: Optional[str] = None):
        self.upstream_status = upstream_status
        # Only error codes are passed through; anything else is a bad gateway
        self.status_code = upstream_status if 400 <= upstream_status <= 599 else 502
        super().__init__(detail or f"Failed to fetch image: {upstream_status}")


class UpstreamTimeout(ImageProxyError):
    status_code = 504
    default_detail = "Request timeout"


class UpstreamUnavailable(ImageProxyError):
    status_code = 502
    default_detail = "Failed to fetch image"


class TransformFailed(ImageProxyError):
    """Decode, resize or encode failed. The original exception is kept as `cause`."""

    status_code = 500
    default_detail = "Failed to transform image"

    def __init__(self, cause: Optional[BaseException] = None, detail: Optional[str] = None):
        self.cause = cause
        super().__init__(detail)


class InternalError(ImageProxyError):
    status_code = 500
    default_detail = "Internal Server Error"


class ImageNotFound(ImageProxyError):
    status_code = 404
    default_detail = "Image not found"
