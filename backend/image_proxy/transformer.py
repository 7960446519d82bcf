"""
Image Transform Pipeline

Handles:
- Tolerant decoding with a pixel-count ceiling checked before pixel data is loaded
- Cover-fit resizing (center crop, never enlarging)
- Re-encoding to WebP, AVIF, JPEG or PNG
"""

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Tuple, Union

from PIL import Image, ImageFile, ImageOps

from .config import ImageProxySettings
from .errors import ImageProxyError, ImageTooLarge, TransformFailed
from .models import LocalImageRequest, OutputFormat, TransformRequest

logger = logging.getLogger(__name__)

# Decode what is there rather than failing on a short read
ImageFile.LOAD_TRUNCATED_IMAGES = True

# Modes PNG can store as-is
PNG_MODES = {"1", "L", "LA", "P", "RGB", "RGBA", "I;16"}


@dataclass(frozen=True)
class TransformResult:
    """Encoded output of the pipeline."""
    data: bytes
    content_type: str
    width: int
    height: int


def cover_box(
    source_size: Tuple[int, int],
    width: Optional[int],
    height: Optional[int],
) -> Tuple[int, int]:
    """
    Compute the output size for a cover fit without enlargement.

    With both sides given the output has the requested aspect ratio; if
    filling the box would mean upscaling, the box is scaled down until it
    fits inside the source. With one side given the other follows the
    source aspect ratio.
    """
    src_w, src_h = source_size

    if width and height:
        scale = max(width / src_w, height / src_h)
        if scale > 1:
            width = max(1, round(width / scale))
            height = max(1, round(height / scale))
        return width, height

    if width:
        if width >= src_w:
            return src_w, src_h
        return width, max(1, round(src_h * width / src_w))

    if height:
        if height >= src_h:
            return src_w, src_h
        return max(1, round(src_w * height / src_h)), height

    return src_w, src_h


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (
        img.mode == "P" and "transparency" in img.info
    )


def _prepare_mode(img: Image.Image, fmt: OutputFormat) -> Image.Image:
    """Convert to a mode the target encoder accepts."""
    if fmt in (OutputFormat.JPEG, OutputFormat.JPG):
        if _has_alpha(img):
            # Create white background for transparency
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[3])
            return background
        if img.mode != "RGB":
            return img.convert("RGB")
        return img

    if fmt is OutputFormat.PNG and img.mode in PNG_MODES and img.mode != "P":
        return img

    if _has_alpha(img):
        return img if img.mode == "RGBA" else img.convert("RGBA")
    return img if img.mode == "RGB" else img.convert("RGB")


class ImageTransformer:
    """
    Decodes, resizes and re-encodes images.

    Usage:
        transformer = ImageTransformer(settings)
        result = transformer.transform(fetched.data, request)

    `transform` is CPU-bound and synchronous; callers on the event loop
    should run it in a threadpool.
    """

    def __init__(self, settings: Optional[ImageProxySettings] = None):
        self.settings = settings or ImageProxySettings()

    def transform(self, data: bytes, request: Union[TransformRequest, LocalImageRequest]) -> TransformResult:
        """
        Raises:
            ImageTooLarge: decoded pixel count is over the ceiling.
            TransformFailed: anything else went wrong while decoding or encoding.
        """
        try:
            img = self._open(data)
            img = ImageOps.exif_transpose(img)
            img = _prepare_mode(img, request.format)

            if request.resize_requested:
                box = cover_box(img.size, request.width, request.height)
                if box != img.size:
                    logger.debug(f"[ImageTransform] Resize {img.size[0]}x{img.size[1]} -> {box[0]}x{box[1]}")
                    img = ImageOps.fit(
                        img, box, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5)
                    )

            encoded = self._encode(img, request.format, request.quality)
        except ImageProxyError:
            raise
        except Exception as e:
            logger.error(f"[ImageTransform] Failed: {e}")
            raise TransformFailed(cause=e)

        return TransformResult(
            data=encoded,
            content_type=request.format.content_type,
            width=img.size[0],
            height=img.size[1],
        )

    def _open(self, data: bytes) -> Image.Image:
        """Open lazily and reject oversized images before loading pixels."""
        try:
            img = Image.open(BytesIO(data))
        except Image.DecompressionBombError as e:
            raise ImageTooLarge(f"Image too large: {e}")

        width, height = img.size
        if width * height > self.settings.max_pixels:
            logger.warning(f"[ImageTransform] Rejected {width}x{height} image (over pixel limit)")
            raise ImageTooLarge()
        return img

    def _encode(self, img: Image.Image, fmt: OutputFormat, quality: int) -> bytes:
        output = BytesIO()

        if fmt is OutputFormat.WEBP:
            if self.settings.webp_near_lossless and quality > 90:
                # High quality WebP is treated as a request for a visually lossless encode
                img.save(output, format="WEBP", lossless=True, quality=quality, method=6)
            else:
                img.save(output, format="WEBP", quality=quality, method=6)
        elif fmt is OutputFormat.AVIF:
            img.save(output, format="AVIF", quality=quality, speed=4, subsampling="4:2:0")
        elif fmt in (OutputFormat.JPEG, OutputFormat.JPG):
            img.save(output, format="JPEG", quality=quality, progressive=True, optimize=True)
        else:
            img.save(output, format="PNG", optimize=True, compress_level=9)

        return output.getvalue()
