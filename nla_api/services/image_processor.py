"""Resize and compress uploads before they are sent to media hosting.

Thumbnails are cover-cropped to 1200x800, content images are limited to
1920px wide. Nothing is ever enlarged. Cloudinary rejects files over 10MB,
so anything still above 9.5MB after the first pass is recompressed and, if
needed, shrunk further.
"""

import logging
from io import BytesIO
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = int(9.5 * 1024 * 1024)

PROFILES = {
    "thumbnail": {"width": 1200, "height": 800, "quality": 90, "fallback_width": 800},
    "content": {"width": 1920, "height": None, "quality": 90, "fallback_width": 1200},
}


def process_image_buffer(content: bytes, kind: str = "content") -> bytes:
    profile = PROFILES.get(kind, PROFILES["content"])
    try:
        img = Image.open(BytesIO(content))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(
            f"Could not decode {kind} image ({len(content)} bytes), uploading unchanged: {e}"
        )
        return content

    logger.info(
        f"Processing {kind} image: {img.width}x{img.height}, {len(content)} bytes, format: {img.format}"
    )

    img = ImageOps.exif_transpose(img)
    img = _resize(img, profile["width"], profile["height"])
    output = _to_jpeg(img, profile["quality"])

    if len(output) > MAX_UPLOAD_BYTES:
        logger.info(
            f"Image still too large ({len(output)} bytes), applying stronger compression"
        )
        output = _to_jpeg(img, 60)

        if len(output) > MAX_UPLOAD_BYTES:
            logger.info("Image still too large after compression, reducing dimensions")
            img = _resize(img, profile["fallback_width"], None)
            output = _to_jpeg(img, 60)

    logger.info(f"Image processed: {len(output)} bytes ({round(len(output) / 1024)}KB)")
    return output


def _resize(img: Image.Image, width: int, height: Optional[int]) -> Image.Image:
    if height:
        if img.width <= width and img.height <= height:
            return img
        size = (min(width, img.width), min(height, img.height))
        return ImageOps.fit(img, size, Image.LANCZOS)

    if img.width <= width:
        return img
    ratio = width / img.width
    return img.resize((width, max(1, int(img.height * ratio))), Image.LANCZOS)


def _to_jpeg(img: Image.Image, quality: int) -> bytes:
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    buf = BytesIO()
    img.save(buf, format="JPEG", quality=quality, progressive=True, optimize=True)
    return buf.getvalue()
