"""Image → data URL encoding and JPEG downscaling.

A data URL (``data:<mime>;base64,<payload>``) is what both the vision request and the
persisted record carry, so it doubles as a display-ready image source.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from qsnap.domain.errors import DecodeError, ReadError
from qsnap.domain.models import ImageUpload

logger = logging.getLogger(__name__)

MAX_DIMENSION = 1200
DEFAULT_JPEG_QUALITY = 0.8


def read_upload_bytes(upload: ImageUpload) -> bytes:
    if upload.data is not None:
        return upload.data
    if upload.path is None:
        raise ReadError("Failed to read file: no content was provided.")
    try:
        return upload.path.read_bytes()
    except OSError as exc:
        raise ReadError(f"Failed to read file: {upload.path.name}") from exc


def to_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    """Split a base64 data URL into ``(mime_type, raw_bytes)``."""
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise DecodeError("Image data is not a base64 data URL.")
    mime_type = header[len("data:") : -len(";base64")] or "application/octet-stream"
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("Image data URL has an invalid base64 payload.") from exc


def encode_image(upload: ImageUpload) -> str:
    """Encode the upload verbatim, keeping its declared MIME type."""
    data = read_upload_bytes(upload)
    return to_data_url(data, upload.content_type or "application/octet-stream")


def fit_dimensions(width: int, height: int, max_dimension: int = MAX_DIMENSION) -> tuple[int, int]:
    """Scale ``(width, height)`` so neither side exceeds ``max_dimension``, keeping aspect ratio."""
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width > height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


def _load_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise DecodeError("Failed to load image") from exc
    return ImageOps.exif_transpose(image)


def _flatten(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, "white")
        canvas.paste(rgba, mask=rgba.split()[-1])
        return canvas
    return image.convert("RGB")


def compress_bytes(
    data: bytes,
    *,
    quality: float = DEFAULT_JPEG_QUALITY,
    max_dimension: int = MAX_DIMENSION,
) -> bytes:
    image = _load_image(data)
    target = fit_dimensions(image.width, image.height, max_dimension)
    canvas = _flatten(image)
    if target != canvas.size:
        canvas = canvas.resize(target, Image.Resampling.LANCZOS)

    jpeg_quality = min(100, max(1, round(quality * 100)))
    buf = io.BytesIO()
    canvas.save(buf, format="JPEG", quality=jpeg_quality)
    out = buf.getvalue()
    logger.debug(
        "compressed image %sx%s -> %sx%s (%d -> %d bytes, q=%d)",
        image.width,
        image.height,
        target[0],
        target[1],
        len(data),
        len(out),
        jpeg_quality,
    )
    return out


def compress_image(
    upload: ImageUpload,
    *,
    quality: float = DEFAULT_JPEG_QUALITY,
    max_dimension: int = MAX_DIMENSION,
) -> str:
    """Downscale to at most ``max_dimension`` px per side and re-encode as a JPEG data URL."""
    data = read_upload_bytes(upload)
    return to_data_url(compress_bytes(data, quality=quality, max_dimension=max_dimension), "image/jpeg")
