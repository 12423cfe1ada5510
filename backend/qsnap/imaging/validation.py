"""Pre-flight checks on a picked file: format first, then size."""

from __future__ import annotations

from qsnap.domain.errors import TooLargeError, UnsupportedFormatError
from qsnap.domain.models import SUPPORTED_FORMATS, ImageUpload

MAX_FILE_SIZE = 5 * 1024 * 1024


def validate_image_format(content_type: str | None) -> None:
    if content_type not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(content_type)


def validate_image_size(size: int) -> None:
    if size > MAX_FILE_SIZE:
        raise TooLargeError(round(size / (1024 * 1024), 2))


def validate_image(upload: ImageUpload) -> ImageUpload:
    """Raise ``UnsupportedFormatError`` or ``TooLargeError``; return the upload unchanged."""
    validate_image_format(upload.content_type)
    validate_image_size(upload.size)
    return upload
