import pytest

from qsnap.domain.errors import TooLargeError, UnsupportedFormatError
from qsnap.domain.models import ImageUpload
from qsnap.imaging.validation import MAX_FILE_SIZE, validate_image


def _upload(content_type: str | None, size: int) -> ImageUpload:
    return ImageUpload(filename="page", content_type=content_type, size=size)


@pytest.mark.parametrize("content_type", ["application/pdf", "image/gif", "image/heic", "text/plain", "", None])
@pytest.mark.parametrize("size", [10, MAX_FILE_SIZE + 1, 50 * 1024 * 1024])
def test_unsupported_format_reported_regardless_of_size(content_type, size):
    with pytest.raises(UnsupportedFormatError) as excinfo:
        validate_image(_upload(content_type, size))

    assert excinfo.value.declared_type == content_type
    assert excinfo.value.kind == "unsupported_format"


@pytest.mark.parametrize("content_type", ["image/jpeg", "image/png", "image/webp"])
def test_one_byte_over_limit_is_too_large(content_type):
    with pytest.raises(TooLargeError) as excinfo:
        validate_image(_upload(content_type, MAX_FILE_SIZE + 1))

    assert excinfo.value.size_mb == 5.0
    assert "5.00MB" in excinfo.value.message


def test_too_large_reports_size_in_mib_rounded():
    with pytest.raises(TooLargeError) as excinfo:
        validate_image(_upload("image/png", int(7.456 * 1024 * 1024)))

    assert excinfo.value.size_mb == 7.46


def test_exact_limit_and_small_files_pass():
    upload = _upload("image/webp", MAX_FILE_SIZE)
    assert validate_image(upload) is upload
    assert validate_image(_upload("image/jpeg", 1)).size == 1
