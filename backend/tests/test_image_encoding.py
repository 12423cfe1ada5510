import base64

import pytest

from qsnap.domain.errors import DecodeError, ReadError
from qsnap.domain.models import ImageUpload
from qsnap.imaging.encoding import (
    MAX_DIMENSION,
    compress_image,
    encode_image,
    fit_dimensions,
    parse_data_url,
)
from tests.images import image_size, make_image_bytes


def test_encode_image_produces_self_describing_data_url():
    data = make_image_bytes(32, 32)
    encoded = encode_image(ImageUpload.from_bytes(data, content_type="image/png", filename="q.png"))

    assert encoded.startswith("data:image/png;base64,")
    assert base64.b64decode(encoded.split(",", 1)[1]) == data


def test_encode_image_reads_from_disk(tmp_path):
    path = tmp_path / "q.jpg"
    path.write_bytes(make_image_bytes(16, 16, fmt="JPEG"))

    mime, raw = parse_data_url(encode_image(ImageUpload.from_path(path, content_type="image/jpeg")))

    assert mime == "image/jpeg"
    assert raw == path.read_bytes()


def test_missing_file_raises_read_error(tmp_path):
    upload = ImageUpload(filename="gone.png", content_type="image/png", size=10, path=tmp_path / "gone.png")
    with pytest.raises(ReadError):
        encode_image(upload)


def test_parse_data_url_rejects_garbage():
    with pytest.raises(DecodeError):
        parse_data_url("not-a-data-url")
    with pytest.raises(DecodeError):
        parse_data_url("data:image/png;base64,@@@")


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        ((2400, 1800), (1200, 900)),
        ((1000, 3000), (400, 1200)),
        ((3000, 3000), (1200, 1200)),
        ((800, 600), (800, 600)),
        ((1200, 1200), (1200, 1200)),
        ((5000, 3), (1200, 1)),
    ],
)
def test_fit_dimensions(size, expected):
    assert fit_dimensions(*size) == expected


@pytest.mark.parametrize("size", [(2400, 1200), (1300, 2900), (4032, 3024), (640, 480)])
def test_compress_caps_longer_edge_and_keeps_aspect_ratio(size):
    width, height = size
    upload = ImageUpload.from_bytes(make_image_bytes(width, height), content_type="image/png")

    mime, raw = parse_data_url(compress_image(upload))
    out_w, out_h = image_size(raw)

    assert mime == "image/jpeg"
    assert max(out_w, out_h) <= MAX_DIMENSION
    assert abs(out_w / out_h - width / height) <= 1 / min(out_w, out_h)


def test_compress_flattens_transparency_to_jpeg():
    upload = ImageUpload.from_bytes(make_image_bytes(50, 40, mode="RGBA"), content_type="image/png")

    mime, raw = parse_data_url(compress_image(upload, quality=0.5))

    assert mime == "image/jpeg"
    assert raw[:2] == b"\xff\xd8"
    assert image_size(raw) == (50, 40)


def test_compress_rejects_undecodable_bytes():
    upload = ImageUpload.from_bytes(b"definitely not an image", content_type="image/png")
    with pytest.raises(DecodeError):
        compress_image(upload)
