from __future__ import annotations

import base64

import pytest

from revision.services.image_processor import image_processor


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        (b"\xff\xd8\xff\xe0rest", "image/jpeg"),
        (b"\x89PNG\r\n\x1a\nrest", "image/png"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"GIF87a", "image/gif"),
        (b"BM\x00\x00", None),
        (b"", None),
    ],
)
def test_detect_mime_type(data: bytes, expected) -> None:
    assert image_processor.detect_mime_type(data) == expected


def test_describe_image_reads_dimensions(jpeg_factory) -> None:
    image = jpeg_factory(width=32, height=20)

    info = image_processor.describe_image(image)

    assert (info.width, info.height) == (32, 20)
    assert info.format == "JPEG"
    assert info.size_bytes == len(image)


def test_describe_image_tolerates_unreadable_bytes() -> None:
    info = image_processor.describe_image(b"definitely not an image")

    assert info.width is None
    assert info.size_bytes == 23


def test_to_data_uri(jpeg_image: bytes) -> None:
    uri = image_processor.to_data_uri(jpeg_image)

    prefix = "data:image/jpeg;base64,"
    assert uri.startswith(prefix)
    assert base64.b64decode(uri[len(prefix):]) == jpeg_image


def test_describe_image_skips_dimensions_past_the_pixel_limit(oversized_png: bytes) -> None:
    info = image_processor.describe_image(oversized_png)

    assert info.width is None
    assert info.format is None
    assert info.size_bytes == len(oversized_png)
