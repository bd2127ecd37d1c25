"""Tests for photo normalization."""

from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from faultlog.errors import ImageDecodeError
from faultlog.services.images import (
    ImageConstraints,
    REPORT_PHOTO,
    from_data_url,
    normalize,
    to_data_url,
)
from tests.conftest import make_image_bytes


def test_normalize_downscales_longer_side() -> None:
    constraints = ImageConstraints(max_dimension_px=100, quality_high=90, quality_low=70, size_threshold_bytes=10**9)

    result = normalize(make_image_bytes(size=(400, 200)), constraints)

    assert (result.width, result.height) == (100, 50)
    assert Image.open(BytesIO(result.encoded)).format == "JPEG"


def test_normalize_uses_longer_side_for_portrait_images() -> None:
    constraints = ImageConstraints(max_dimension_px=100, quality_high=90, quality_low=70, size_threshold_bytes=10**9)

    result = normalize(make_image_bytes(size=(200, 400)), constraints)

    assert (result.width, result.height) == (50, 100)


def test_normalize_never_upscales() -> None:
    result = normalize(make_image_bytes(size=(40, 30)), REPORT_PHOTO)

    assert (result.width, result.height) == (40, 30)
    assert result.was_compressed is False


def test_normalize_flags_compression_above_threshold() -> None:
    data = make_image_bytes(size=(64, 64))
    constraints = ImageConstraints(max_dimension_px=1600, quality_high=90, quality_low=70, size_threshold_bytes=len(data) - 1)

    assert normalize(data, constraints).was_compressed is True


def test_normalize_converts_png_with_alpha_to_jpeg() -> None:
    data = make_image_bytes(format="PNG", mode="RGBA", color=(10, 20, 30, 128))

    result = normalize(data)

    assert Image.open(BytesIO(result.encoded)).mode == "RGB"


@pytest.mark.parametrize("data", [b"", b"not an image at all"])
def test_normalize_rejects_undecodable_input(data: bytes) -> None:
    with pytest.raises(ImageDecodeError):
        normalize(data)


def test_data_url_helpers() -> None:
    url = to_data_url(b"\xff\xd8abc")

    assert url.startswith("data:image/jpeg;base64,")
    assert from_data_url(url) == b"\xff\xd8abc"


def test_from_data_url_rejects_garbage() -> None:
    with pytest.raises(ImageDecodeError):
        from_data_url("data:image/jpeg;base64,@@@")
