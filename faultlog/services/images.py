import base64
import logging
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import (
    PHOTO_MAX_DIMENSION, CLOSING_PHOTO_MAX_DIMENSION,
    PHOTO_QUALITY_HIGH, PHOTO_QUALITY_LOW, PHOTO_SIZE_THRESHOLD,
)
from ..errors import ImageDecodeError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/jpeg;base64,"


@dataclass(frozen=True)
class ImageConstraints:
    max_dimension_px: int
    quality_high: int
    quality_low: int
    size_threshold_bytes: int


@dataclass(frozen=True)
class NormalizedImage:
    encoded: bytes
    was_compressed: bool
    width: int
    height: int


REPORT_PHOTO = ImageConstraints(PHOTO_MAX_DIMENSION, PHOTO_QUALITY_HIGH, PHOTO_QUALITY_LOW, PHOTO_SIZE_THRESHOLD)
CLOSING_PHOTO = ImageConstraints(CLOSING_PHOTO_MAX_DIMENSION, PHOTO_QUALITY_HIGH, PHOTO_QUALITY_LOW, PHOTO_SIZE_THRESHOLD)


def decode_image(data: bytes, formats=None) -> Image.Image:
    """Open and fully load an image, raising ImageDecodeError on anything unreadable."""
    if not data:
        raise ImageDecodeError("Immagine vuota")
    try:
        img = Image.open(BytesIO(data), formats=formats)
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Immagine non leggibile: {e}") from e

    width, height = img.size
    if width == 0 or height == 0:
        raise ImageDecodeError(f"Dimensioni non valide: {width}x{height}")
    return img


def _scale_factor(width, height, max_dimension):
    return min(1.0, max_dimension / max(width, height))


def normalize(image_bytes: bytes, constraints: ImageConstraints = REPORT_PHOTO) -> NormalizedImage:
    img = decode_image(image_bytes)
    img = ImageOps.exif_transpose(img)

    width, height = img.size
    scale = _scale_factor(width, height, constraints.max_dimension_px)
    if scale < 1.0:
        new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
        img = img.resize(new_size, Image.Resampling.LANCZOS)

    # JPEG has no alpha channel
    if img.mode != "RGB":
        img = img.convert("RGB")

    was_compressed = len(image_bytes) > constraints.size_threshold_bytes
    quality = constraints.quality_low if was_compressed else constraints.quality_high

    with BytesIO() as buffer:
        img.save(buffer, format="JPEG", quality=quality)
        encoded = buffer.getvalue()

    logger.debug(
        "Normalized photo %dx%d -> %dx%d Q%d: %.2fMB -> %.2fMB",
        width, height, img.width, img.height, quality,
        len(image_bytes) / 1024 / 1024, len(encoded) / 1024 / 1024,
    )
    return NormalizedImage(encoded, was_compressed, img.width, img.height)


def to_data_url(encoded: bytes) -> str:
    return DATA_URL_PREFIX + base64.b64encode(encoded).decode("ascii")


def from_data_url(data_url: str) -> bytes:
    """Decode a base64 data URL; a bare base64 string is accepted too."""
    if not data_url:
        raise ImageDecodeError("Data URL vuoto")
    _, sep, payload = data_url.partition(",")
    if not sep:
        payload = data_url
    try:
        return base64.b64decode(payload, validate=True)
    except (ValueError, TypeError) as e:
        raise ImageDecodeError(f"Data URL non valido: {e}") from e
