"""Image normalisation for uploaded documents.

Each upload is stored twice: an optimised original for OCR and a small
thumbnail for the dashboard grid.
"""

import io
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from docscan.utils.config import UploadConfig
from docscan.utils.errors import InvalidUploadError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PreparedUpload:
    """JPEG renditions of a single uploaded image."""

    original: bytes
    thumbnail: bytes
    original_size: tuple[int, int]
    thumbnail_size: tuple[int, int]
    content_type: str = "image/jpeg"


def check_content_type(content_type: str | None) -> None:
    """Reject uploads that do not declare an image type."""
    if content_type and not content_type.startswith("image/"):
        raise InvalidUploadError(f"Unsupported file type: {content_type}")


def _render(image: Image.Image, max_size: int, quality: int) -> tuple[bytes, tuple[int, int]]:
    copy = image.copy()
    copy.thumbnail((max_size, max_size))
    buf = io.BytesIO()
    copy.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue(), copy.size


def prepare_upload(data: bytes, config: UploadConfig | None = None) -> PreparedUpload:
    """Decode an image and produce the original and thumbnail renditions.

    Args:
        data: Raw uploaded bytes.
        config: Size and quality settings.

    Returns:
        Prepared JPEG renditions.

    Raises:
        InvalidUploadError: If the data is empty or cannot be decoded safely.
    """
    config = config or UploadConfig()
    if not data:
        raise InvalidUploadError("Uploaded file is empty")

    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            image = ImageOps.exif_transpose(source)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise InvalidUploadError(f"Could not decode image: {exc}") from exc

    if image.mode != "RGB":
        image = image.convert("RGB")

    original, original_size = _render(
        image, config.original_max_size, config.original_quality
    )
    thumbnail, thumbnail_size = _render(
        image, config.thumbnail_max_size, config.thumbnail_quality
    )
    logger.debug(
        "Prepared upload: original %sx%s, thumbnail %sx%s",
        *original_size,
        *thumbnail_size,
    )
    return PreparedUpload(
        original=original,
        thumbnail=thumbnail,
        original_size=original_size,
        thumbnail_size=thumbnail_size,
    )
