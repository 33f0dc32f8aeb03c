"""Image normalization for photos received from users."""

import asyncio
import logging
from io import BytesIO

from PIL import Image, ImageOps

from hairbot.config import ImageConfig, get_config
from hairbot.errors import TransportError

logger = logging.getLogger(__name__)


def preprocess_image(data: bytes, max_width: int = 720, quality: int = 80) -> bytes:
    """Normalize a user photo.

    The image is rotated according to its EXIF orientation, converted to RGB,
    scaled down to ``max_width`` (never enlarged) and re-encoded as JPEG without
    any metadata.

    Args:
        data: Raw image bytes as downloaded from LINE
        max_width: Maximum width in pixels
        quality: JPEG quality

    Returns:
        JPEG bytes

    Raises:
        TransportError: If the bytes are not a readable image
    """
    try:
        with Image.open(BytesIO(data)) as original:
            image = ImageOps.exif_transpose(original).convert("RGB")
    except (OSError, Image.DecompressionBombError) as e:
        raise TransportError(f"Unreadable image: {e}") from e

    if image.width > max_width:
        height = max(1, round(image.height * max_width / image.width))
        image = image.resize((max_width, height), Image.Resampling.LANCZOS)

    buffer = BytesIO()
    # Saving without exif= drops all metadata
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    result = buffer.getvalue()
    logger.debug(f"Preprocessed image: {len(data)} -> {len(result)} bytes, {image.width}x{image.height}")
    return result


async def preprocess_image_async(data: bytes, config: ImageConfig | None = None) -> bytes:
    """Run preprocess_image in a worker thread so the event loop stays free."""
    config = config or get_config().image
    return await asyncio.to_thread(
        preprocess_image, data, config.max_width, config.jpeg_quality
    )
