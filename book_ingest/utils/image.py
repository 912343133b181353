# book_ingest/utils/image.py
# ============================================================
# Image Utility Functions
# ============================================================
# Helpers used by the page materializer to check that a file
# fetched from a render locator really is a decodable image
# before it is re-hosted, and to describe it in debug logs.
#
# Usage:
#   from book_ingest.utils.image import verify_page_image
#   info = verify_page_image(Path("/tmp/run-1/page-1.jpg"))
# ============================================================

import time
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)


def get_image_info(image: Image.Image) -> dict:
    """
    Extract metadata from a PIL Image for logging and diagnostics.

    Args:
        image: PIL Image to inspect.

    Returns:
        Dictionary with width, height, mode (RGB/RGBA/L), format and
        estimated uncompressed size in MB.
    """
    width, height = image.size
    channels = len(image.getbands())
    estimated_mb = round(width * height * channels / (1024 * 1024), 2)

    return {
        "width": width,
        "height": height,
        "mode": image.mode,
        "format": image.format,
        "channels": channels,
        "estimated_size_mb": estimated_mb,
    }


def verify_page_image(path: Union[str, Path]) -> dict:
    """
    Confirm that a downloaded page decodes as an image.

    Render providers occasionally answer 200 with an HTML error page or a
    truncated body; those must fail the page rather than be uploaded.

    Args:
        path: Local file written by the page download.

    Returns:
        The image info dict from get_image_info().

    Raises:
        ValueError: If the file is empty, not a readable image, or exceeds
            Pillow's decompression-bomb limit.
    """
    start = time.perf_counter()
    path = Path(path)

    if path.stat().st_size == 0:
        raise ValueError(f"{path.name} is empty")

    try:
        with Image.open(path) as image:
            info = get_image_info(image)
            image.verify()
    except Image.DecompressionBombError as e:
        raise ValueError(f"{path.name} is too large to decode safely: {e}") from e
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"{path.name} is not a valid image: {e}") from e

    duration = (time.perf_counter() - start) * 1000
    logger.debug(
        f"Verified {path.name}: {info['width']}x{info['height']} "
        f"{info['format']} in {duration:.2f}ms"
    )
    return info
