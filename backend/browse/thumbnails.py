"""JPEG thumbnails for image previews, rendered with Pillow."""

import asyncio
import io
import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from config import IMAGE_EXTENSIONS, THUMBNAIL_QUALITY, THUMBNAIL_SIZE
from browse.errors import AccessDenied, InvalidRequest, NotFound, UpstreamFailure
from browse.index import DirectoryIndex

logger = logging.getLogger(__name__)


def render_thumbnail(
    source: Path,
    size: tuple[int, int] = THUMBNAIL_SIZE,
    quality: int = THUMBNAIL_QUALITY,
) -> bytes:
    """
    Shrink an image to fit inside ``size`` and encode it as JPEG.

    Smaller images are never enlarged. Raises InvalidRequest when Pillow
    cannot decode the file.
    """
    try:
        with Image.open(source) as image:
            image.thumbnail(size)
            if image.mode != "RGB":
                image = image.convert("RGB")
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=quality)
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise InvalidRequest("Unsupported image format or corrupted file") from e
    return buffer.getvalue()


def _locate_image(index: DirectoryIndex, relative_path: str) -> Path:
    target = index.resolve(relative_path)
    if target.suffix.lower() not in IMAGE_EXTENSIONS:
        raise InvalidRequest("File is not an image", relative_path)
    return index.resolve_file(relative_path)


async def thumbnail_for(index: DirectoryIndex, relative_path: str) -> bytes:
    """Contained, image-only thumbnail lookup used by the HTTP layer."""
    if not relative_path:
        raise InvalidRequest("Path parameter is required")

    target = await asyncio.to_thread(_locate_image, index, relative_path)
    try:
        data = await asyncio.to_thread(render_thumbnail, target)
    except FileNotFoundError:
        raise NotFound("File not found", relative_path)
    except PermissionError:
        raise AccessDenied("Access denied to file", relative_path)
    except OSError as e:
        # Pillow reports truncated files as OSError
        raise UpstreamFailure(f"Internal server error: {e}", relative_path) from e

    logger.debug(f"Thumbnail generated for {relative_path} ({len(data)} bytes)")
    return data
