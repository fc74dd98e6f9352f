# finch/assets/importers/texture.py
from __future__ import annotations

import io
from enum import Enum

import numpy as np
from PIL import Image, UnidentifiedImageError

from finch.assets.errors import InvalidHeaderError, MalformedDataError
from finch.assets.importers.base import AssetImporter, stem_of
from finch.assets.types import PixelBuffer, PixelFormat
from finch.logger import get_logger

logger = get_logger(__name__)


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    GIF = "gif"
    BMP = "bmp"
    UNKNOWN = "unknown"


def detect_image_format(data: bytes) -> ImageFormat:
    """Sniff the container from its leading magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return ImageFormat.PNG
    if data.startswith(b"\xff\xd8\xff"):
        return ImageFormat.JPEG
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ImageFormat.WEBP
    if data.startswith((b"GIF87a", b"GIF89a")):
        return ImageFormat.GIF
    if data.startswith(b"BM"):
        return ImageFormat.BMP
    return ImageFormat.UNKNOWN


class TextureImporter(AssetImporter[PixelBuffer]):
    extensions = (".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp", ".tga")

    def import_bytes(self, data: bytes, path: str) -> PixelBuffer:
        try:
            with Image.open(io.BytesIO(data)) as img:
                source_format = img.format
                converted = img.convert("RGBA")

                # NOTE: if OpenGL coordinate mismatch occurs, use flipped_y()
                width, height = converted.size
                pixels = np.frombuffer(converted.tobytes(), dtype=np.uint8)
        except UnidentifiedImageError as exc:
            raise InvalidHeaderError(f"unrecognised image data: {exc}") from exc
        except OSError as exc:
            raise MalformedDataError(f"image could not be decoded: {exc}") from exc

        logger.debug("%s: %s %dx%d", path, source_format, width, height)

        return PixelBuffer(
            width=width,
            height=height,
            data=pixels,
            format=PixelFormat.RGBA8,
            name=stem_of(path),
        )
