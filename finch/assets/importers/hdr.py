# finch/assets/importers/hdr.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from finch.assets.binary import require
from finch.assets.errors import (
    InvalidHeaderError,
    MalformedDataError,
    TruncatedBufferError,
)
from finch.assets.importers.base import AssetImporter, stem_of
from finch.assets.types import PixelBuffer, PixelFormat
from finch.logger import get_logger

logger = get_logger(__name__)

RLE_MARKER = 2
EXPONENT_BIAS = 136  # 128 + 8 mantissa bits


@dataclass(frozen=True, slots=True)
class HdrHeader:
    width: int
    height: int
    gamma: float
    exposure: float
    end: int  # first byte of pixel data


def _header_float(value: str, default: float) -> float:
    try:
        return float(value.strip())
    except ValueError:
        return default


def _resolution(line: str) -> Tuple[int, int]:
    """Parse ``-Y h +X w``; returns (width, height)."""
    parts = line.split()
    if len(parts) < 4:
        raise InvalidHeaderError(f"Invalid HDR resolution line: {line!r}")
    try:
        height, width = int(parts[1]), int(parts[3])
    except ValueError as exc:
        raise InvalidHeaderError(f"Invalid HDR resolution line: {line!r}") from exc
    return width, height


def parse_header(data: bytes) -> HdrHeader:
    """
    Read header lines up to and including the resolution line.

    The resolution line ends the header whether or not a blank line precedes
    it. Pixel data starts right after its newline.
    """
    gamma = 1.0
    exposure = 1.0
    cursor = 0

    while cursor < len(data):
        newline = data.find(b"\n", cursor)
        line_end = len(data) if newline < 0 else newline
        line = data[cursor:line_end].decode("latin-1").strip()
        cursor = line_end + 1

        if line.startswith("GAMMA="):
            gamma = _header_float(line[len("GAMMA="):], 1.0)
        elif line.startswith("EXPOSURE="):
            exposure = _header_float(line[len("EXPOSURE="):], 1.0)
        elif line.startswith(("-Y", "+Y")):
            width, height = _resolution(line)
            if width <= 0 or height <= 0:
                raise InvalidHeaderError(
                    f"Invalid HDR dimensions {width}x{height}"
                )
            return HdrHeader(width, height, gamma, exposure, min(cursor, len(data)))

    raise InvalidHeaderError("Invalid HDR file: could not parse dimensions")


def is_new_rle(data: bytes, offset: int, width: int) -> bool:
    if offset + 4 > len(data):
        return False
    return (
        data[offset] == RLE_MARKER
        and data[offset + 1] == RLE_MARKER
        and (data[offset + 2] << 8 | data[offset + 3]) == width
    )


def decode_rle(data: bytes, offset: int, width: int, height: int) -> np.ndarray:
    """Adaptive run-length scanlines; returns (height*width, 4) uint8 RGBE."""
    out = np.empty((height, width, 4), dtype=np.uint8)
    scanline = bytearray(width)
    size = len(data)

    for y in range(height):
        require(data, offset, 4)
        if data[offset] != RLE_MARKER or data[offset + 1] != RLE_MARKER:
            raise MalformedDataError(f"HDR scanline {y} missing RLE marker")
        offset += 4

        for channel in range(4):
            x = 0
            while x < width:
                if offset >= size:
                    raise TruncatedBufferError(f"HDR scanline {y} truncated")
                code = data[offset]
                offset += 1

                if code > 128:
                    count = code - 128
                    if x + count > width:
                        raise MalformedDataError(
                            f"HDR run of {count} overflows scanline {y}"
                        )
                    if offset >= size:
                        raise TruncatedBufferError(f"HDR scanline {y} truncated")
                    scanline[x : x + count] = bytes((data[offset],)) * count
                    offset += 1
                else:
                    count = code
                    if x + count > width:
                        raise MalformedDataError(
                            f"HDR literal of {count} is invalid in scanline {y}"
                        )
                    require(data, offset, count)
                    scanline[x : x + count] = data[offset : offset + count]
                    offset += count
                x += count

            out[y, :, channel] = np.frombuffer(scanline, dtype=np.uint8)

    return out.reshape(-1, 4)


def decode_flat(data: bytes, offset: int, width: int, height: int) -> np.ndarray:
    require(data, offset, width * height * 4)
    return np.frombuffer(
        data, dtype=np.uint8, count=width * height * 4, offset=offset
    ).reshape(-1, 4)


def rgbe_to_float(rgbe: np.ndarray) -> np.ndarray:
    """(n, 4) RGBE bytes to a flat RGBA float32 array, alpha 1."""
    exponent = rgbe[:, 3].astype(np.int32)
    rgb = np.ldexp(
        rgbe[:, :3].astype(np.float32), (exponent - EXPONENT_BIAS)[:, None]
    ).astype(np.float32)
    rgb[exponent == 0] = 0.0

    out = np.ones((rgbe.shape[0], 4), dtype=np.float32)
    out[:, :3] = rgb
    return out.reshape(-1)


class HdrImporter(AssetImporter[PixelBuffer]):
    """Radiance RGBE images (.hdr / .pic), flat or new-style RLE."""

    extensions = (".hdr", ".pic")

    def import_bytes(self, data: bytes, path: str) -> PixelBuffer:
        header = parse_header(data)
        width, height = header.width, header.height

        rle = is_new_rle(data, header.end, width)
        if rle:
            rgbe = decode_rle(data, header.end, width, height)
        else:
            rgbe = decode_flat(data, header.end, width, height)

        logger.debug(
            "%s: %dx%d, %s, gamma=%s exposure=%s",
            path,
            width,
            height,
            "rle" if rle else "flat",
            header.gamma,
            header.exposure,
        )

        return PixelBuffer(
            width=width,
            height=height,
            data=rgbe_to_float(rgbe),
            format=PixelFormat.RGBA32F,
            name=stem_of(path),
            gamma=header.gamma,
            exposure=header.exposure,
        )
