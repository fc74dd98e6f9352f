# finch/assets/importers/exr.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from finch.assets.binary import (
    read_cstring,
    read_i32,
    read_u32,
    read_u64,
    read_u8,
    require,
)
from finch.assets.errors import (
    InvalidHeaderError,
    InvalidMagicError,
    MalformedDataError,
    MissingElementError,
    ScanlineOrderError,
    TruncatedBufferError,
    UnsupportedFeatureError,
)
from finch.assets.importers.base import AssetImporter, stem_of
from finch.assets.types import PixelBuffer, PixelFormat
from finch.logger import get_logger

logger = get_logger(__name__)

MAGIC = 0x762F3101
# The same four bytes as written by OpenEXR itself
MAGIC_BYTES = b"\x76\x2f\x31\x01"
VERSION = 2
TILED_FLAG = 0x200

COMPRESSION_NONE = 0

PIXEL_UINT = 0
PIXEL_HALF = 1
PIXEL_FLOAT = 2

# pixelType i32, pLinear u8 + 3 reserved, xSampling i32, ySampling i32
_CHANNEL_RECORD_BYTES = 16


@dataclass(slots=True)
class ExrChannel:
    name: str
    pixel_type: int
    samples: Optional[np.ndarray] = None  # (height, width) float32


@dataclass(frozen=True, slots=True)
class ExrHeader:
    compression: int
    data_window: Tuple[int, int, int, int]  # min_x, max_x, min_y, max_y
    channels: List[ExrChannel]
    end: int  # offset of the scanline offset table

    @property
    def width(self) -> int:
        return self.data_window[1] - self.data_window[0] + 1

    @property
    def height(self) -> int:
        return self.data_window[3] - self.data_window[2] + 1


def is_exr(data: bytes) -> bool:
    """Magic as a little-endian u32, or the raw OpenEXR byte order."""
    if len(data) < 4:
        return False
    return read_u32(data, 0) == MAGIC or data[:4] == MAGIC_BYTES


def parse_channels(data: bytes, start: int, end: int) -> List[ExrChannel]:
    channels: List[ExrChannel] = []
    offset = start
    while offset < end:
        if data[offset] == 0:
            break
        name, offset = read_cstring(data, offset)
        if offset + _CHANNEL_RECORD_BYTES > end:
            raise TruncatedBufferError(f"EXR channel {name!r} record truncated")
        pixel_type = read_i32(data, offset)
        offset += _CHANNEL_RECORD_BYTES
        channels.append(ExrChannel(name, pixel_type))
    return channels


def parse_header(data: bytes) -> ExrHeader:
    require(data, 0, 8)
    if not is_exr(data):
        raise InvalidMagicError("Invalid EXR magic")
    version = read_u32(data, 4)
    if version & 0xFF != VERSION:
        raise InvalidMagicError(f"Unsupported EXR version {version & 0xFF}")
    if version & TILED_FLAG:
        raise UnsupportedFeatureError("Tiled EXR files are not supported")

    cursor = 8
    compression = COMPRESSION_NONE
    data_window: Optional[Tuple[int, int, int, int]] = None
    channels: List[ExrChannel] = []

    while True:
        if read_u8(data, cursor) == 0:
            cursor += 1
            break

        name, cursor = read_cstring(data, cursor)
        _attr_type, cursor = read_cstring(data, cursor)
        size = read_i32(data, cursor)
        cursor += 4
        require(data, cursor, size)

        if name == "compression":
            compression = read_u8(data, cursor)
        elif name == "dataWindow":
            min_x, max_x, min_y, max_y = (
                read_i32(data, cursor + i * 4) for i in range(4)
            )
            data_window = (min_x, max_x, min_y, max_y)
        elif name == "channels":
            channels = parse_channels(data, cursor, cursor + size)

        cursor += size

    if compression != COMPRESSION_NONE:
        raise UnsupportedFeatureError(
            f"Only uncompressed EXR files are supported (compression={compression})"
        )
    if not channels:
        raise MissingElementError("EXR missing channel list")
    if data_window is None:
        raise MissingElementError("EXR missing dataWindow")

    header = ExrHeader(compression, data_window, channels, cursor)
    if header.width <= 0 or header.height <= 0:
        raise InvalidHeaderError(
            f"EXR data window {data_window} has no pixels"
        )
    return header


class ExrImporter(AssetImporter[PixelBuffer]):
    """
    OpenEXR scanline images: uncompressed, FLOAT channels only.
    Output is RGBA32F clamped to [0, 1].
    """

    extensions = (".exr",)

    def import_bytes(self, data: bytes, path: str) -> PixelBuffer:
        header = parse_header(data)
        width, height = header.width, header.height
        min_y = header.data_window[2]

        order = sorted(header.channels, key=lambda c: c.name)
        for channel in order:
            if channel.pixel_type != PIXEL_FLOAT:
                raise UnsupportedFeatureError(
                    f"EXR channel {channel.name!r} is not FLOAT"
                )
            channel.samples = np.zeros((height, width), dtype=np.float32)

        cursor = header.end
        require(data, cursor, height * 8)
        line_offsets = [read_u64(data, cursor + row * 8) for row in range(height)]

        for row, offset in enumerate(line_offsets):
            if offset >= len(data):
                raise TruncatedBufferError(
                    f"EXR scanline {row} offset {offset} out of bounds"
                )
            ptr = offset
            y = read_i32(data, ptr)
            if y != min_y + row:
                raise ScanlineOrderError(
                    f"Unexpected scanline order: row {row} has y={y}, "
                    f"expected {min_y + row}"
                )
            data_size = read_i32(data, ptr + 4)
            ptr += 8
            require(data, ptr, data_size)

            consumed = 0
            for channel in order:
                require(data, ptr + consumed, width * 4)
                channel.samples[row] = np.frombuffer(
                    data, dtype="<f4", count=width, offset=ptr + consumed
                )
                consumed += width * 4

            if consumed != data_size:
                raise MalformedDataError(
                    f"EXR scanline {row} size mismatch: read {consumed}, "
                    f"header says {data_size}"
                )

        pixels = self._composite(order, width, height)
        logger.debug(
            "%s: %dx%d, channels %s",
            path,
            width,
            height,
            ",".join(c.name for c in order),
        )

        return PixelBuffer(
            width=width,
            height=height,
            data=pixels,
            format=PixelFormat.RGBA32F,
            name=stem_of(path),
        )

    def _composite(
        self, channels: List[ExrChannel], width: int, height: int
    ) -> np.ndarray:
        by_name: Dict[str, np.ndarray] = {c.name: c.samples for c in channels}
        zeros = np.zeros((height, width), dtype=np.float32)

        r = by_name.get("R", zeros)
        g = by_name.get("G", r)
        b = by_name.get("B", r)
        a = by_name.get("A", np.ones((height, width), dtype=np.float32))

        rgba = np.stack([r, g, b, a], axis=-1)
        return np.clip(rgba, 0.0, 1.0).astype(np.float32).reshape(-1)
