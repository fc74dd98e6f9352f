# finch/assets/binary.py
"""
Little-endian primitive reads over an immutable byte buffer.

Every read checks its span first and raises TruncatedBufferError instead of
returning garbage or an IndexError.
"""

from __future__ import annotations

import struct
from typing import Optional, Tuple

from finch.assets.errors import TruncatedBufferError

# < = little endian
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_F32 = struct.Struct("<f")
_U64 = struct.Struct("<Q")

Buffer = bytes | bytearray | memoryview


def require(buffer: Buffer, offset: int, width: int) -> None:
    """Fail unless buffer[offset : offset + width] is fully in range."""
    if offset < 0 or width < 0 or offset + width > len(buffer):
        raise TruncatedBufferError(
            f"read of {width} bytes at offset {offset} exceeds buffer "
            f"length {len(buffer)}"
        )


def read_u8(buffer: Buffer, offset: int) -> int:
    require(buffer, offset, 1)
    return buffer[offset]


def read_u16(buffer: Buffer, offset: int) -> int:
    require(buffer, offset, 2)
    return _U16.unpack_from(buffer, offset)[0]


def read_u32(buffer: Buffer, offset: int) -> int:
    require(buffer, offset, 4)
    return _U32.unpack_from(buffer, offset)[0]


def read_i32(buffer: Buffer, offset: int) -> int:
    require(buffer, offset, 4)
    return _I32.unpack_from(buffer, offset)[0]


def read_f32(buffer: Buffer, offset: int) -> float:
    require(buffer, offset, 4)
    return _F32.unpack_from(buffer, offset)[0]


def read_u64(buffer: Buffer, offset: int) -> int:
    """8-byte unsigned read, used for EXR scanline offset tables."""
    require(buffer, offset, 8)
    return _U64.unpack_from(buffer, offset)[0]


def index_of_zero(buffer: Buffer, start: int) -> Optional[int]:
    """Offset of the first NUL byte at or after start, or None."""
    if start < 0 or start > len(buffer):
        raise TruncatedBufferError(
            f"scan start {start} outside buffer length {len(buffer)}"
        )
    if isinstance(buffer, memoryview):
        buffer = buffer.tobytes()
    idx = buffer.find(b"\x00", start)
    return None if idx == -1 else idx


def read_cstring(buffer: Buffer, start: int) -> Tuple[str, int]:
    """
    Read a zero-terminated string.

    Returns the decoded string and the offset just past its terminator.
    """
    end = index_of_zero(buffer, start)
    if end is None:
        raise TruncatedBufferError(
            f"unterminated string starting at offset {start}"
        )
    raw = bytes(buffer[start:end])
    return raw.decode("latin-1"), end + 1
