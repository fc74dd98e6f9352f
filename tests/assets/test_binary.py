import struct

import pytest

from finch.assets.binary import (
    index_of_zero,
    read_cstring,
    read_f32,
    read_i32,
    read_u16,
    read_u32,
    read_u64,
    read_u8,
    require,
)
from finch.assets.errors import TruncatedBufferError


def test_little_endian_reads():
    data = struct.pack("<BHIifQ", 7, 0x1234, 0xDEADBEEF, -5, 1.5, 2**40 + 3)
    assert read_u8(data, 0) == 7
    assert read_u16(data, 1) == 0x1234
    assert read_u32(data, 3) == 0xDEADBEEF
    assert read_i32(data, 7) == -5
    assert read_f32(data, 11) == 1.5
    assert read_u64(data, 15) == 2**40 + 3


@pytest.mark.parametrize(
    "reader, offset",
    [
        (read_u8, 4),
        (read_u16, 3),
        (read_u32, 1),
        (read_i32, -1),
        (read_f32, 2),
        (read_u64, 0),
    ],
)
def test_reads_past_end_raise(reader, offset):
    with pytest.raises(TruncatedBufferError):
        reader(b"\x00\x01\x02\x03", offset)


def test_require_accepts_exact_span():
    require(b"abcd", 0, 4)
    require(b"abcd", 4, 0)
    with pytest.raises(TruncatedBufferError):
        require(b"abcd", 1, 4)


def test_index_of_zero():
    data = b"abc\x00def\x00"
    assert index_of_zero(data, 0) == 3
    assert index_of_zero(data, 4) == 7
    assert index_of_zero(b"abc", 0) is None
    assert index_of_zero(memoryview(data), 1) == 3


def test_read_cstring_returns_next_offset():
    data = b"channels\x00chlist\x00"
    name, offset = read_cstring(data, 0)
    assert name == "channels"
    assert offset == 9
    assert read_cstring(data, offset) == ("chlist", 16)


def test_read_cstring_unterminated():
    with pytest.raises(TruncatedBufferError):
        read_cstring(b"no terminator", 0)
