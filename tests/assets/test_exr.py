import struct

import numpy as np
import pytest

from finch.assets.errors import (
    InvalidHeaderError,
    InvalidMagicError,
    MalformedDataError,
    MissingElementError,
    ScanlineOrderError,
    TruncatedBufferError,
    UnsupportedFeatureError,
)
from finch.assets.importers.exr import ExrImporter, is_exr, parse_header
from finch.assets.types import PixelFormat
from tests.conftest import EXR_MAGIC_LE, build_exr

RGBA_2X1 = {
    "R": [[0.25, 1.0]],
    "G": [[0.5, 0.0]],
    "B": [[0.75, 0.5]],
    "A": [[1.0, 0.25]],
}


def test_exr_two_by_one_rgba():
    image = ExrImporter().decode(build_exr(2, 1, RGBA_2X1), "sky.exr")

    assert image.format is PixelFormat.RGBA32F
    assert (image.width, image.height) == (2, 1)
    assert image.data.dtype == np.float32
    assert len(image.data) == 2 * 4
    assert image.texel(0, 0) == (0.25, 0.5, 0.75, 1.0)
    assert image.texel(1, 0) == (1.0, 0.0, 0.5, 0.25)


def test_exr_header():
    header = parse_header(build_exr(3, 2, {"R": [[0] * 3, [0] * 3]}, min_y=4))
    assert header.width == 3
    assert header.height == 2
    assert header.data_window == (0, 2, 4, 5)
    assert [c.name for c in header.channels] == ["R"]


def test_exr_wrong_scanline_y():
    data = build_exr(2, 1, RGBA_2X1, row_ys=[7])
    with pytest.raises(ScanlineOrderError):
        ExrImporter().decode(data, "sky.exr")


def test_exr_luminance_fills_gb_and_alpha():
    image = ExrImporter().decode(build_exr(1, 1, {"R": [[0.5]]}), "y.exr")
    assert image.texel(0, 0) == (0.5, 0.5, 0.5, 1.0)


def test_exr_values_are_clamped():
    image = ExrImporter().decode(
        build_exr(2, 1, {"R": [[-2.0, 7.5]], "G": [[0.5, 0.5]], "B": [[0.5, 0.5]]}),
        "hot.exr",
    )
    assert image.texel(0, 0)[0] == 0.0
    assert image.texel(1, 0)[0] == 1.0


def test_exr_bad_magic():
    data = b"\x00\x00\x00\x00" + build_exr(1, 1, {"R": [[0.0]]})[4:]
    with pytest.raises(InvalidMagicError):
        ExrImporter().decode(data, "x.exr")


def test_exr_compressed_is_unsupported():
    with pytest.raises(UnsupportedFeatureError):
        ExrImporter().decode(build_exr(1, 1, {"R": [[0.0]]}, compression=3), "x.exr")


def test_exr_half_channels_are_unsupported():
    with pytest.raises(UnsupportedFeatureError):
        ExrImporter().decode(build_exr(1, 1, {"R": [[0.0]]}, pixel_type=1), "x.exr")


def test_exr_data_size_mismatch():
    with pytest.raises(MalformedDataError):
        ExrImporter().decode(
            build_exr(1, 1, {"R": [[0.0]]}, size_delta=-4), "x.exr"
        )


def test_exr_truncated_scanlines():
    data = build_exr(2, 2, {"R": [[0.0, 0.0], [1.0, 1.0]]})
    with pytest.raises(TruncatedBufferError):
        ExrImporter().decode(data[:-6], "x.exr")


def test_exr_without_channels():
    data = build_exr(1, 1, {})
    with pytest.raises(MissingElementError):
        ExrImporter().decode(data, "x.exr")


def test_exr_data_window_is_min_max_per_axis():
    # minX=0, maxX=1, minY=0, maxY=0: two texels in one scanline
    image = ExrImporter().decode(build_exr(2, 1, {"R": [[0.25, 0.75]]}), "w.exr")
    assert (image.width, image.height) == (2, 1)
    assert image.texel(1, 0) == (0.75, 0.75, 0.75, 1.0)


def test_exr_empty_data_window():
    data = bytearray(build_exr(1, 1, {"R": [[0.0]]}))
    window = data.index(b"dataWindow\0box2i\0") + len(b"dataWindow\0box2i\0") + 4
    struct.pack_into("<iiii", data, window, 0, -1, 0, 0)
    with pytest.raises(InvalidHeaderError):
        parse_header(bytes(data))


def test_exr_magic_little_endian_integer():
    data = build_exr(1, 1, {"R": [[0.5]]}, magic=EXR_MAGIC_LE)
    assert is_exr(data)
    assert ExrImporter().decode(data, "le.exr").texel(0, 0) == (0.5, 0.5, 0.5, 1.0)
    assert is_exr(build_exr(1, 1, {"R": [[0.5]]}))
    assert not is_exr(b"\x76\x2f")
