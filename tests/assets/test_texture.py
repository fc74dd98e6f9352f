import io

import numpy as np
import pytest
from PIL import Image

from finch.assets.errors import InvalidHeaderError
from finch.assets.importers.texture import (
    ImageFormat,
    TextureImporter,
    detect_image_format,
)
from finch.assets.types import PixelBuffer, PixelFormat
from tests.conftest import png_bytes


def test_texture_importer_png():
    # a simple red 2x2 PNG
    tex = TextureImporter().decode(png_bytes(2, 2), "textures/test.png")

    assert isinstance(tex, PixelBuffer)
    assert tex.width == 2
    assert tex.height == 2
    assert tex.channels == 4  # always converted to RGBA
    assert tex.format is PixelFormat.RGBA8
    assert not tex.is_hdr
    assert tex.data.dtype == np.uint8
    assert len(tex.data) == 2 * 2 * 4
    assert tex.texel(1, 1) == (255, 0, 0, 255)
    assert tex.name == "test"


def test_texture_flipped_y():
    img = Image.new("RGBA", (1, 2))
    img.putpixel((0, 0), (1, 2, 3, 4))
    img.putpixel((0, 1), (5, 6, 7, 8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")

    tex = TextureImporter().decode(buf.getvalue(), "strip.png")
    flipped = tex.flipped_y()
    assert flipped.texel(0, 0) == (5, 6, 7, 8)
    assert flipped.texel(0, 1) == (1, 2, 3, 4)
    # the source buffer is untouched
    assert tex.texel(0, 0) == (1, 2, 3, 4)


def test_texture_garbage():
    with pytest.raises(InvalidHeaderError):
        TextureImporter().decode(b"definitely not an image", "bad.png")


@pytest.mark.parametrize(
    "fmt, expected",
    [("PNG", ImageFormat.PNG), ("JPEG", ImageFormat.JPEG), ("GIF", ImageFormat.GIF), ("BMP", ImageFormat.BMP)],
)
def test_detect_image_format(fmt, expected):
    buf = io.BytesIO()
    Image.new("RGB", (2, 2)).save(buf, format=fmt)
    assert detect_image_format(buf.getvalue()) is expected


def test_detect_image_format_webp_and_unknown():
    assert detect_image_format(b"RIFF\x00\x00\x00\x00WEBPVP8 ") is ImageFormat.WEBP
    assert detect_image_format(b"\x00\x01\x02") is ImageFormat.UNKNOWN
