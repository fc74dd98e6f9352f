import io
import json
import struct
from typing import Dict, List, Optional, Sequence

import pytest
from PIL import Image

EXR_MAGIC = b"\x76\x2f\x31\x01"
EXR_MAGIC_LE = struct.pack("<I", 0x762F3101)


def _exr_attr(name: str, type_name: str, payload: bytes) -> bytes:
    return (
        name.encode()
        + b"\0"
        + type_name.encode()
        + b"\0"
        + struct.pack("<i", len(payload))
        + payload
    )


def build_exr(
    width: int,
    height: int,
    channels: Dict[str, List[List[float]]],
    *,
    min_y: int = 0,
    row_ys: Optional[Sequence[int]] = None,
    compression: int = 0,
    pixel_type: int = 2,
    size_delta: int = 0,
    magic: bytes = EXR_MAGIC,
) -> bytes:
    """
    Uncompressed scanline EXR. channels maps a name to rows of width floats.
    dataWindow is written as min_x, max_x, min_y, max_y.
    """
    names = sorted(channels)
    chlist = (
        b"".join(
            n.encode()
            + b"\0"
            + struct.pack("<i", pixel_type)
            + b"\0\0\0\0"
            + struct.pack("<ii", 1, 1)
            for n in names
        )
        + b"\0"
    )

    header = magic + struct.pack("<I", 2)
    header += _exr_attr("channels", "chlist", chlist)
    header += _exr_attr("compression", "compression", bytes([compression]))
    header += _exr_attr(
        "dataWindow",
        "box2i",
        struct.pack("<iiii", 0, width - 1, min_y, min_y + height - 1),
    )
    header += b"\0"

    lines = []
    for row in range(height):
        y = row_ys[row] if row_ys is not None else min_y + row
        payload = b"".join(
            struct.pack(f"<{width}f", *channels[n][row]) for n in names
        )
        lines.append(struct.pack("<ii", y, len(payload) + size_delta) + payload)

    offset = len(header) + 8 * height
    table = b""
    for line in lines:
        table += struct.pack("<Q", offset)
        offset += len(line)

    return header + table + b"".join(lines)


def encode_rle_channel(values: Sequence[int]) -> bytes:
    """Radiance adaptive RLE for one channel of one scanline."""
    out = bytearray()
    n = len(values)
    i = 0
    while i < n:
        run = 1
        while i + run < n and run < 127 and values[i + run] == values[i]:
            run += 1
        if run >= 3:
            out += bytes([128 + run, values[i]])
            i += run
            continue

        start = i
        while i < n and i - start < 128:
            if i + 2 < n and values[i] == values[i + 1] == values[i + 2]:
                break
            i += 1
        out += bytes([i - start]) + bytes(values[start:i])
    return bytes(out)


def build_hdr(
    width: int,
    height: int,
    rgbe: Sequence[Sequence[int]],
    *,
    rle: bool = True,
    blank_line: bool = True,
    extra_header: Sequence[str] = (),
) -> bytes:
    """
    Radiance file from width*height (r, g, b, e) quads in row-major order.
    """
    lines = ["#?RADIANCE", "FORMAT=32-bit_rle_rgbe", *extra_header]
    if blank_line:
        lines.append("")
    lines.append(f"-Y {height} +X {width}")
    header = ("\n".join(lines) + "\n").encode("ascii")

    body = bytearray()
    for y in range(height):
        row = rgbe[y * width : (y + 1) * width]
        if rle:
            body += bytes([2, 2, width >> 8, width & 0xFF])
            for channel in range(4):
                body += encode_rle_channel([px[channel] for px in row])
        else:
            for px in row:
                body += bytes(px)
    return header + bytes(body)


def build_stl_binary(
    triangles: Sequence[Sequence[Sequence[float]]], header: bytes = b""
) -> bytes:
    """triangles: [(normal, v0, v1, v2), ...]"""
    out = header.ljust(80, b"\0")[:80] + struct.pack("<I", len(triangles))
    for normal, v0, v1, v2 in triangles:
        out += struct.pack("<12f", *normal, *v0, *v1, *v2) + struct.pack("<H", 0)
    return out


def build_glb(doc: dict, bin_chunk: Optional[bytes] = None) -> bytes:
    json_bytes = json.dumps(doc, separators=(",", ":")).encode("utf-8")
    json_bytes += b" " * (-len(json_bytes) % 4)

    chunks = struct.pack("<II", len(json_bytes), 0x4E4F534A) + json_bytes
    if bin_chunk is not None:
        bin_chunk += b"\0" * (-len(bin_chunk) % 4)
        chunks += struct.pack("<II", len(bin_chunk), 0x004E4942) + bin_chunk

    return b"glTF" + struct.pack("<II", 2, 12 + len(chunks)) + chunks


def floats(*values: float) -> bytes:
    return struct.pack(f"<{len(values)}f", *values)


def png_bytes(width: int, height: int, color=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buf, format="PNG")
    return buf.getvalue()


TRIANGLE_POSITIONS = (0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0)


@pytest.fixture
def triangle_gltf_doc():
    """
    Self-contained glTF: one triangle with positions and u16 indices in a
    single buffer (36 bytes of floats, 6 bytes of indices, 2 of padding).
    """
    data = floats(*TRIANGLE_POSITIONS) + struct.pack("<3H", 0, 1, 2) + b"\0\0"
    return {
        "asset": {"version": "2.0"},
        "buffers": [{"byteLength": len(data)}],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": 36},
            {"buffer": 0, "byteOffset": 36, "byteLength": 6},
        ],
        "accessors": [
            {"bufferView": 0, "componentType": 5126, "count": 3, "type": "VEC3"},
            {"bufferView": 1, "componentType": 5123, "count": 3, "type": "SCALAR"},
        ],
        "meshes": [{"name": "Tri", "primitives": [{"attributes": {"POSITION": 0}, "indices": 1}]}],
        "nodes": [{"name": "TriNode", "mesh": 0}],
        "scenes": [{"nodes": [0]}],
        "scene": 0,
    }, data
