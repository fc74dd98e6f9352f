# finch/assets/importers/stl.py
from __future__ import annotations

from typing import List, Tuple

import numpy as np

from finch.assets.binary import read_u32, require
from finch.assets.errors import EmptyGeometryError
from finch.assets.geometry import expand_flat
from finch.assets.handle import asset_id_for
from finch.assets.importers.base import AssetImporter, stem_of
from finch.assets.text import decode_text, iter_lines, parse_floats, tokens
from finch.assets.types import DecodedMesh
from finch.logger import get_logger

logger = get_logger(__name__)

HEADER_BYTES = 80
TRIANGLE_BYTES = 50
DEFAULT_MATERIAL = "STLMaterial"

# normal, v0, v1, v2 as 12 float32 then a u16 attribute byte count
_TRIANGLE = np.dtype(
    [("normal", "<f4", (3,)), ("verts", "<f4", (3, 3)), ("attr", "<u2")]
)


def is_binary_stl(data: bytes) -> bool:
    """Binary iff the triangle count at offset 80 accounts for every byte."""
    if len(data) < HEADER_BYTES + 4:
        return False
    count = read_u32(data, HEADER_BYTES)
    return HEADER_BYTES + 4 + count * TRIANGLE_BYTES == len(data)


class StlImporter(AssetImporter[DecodedMesh]):
    """
    STL in either encoding. Triangles are not welded: each contributes three
    emitted vertices carrying the facet normal.
    """

    extensions = (".stl",)

    def import_bytes(self, data: bytes, path: str) -> DecodedMesh:
        if is_binary_stl(data):
            positions, normals = self._decode_binary(data)
            name = stem_of(path)
        else:
            positions, normals, solid = self._decode_ascii(data)
            name = solid or stem_of(path)

        attributes = expand_flat(positions, normals)
        logger.debug(
            "%s: %d triangles", path, attributes.vertex_count // 3
        )

        return DecodedMesh(
            attributes=attributes,
            name=name,
            material=DEFAULT_MATERIAL,
            asset_id=asset_id_for(path),
        )

    def _decode_binary(self, data: bytes) -> Tuple[np.ndarray, np.ndarray]:
        count = read_u32(data, HEADER_BYTES)
        require(data, HEADER_BYTES + 4, count * TRIANGLE_BYTES)
        if count == 0:
            raise EmptyGeometryError("STL contains no triangles")

        tris = np.frombuffer(
            data, dtype=_TRIANGLE, count=count, offset=HEADER_BYTES + 4
        )
        positions = tris["verts"].astype(np.float32).reshape(-1)
        normals = np.repeat(tris["normal"].astype(np.float32), 3, axis=0).reshape(-1)
        return positions, normals

    def _decode_ascii(self, data: bytes) -> Tuple[List[float], List[float], str]:
        positions: List[float] = []
        normals: List[float] = []
        normal = [0.0, 0.0, 0.0]
        solid = ""

        for line in iter_lines(decode_text(data)):
            parts = tokens(line)
            keyword = parts[0].lower()

            if keyword == "facet" and len(parts) > 1 and parts[1].lower() == "normal":
                normal = parse_floats(parts[2:], 3)

            elif keyword == "vertex":
                positions.extend(parse_floats(parts[1:], 3))
                normals.extend(normal)

            elif keyword == "endfacet":
                normal = [0.0, 0.0, 0.0]

            elif keyword == "solid" and not solid and len(parts) > 1:
                solid = " ".join(parts[1:])

        # an incomplete trailing triangle is dropped
        usable = (len(positions) // 9) * 9
        if usable == 0:
            raise EmptyGeometryError("No vertices found in ASCII STL")

        return positions[:usable], normals[:usable], solid
