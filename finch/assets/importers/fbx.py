# finch/assets/importers/fbx.py
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from finch.assets.errors import (
    EmptyGeometryError,
    MalformedDataError,
    MissingElementError,
    UnsupportedFeatureError,
)
from finch.assets.geometry import CompositeVertexKey, MeshBuilder, group
from finch.assets.handle import asset_id_for
from finch.assets.importers.base import AssetImporter
from finch.assets.scanner import FbxScanner
from finch.assets.text import decode_text, parse_float, parse_int_list
from finch.assets.types import DecodedMesh
from finch.logger import get_logger

logger = get_logger(__name__)

BINARY_MAGIC = b"Kaydara FBX Binary"
DEFAULT_NAME = "FBXMesh"
DEFAULT_MATERIAL = "FBXMaterial"


def decode_polygons(stream: Sequence[int]) -> List[List[int]]:
    """
    Split a PolygonVertexIndex stream into polygons.

    The last corner of each polygon is stored as -(index + 1). A trailing
    polygon without a terminator is still returned.
    """
    polygons: List[List[int]] = []
    current: List[int] = []
    for raw in stream:
        if raw < 0:
            current.append(-raw - 1)
            polygons.append(current)
            current = []
        else:
            current.append(raw)
    if current:
        polygons.append(current)
    return polygons


class FbxImporter(AssetImporter[DecodedMesh]):
    """
    ASCII FBX geometry subset: control points, polygon index stream and the
    direct-mapped Normals/UV layers. Materials are not read.
    """

    extensions = (".fbx",)

    def import_bytes(self, data: bytes, path: str) -> DecodedMesh:
        if data.startswith(BINARY_MAGIC):
            raise UnsupportedFeatureError("binary FBX is not supported")

        scanner = FbxScanner(decode_text(data))

        vertex_tokens = scanner.read_array("Vertices")
        if vertex_tokens is None:
            raise MissingElementError("FBX file missing Vertices array")
        index_tokens = scanner.read_array("PolygonVertexIndex")
        if index_tokens is None:
            raise MissingElementError("FBX file missing PolygonVertexIndex array")

        positions = group([parse_float(t) for t in vertex_tokens], 3)
        stream = parse_int_list(" ".join(index_tokens))

        normals = self._layer(scanner, "LayerElementNormal", "Normals", 3, len(positions))
        uvs = self._layer(scanner, "LayerElementUV", "UV", 2, len(positions))

        builder = MeshBuilder(positions, uvs or (), normals or ())
        polygons = decode_polygons(stream)
        for polygon in polygons:
            keys: List[CompositeVertexKey] = []
            for vi in polygon:
                if vi >= len(positions):
                    raise MalformedDataError(
                        f"polygon references vertex {vi} of {len(positions)}"
                    )
                keys.append(
                    (vi, vi if uvs else None, vi if normals else None)
                )
            builder.polygon(keys)

        if builder.vertex_count == 0:
            raise EmptyGeometryError("FBX mesh has no polygons")

        attributes = builder.build()
        logger.debug(
            "%s: %d control points, %d polygons -> %d vertices",
            path,
            len(positions),
            len(polygons),
            attributes.vertex_count,
        )

        return DecodedMesh(
            attributes=attributes,
            name=scanner.model_name() or DEFAULT_NAME,
            material=DEFAULT_MATERIAL,
            asset_id=asset_id_for(path),
        )

    def _layer(
        self,
        scanner: FbxScanner,
        layer: str,
        key: str,
        width: int,
        vertex_count: int,
    ) -> Optional[List[Tuple[float, ...]]]:
        """
        Per-control-point values of a layer element, or None when the layer
        is absent or does not cover every control point.
        """
        block = scanner.find_block(layer)
        if block is None:
            return None
        tokens = scanner.read_array(key, block[0], block[1])
        if not tokens:
            return None

        values = group([parse_float(t) for t in tokens], width)
        if len(values) < vertex_count:
            logger.debug(
                "%s has %d entries for %d control points; ignored",
                layer,
                len(values),
                vertex_count,
            )
            return None
        return values
