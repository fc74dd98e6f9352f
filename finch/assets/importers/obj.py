# finch/assets/importers/obj.py
from __future__ import annotations

from typing import List, Optional, Tuple

from finch.assets.errors import EmptyGeometryError, MalformedDataError
from finch.assets.geometry import CompositeVertexKey, MeshBuilder, resolve_index
from finch.assets.handle import asset_id_for
from finch.assets.importers.base import AssetImporter, stem_of
from finch.assets.text import (
    decode_text,
    iter_lines,
    parse_floats,
    parse_int,
    tokens,
)
from finch.assets.types import DecodedMesh
from finch.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MATERIAL = "OBJMaterial"


class ObjImporter(AssetImporter[DecodedMesh]):
    """
    Wavefront OBJ: v, vt, vn and f statements.

    Polygons are fan-triangulated and vertices deduplicated by their
    (v, vt, vn) reference triple. Other statements are ignored apart from
    the first o/g (mesh name) and usemtl (material hint).
    """

    extensions = (".obj",)

    def import_bytes(self, data: bytes, path: str) -> DecodedMesh:
        positions: List[Tuple[float, ...]] = []
        normals: List[Tuple[float, ...]] = []
        uvs: List[Tuple[float, ...]] = []
        builder = MeshBuilder(positions, uvs, normals)

        name: Optional[str] = None
        material: Optional[str] = None
        faces = 0

        for line in iter_lines(decode_text(data)):
            parts = tokens(line)
            tag = parts[0]

            if tag == "v":
                positions.append(tuple(parse_floats(parts[1:], 3)))

            elif tag == "vn":
                normals.append(tuple(parse_floats(parts[1:], 3)))

            elif tag == "vt":
                uvs.append(tuple(parse_floats(parts[1:], 2)))

            elif tag == "f":
                keys = [
                    self._parse_face_vertex(ref, positions, uvs, normals)
                    for ref in parts[1:]
                ]
                if builder.polygon(keys):
                    faces += 1

            elif tag in ("o", "g") and name is None and len(parts) > 1:
                name = " ".join(parts[1:])

            elif tag == "usemtl" and material is None and len(parts) > 1:
                material = " ".join(parts[1:])

        if not positions:
            raise EmptyGeometryError("No geometry found in OBJ")

        attributes = builder.build()

        logger.debug(
            "%s: %d pos | %d norms | %d uvs -> %d vertices, %d faces",
            path,
            len(positions),
            len(normals),
            len(uvs),
            attributes.vertex_count,
            faces,
        )

        return DecodedMesh(
            attributes=attributes,
            name=name or stem_of(path),
            material=material or DEFAULT_MATERIAL,
            asset_id=asset_id_for(path),
        )

    def _parse_face_vertex(
        self,
        token: str,
        positions: List[Tuple[float, ...]],
        uvs: List[Tuple[float, ...]],
        normals: List[Tuple[float, ...]],
    ) -> CompositeVertexKey:
        """
        Parse v, v/vt, v//vn or v/vt/vn. Negative references are relative
        to each array as populated so far in the file.
        """
        parts = token.split("/")
        if not parts[0]:
            raise MalformedDataError(f"Invalid vertex index in token: {token}")

        v = resolve_index(parse_int(parts[0]), len(positions))
        vt = (
            resolve_index(parse_int(parts[1]), len(uvs))
            if len(parts) > 1 and parts[1]
            else None
        )
        vn = (
            resolve_index(parse_int(parts[2]), len(normals))
            if len(parts) > 2 and parts[2]
            else None
        )
        return v, vt, vn
