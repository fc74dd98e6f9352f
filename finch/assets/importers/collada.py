# finch/assets/importers/collada.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from finch.assets.errors import MalformedDataError, MissingElementError
from finch.assets.geometry import expand_flat, fan_triangles
from finch.assets.handle import asset_id_for
from finch.assets.importers.base import AssetImporter
from finch.assets.scanner import Element, TagScanner
from finch.assets.text import (
    decode_text,
    parse_float_list,
    parse_int,
    parse_int_list,
)
from finch.assets.types import DecodedMesh
from finch.logger import get_logger

logger = get_logger(__name__)

DEFAULT_NAME = "ColladaMesh"
DEFAULT_MATERIAL = "ColladaMaterial"

PRIMITIVE_TAGS = ("triangles", "polylist", "polygons")


@dataclass(frozen=True, slots=True)
class _Input:
    semantic: str
    source: str
    offset: int


@dataclass(frozen=True, slots=True)
class _Stream:
    """A float_array plus the accessor stride used to step through it."""

    values: List[float]
    stride: int

    def fetch(self, index: int, width: int) -> List[float]:
        base = index * self.stride
        if index < 0 or base + width > len(self.values):
            raise MalformedDataError(
                f"index {index} out of range for array of {len(self.values)} values"
            )
        return self.values[base : base + width]


def _ref(value: Optional[str]) -> str:
    """Strip the '#' of a local URI reference."""
    if not value:
        return ""
    return value[1:] if value.startswith("#") else value


class ColladaImporter(AssetImporter[DecodedMesh]):
    """
    COLLADA (.dae) meshes with POSITION/NORMAL/TEXCOORD inputs.

    Only the first <triangles>, <polylist> or <polygons> block is read;
    polygons are fan-triangulated. This is a tag scanner over the text, not
    an XML parser.
    """

    extensions = (".dae",)

    def import_bytes(self, data: bytes, path: str) -> DecodedMesh:
        scanner = TagScanner(decode_text(data))

        float_arrays = self._float_arrays(scanner)
        strides = self._accessor_strides(scanner)
        source_arrays = self._source_arrays(scanner)
        vertices = self._vertices(scanner)

        primitive = self._primitive(scanner)

        inputs = [
            _Input(
                semantic=el.get("semantic", ""),
                source=_ref(el.get("source")),
                offset=parse_int(el.get("offset") or "0"),
            )
            for el in scanner.children(primitive, "input")
        ]

        stride = max((i.offset for i in inputs), default=0) + 1
        raw = self._corners(scanner, primitive, stride)
        by_semantic = {}
        for entry in inputs:
            by_semantic.setdefault(entry.semantic, entry)

        def stream(semantic: str, default_stride: int) -> Optional[_Stream]:
            entry = by_semantic.get(semantic)
            if entry is None:
                return None
            source = vertices.get(entry.source, entry.source)
            array_id = source_arrays.get(source, source)
            values = float_arrays.get(array_id)
            if values is None:
                return None
            return _Stream(values, strides.get(array_id, default_stride))

        if "VERTEX" not in by_semantic:
            raise MissingElementError("COLLADA missing VERTEX input")
        positions_stream = stream("VERTEX", 3)
        if positions_stream is None:
            raise MissingElementError("COLLADA missing position array")
        normals_stream = stream("NORMAL", 3)
        uv_stream = stream("TEXCOORD", 2)

        vertex_count = len(raw) // stride
        positions = np.empty((vertex_count, 3), dtype=np.float32)
        normals = (
            np.empty((vertex_count, 3), dtype=np.float32) if normals_stream else None
        )
        uvs = np.empty((vertex_count, 2), dtype=np.float32) if uv_stream else None

        for v in range(vertex_count):
            base = v * stride
            positions[v] = positions_stream.fetch(
                raw[base + by_semantic["VERTEX"].offset], 3
            )
            if normals is not None:
                normals[v] = normals_stream.fetch(
                    raw[base + by_semantic["NORMAL"].offset], 3
                )
            if uvs is not None:
                s, t = uv_stream.fetch(raw[base + by_semantic["TEXCOORD"].offset], 2)
                uvs[v] = (s, 1.0 - t)

        geometry = scanner.first("geometry")
        name = (geometry.get("id") if geometry else None) or DEFAULT_NAME
        material = primitive.get("material") or DEFAULT_MATERIAL

        attributes = expand_flat(positions, normals, uvs)
        logger.debug(
            "%s: %d inputs, stride %d -> %d vertices",
            path,
            len(inputs),
            stride,
            vertex_count,
        )

        return DecodedMesh(
            attributes=attributes,
            name=name,
            material=material,
            asset_id=asset_id_for(path),
        )

    def _primitive(self, scanner: TagScanner) -> Element:
        found = [el for el in map(scanner.first, PRIMITIVE_TAGS) if el is not None]
        if not found:
            raise MissingElementError(
                "COLLADA file missing <triangles>, <polylist> or <polygons> element"
            )
        return min(found, key=lambda el: el.start)

    def _corners(
        self, scanner: TagScanner, primitive: Element, stride: int
    ) -> List[int]:
        """
        Index tuples of every triangle corner, flattened. Each corner is
        stride ints, one per input offset.
        """
        if primitive.tag == "polygons":
            polygons = [
                parse_int_list(scanner.body(p))
                for p in scanner.children(primitive, "p")
            ]
            if not polygons:
                raise MissingElementError("COLLADA polygons missing <p> element")
        else:
            p = scanner.first("p", primitive.body_start, primitive.body_end)
            if p is None:
                raise MissingElementError(
                    f"COLLADA {primitive.tag} missing <p> element"
                )
            raw = parse_int_list(scanner.body(p))
            if primitive.tag == "triangles":
                return raw
            polygons = self._split_polylist(scanner, primitive, raw, stride)

        corners: List[int] = []
        for polygon in polygons:
            for tri in fan_triangles(len(polygon) // stride):
                for c in tri:
                    corners.extend(polygon[c * stride : (c + 1) * stride])
        return corners

    def _split_polylist(
        self, scanner: TagScanner, primitive: Element, raw: Sequence[int], stride: int
    ) -> List[Sequence[int]]:
        vcount = scanner.first("vcount", primitive.body_start, primitive.body_end)
        if vcount is None:
            raise MissingElementError("COLLADA polylist missing <vcount> element")

        polygons = []
        cursor = 0
        for count in parse_int_list(scanner.body(vcount)):
            size = count * stride
            if count < 0 or cursor + size > len(raw):
                raise MalformedDataError("COLLADA <vcount> exceeds <p> data")
            polygons.append(raw[cursor : cursor + size])
            cursor += size
        return polygons

    def _float_arrays(self, scanner: TagScanner) -> Dict[str, List[float]]:
        arrays: Dict[str, List[float]] = {}
        for el in scanner.elements("float_array"):
            array_id = el.get("id")
            if array_id:
                arrays[array_id] = parse_float_list(scanner.body(el))
        return arrays

    def _accessor_strides(self, scanner: TagScanner) -> Dict[str, int]:
        strides: Dict[str, int] = {}
        for el in scanner.elements("accessor"):
            source = _ref(el.get("source"))
            stride = el.get("stride")
            if source and stride and stride.isdigit():
                strides[source] = int(stride)
        return strides

    def _source_arrays(self, scanner: TagScanner) -> Dict[str, str]:
        """<source id> -> id of the float_array nested inside it."""
        mapping: Dict[str, str] = {}
        for el in scanner.elements("source"):
            source_id = el.get("id")
            nested = scanner.first("float_array", el.body_start, el.body_end)
            if source_id and nested is not None and nested.get("id"):
                mapping[source_id] = nested.get("id")
        return mapping

    def _vertices(self, scanner: TagScanner) -> Dict[str, str]:
        """<vertices id> -> source id of its POSITION input."""
        mapping: Dict[str, str] = {}
        for el in scanner.elements("vertices"):
            vertices_id = el.get("id")
            if not vertices_id:
                continue
            for inp in scanner.children(el, "input"):
                if inp.get("semantic") == "POSITION":
                    mapping[vertices_id] = _ref(inp.get("source"))
                    break
        return mapping
