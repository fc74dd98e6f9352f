# finch/assets/importers/gltf.py
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Set, Tuple

import numpy as np

from finch.assets.binary import read_u32
from finch.assets.datauri import decode_data_uri, is_data_uri
from finch.assets.errors import (
    AssetError,
    InvalidHeaderError,
    InvalidMagicError,
    MalformedDataError,
    MissingAttributeError,
    MissingElementError,
    TruncatedBufferError,
    UnsupportedComponentTypeError,
    UnsupportedFeatureError,
)
from finch.assets.handle import asset_id_for
from finch.assets.importers.base import AssetImporter, ImportContext
from finch.assets.resolver import base_path_of
from finch.assets.types import (
    DecodedMesh,
    DrawMode,
    GltfAsset,
    LoadingProgress,
    SceneNode,
    VertexAttributeSet,
)
from finch.logger import get_logger

logger = get_logger(__name__)

GLB_MAGIC = b"glTF"
GLB_VERSION_SUPPORTED = 2
GLB_HEADER_BYTES = 12

CHUNK_TYPE_JSON = 0x4E4F534A  # b"JSON"
CHUNK_TYPE_BIN = 0x004E4942  # b"BIN\0"

COMPONENT_TYPE_INT8 = 5120
COMPONENT_TYPE_UINT8 = 5121
COMPONENT_TYPE_INT16 = 5122
COMPONENT_TYPE_UINT16 = 5123
COMPONENT_TYPE_UINT32 = 5125
COMPONENT_TYPE_FLOAT32 = 5126

COMPONENT_TYPE_BYTE_SIZE: Dict[int, int] = {
    COMPONENT_TYPE_INT8: 1,
    COMPONENT_TYPE_UINT8: 1,
    COMPONENT_TYPE_INT16: 2,
    COMPONENT_TYPE_UINT16: 2,
    COMPONENT_TYPE_UINT32: 4,
    COMPONENT_TYPE_FLOAT32: 4,
}

INDEX_COMPONENT_DTYPES: Dict[int, str] = {
    COMPONENT_TYPE_UINT8: "<u1",
    COMPONENT_TYPE_UINT16: "<u2",
    COMPONENT_TYPE_UINT32: "<u4",
}

TYPE_COMPONENT_COUNT: Dict[str, int] = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT2": 4,
    "MAT3": 9,
    "MAT4": 16,
}

DEFAULT_NAME = "GLTFMesh"
DEFAULT_MATERIAL = "GLTFMaterial"


def component_count(type_name: str) -> int:
    count = TYPE_COMPONENT_COUNT.get(type_name)
    if count is None:
        raise UnsupportedFeatureError(f"Unsupported accessor type {type_name!r}")
    return count


def parse_json(raw: bytes) -> Dict[str, Any]:
    try:
        doc = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidHeaderError(f"Invalid glTF JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise InvalidHeaderError("Invalid glTF: JSON root is not an object")
    return doc


def read_glb(data: bytes) -> Tuple[Dict[str, Any], Optional[bytes]]:
    """Split a binary glTF container into its JSON document and BIN chunk."""
    if len(data) < GLB_HEADER_BYTES:
        raise TruncatedBufferError("Invalid GLB: file too small")

    if data[:4] != GLB_MAGIC:
        raise InvalidMagicError("Invalid GLB: bad magic")
    version = read_u32(data, 4)
    total_length = read_u32(data, 8)
    if version != GLB_VERSION_SUPPORTED:
        raise InvalidHeaderError(
            f"Unsupported GLB version: {version} (expected {GLB_VERSION_SUPPORTED})"
        )
    if total_length > len(data):
        raise TruncatedBufferError(
            f"Invalid GLB: header length {total_length} exceeds {len(data)} bytes"
        )

    json_chunk: Optional[bytes] = None
    bin_chunk: Optional[bytes] = None

    offset = GLB_HEADER_BYTES
    while offset < total_length:
        if offset + 8 > total_length:
            raise TruncatedBufferError("Invalid GLB: truncated chunk header")
        chunk_length = read_u32(data, offset)
        chunk_type = read_u32(data, offset + 4)
        offset += 8
        if offset + chunk_length > total_length:
            raise TruncatedBufferError("Invalid GLB: truncated chunk data")
        chunk_data = bytes(data[offset : offset + chunk_length])
        offset += chunk_length

        if chunk_type == CHUNK_TYPE_JSON and json_chunk is None:
            json_chunk = chunk_data
        elif chunk_type == CHUNK_TYPE_BIN and bin_chunk is None:
            bin_chunk = chunk_data

    if json_chunk is None:
        raise MissingElementError("Invalid GLB: missing JSON chunk")

    return parse_json(json_chunk), bin_chunk


def parse_document(data: bytes, path: str) -> Tuple[Dict[str, Any], Optional[bytes]]:
    """
    JSON document plus the GLB BIN chunk, if any.

    Binary containers are recognised by magic whatever the extension; a
    .glb path without the magic is rejected.
    """
    if data[:4] == GLB_MAGIC:
        return read_glb(data)
    if path.lower().endswith(".glb"):
        raise InvalidMagicError("Invalid GLB: bad magic")
    return parse_json(data), None


def inline_buffer(
    index: int, buffer: Dict[str, Any], bin_chunk: Optional[bytes]
) -> Optional[bytes]:
    """
    Bytes of a buffer that needs no fetching, or None for an external URI.
    """
    uri = buffer.get("uri")
    if uri is None:
        if index == 0 and bin_chunk is not None:
            return bin_chunk
        return bytes(int(buffer.get("byteLength", 0)))
    if is_data_uri(uri):
        return decode_data_uri(uri)
    return None


class AccessorReader:
    """Reads typed accessor data out of the loaded buffers."""

    def __init__(self, doc: Dict[str, Any], buffers: List[bytes]) -> None:
        self.accessors: List[Dict[str, Any]] = doc.get("accessors") or []
        self.buffer_views: List[Dict[str, Any]] = doc.get("bufferViews") or []
        self.buffers = buffers

    def accessor(self, index: int) -> Dict[str, Any]:
        if not 0 <= index < len(self.accessors):
            raise MissingElementError(f"Accessor {index} not found")
        return self.accessors[index]

    def _locate(
        self, index: int, accessor: Dict[str, Any], element_size: int
    ) -> Tuple[bytes, int, int, int]:
        """(buffer, base offset, stride, count), span-checked."""
        view_index = accessor.get("bufferView")
        if view_index is None or not 0 <= view_index < len(self.buffer_views):
            raise MissingElementError(f"Accessor {index} missing bufferView")
        view = self.buffer_views[view_index]

        buffer_index = int(view.get("buffer", 0))
        if not 0 <= buffer_index < len(self.buffers):
            raise MissingElementError(
                f"bufferView {view_index} references missing buffer {buffer_index}"
            )
        buffer = self.buffers[buffer_index]

        count = int(accessor.get("count", 0))
        stride = int(view.get("byteStride") or element_size)
        base = int(view.get("byteOffset", 0)) + int(accessor.get("byteOffset", 0))

        if count > 0:
            span = (count - 1) * stride + element_size
            if base < 0 or base + span > len(buffer):
                raise TruncatedBufferError(
                    f"Accessor {index} needs bytes {base}..{base + span} "
                    f"of a {len(buffer)} byte buffer"
                )
        return buffer, base, stride, count

    def read_floats(self, index: int) -> np.ndarray:
        """Flat float32 array of count * componentCount values."""
        accessor = self.accessor(index)
        component_type = accessor.get("componentType")
        if component_type != COMPONENT_TYPE_FLOAT32:
            raise UnsupportedComponentTypeError(
                f"Accessor {index}: only FLOAT attributes are supported "
                f"(componentType={component_type})"
            )
        components = component_count(accessor.get("type", ""))
        buffer, base, stride, count = self._locate(index, accessor, components * 4)
        if count == 0:
            return np.zeros(0, dtype=np.float32)

        view = np.ndarray(
            shape=(count, components),
            dtype="<f4",
            buffer=buffer,
            offset=base,
            strides=(stride, 4),
        )
        return view.astype(np.float32).reshape(-1)

    def read_indices(self, index: int) -> np.ndarray:
        """Index accessor widened to uint32."""
        accessor = self.accessor(index)
        component_type = accessor.get("componentType")
        dtype = INDEX_COMPONENT_DTYPES.get(component_type)
        if dtype is None:
            raise UnsupportedComponentTypeError(
                f"Unsupported index component type {component_type}"
            )
        size = COMPONENT_TYPE_BYTE_SIZE[component_type]
        buffer, base, stride, count = self._locate(index, accessor, size)
        if count == 0:
            return np.zeros(0, dtype=np.uint32)

        view = np.ndarray(
            shape=(count,), dtype=dtype, buffer=buffer, offset=base, strides=(stride,)
        )
        return view.astype(np.uint32)


def _draw_mode(value: Any) -> DrawMode:
    try:
        return DrawMode(int(value))
    except (TypeError, ValueError):
        return DrawMode.TRIANGLES


class _SceneBuilder:
    """
    Builds the node hierarchy of one document.

    Geometry is built once per mesh index and node templates once per node
    index. Each placement receives its own copy of the template.
    """

    def __init__(
        self, doc: Dict[str, Any], reader: AccessorReader, path: str
    ) -> None:
        self.doc = doc
        self.reader = reader
        self.path = path
        self.mesh_defs: List[Dict[str, Any]] = doc.get("meshes") or []
        self.node_defs: List[Dict[str, Any]] = doc.get("nodes") or []
        self.material_defs: List[Dict[str, Any]] = doc.get("materials") or []

        self.meshes: List[DecodedMesh] = []
        self._mesh_cache: Dict[int, SceneNode] = {}
        self._node_cache: Dict[int, SceneNode] = {}
        self._building: Set[int] = set()

    def material_name(self, primitive: Dict[str, Any]) -> str:
        index = primitive.get("material")
        if index is not None and 0 <= index < len(self.material_defs):
            name = self.material_defs[index].get("name")
            if name:
                return str(name)
        return DEFAULT_MATERIAL

    def primitive(
        self,
        primitive: Dict[str, Any],
        name: str,
        mesh_index: int,
        primitive_index: int,
    ) -> DecodedMesh:
        attributes = primitive.get("attributes") or {}
        if "POSITION" not in attributes:
            raise MissingAttributeError("glTF primitive missing POSITION attribute")

        reader = self.reader
        position = reader.read_floats(attributes["POSITION"])
        normal = (
            reader.read_floats(attributes["NORMAL"]) if "NORMAL" in attributes else None
        )
        uv = (
            reader.read_floats(attributes["TEXCOORD_0"])
            if "TEXCOORD_0" in attributes
            else None
        )

        color = None
        color_components = 4
        if "COLOR_0" in attributes:
            accessor = reader.accessor(attributes["COLOR_0"])
            color_components = 4 if accessor.get("type") == "VEC4" else 3
            color = reader.read_floats(attributes["COLOR_0"])

        indices = None
        if primitive.get("indices") is not None:
            indices = reader.read_indices(primitive["indices"])

        vertex_set = VertexAttributeSet(
            position=position,
            normal=normal,
            uv=uv,
            color=color,
            color_components=color_components,
            indices=indices,
        )
        vertex_set.validate()

        mesh = DecodedMesh(
            attributes=vertex_set,
            name=name,
            material=self.material_name(primitive),
            asset_id=asset_id_for(self.path, str(mesh_index), str(primitive_index)),
            draw_mode=_draw_mode(primitive.get("mode", DrawMode.TRIANGLES)),
        )
        self.meshes.append(mesh)
        return mesh

    def mesh(self, index: int) -> SceneNode:
        cached = self._mesh_cache.get(index)
        if cached is not None:
            return cached

        if not 0 <= index < len(self.mesh_defs):
            node = SceneNode()
        else:
            mesh_def = self.mesh_defs[index]
            mesh_name = mesh_def.get("name")
            primitives = mesh_def.get("primitives") or []

            if not primitives:
                node = SceneNode(name=mesh_name or "")
            elif len(primitives) == 1:
                name = mesh_name or DEFAULT_NAME
                node = SceneNode(
                    name=name, mesh=self.primitive(primitives[0], name, index, 0)
                )
            else:
                node = SceneNode(name=mesh_name or "")
                for i, primitive in enumerate(primitives):
                    name = f"{mesh_name}_{i}" if mesh_name else DEFAULT_NAME
                    node.add(
                        SceneNode(
                            name=name, mesh=self.primitive(primitive, name, index, i)
                        )
                    )

        self._mesh_cache[index] = node
        return node

    def node(self, index: int) -> SceneNode:
        cached = self._node_cache.get(index)
        if cached is not None:
            return cached
        if index in self._building:
            raise MalformedDataError(f"glTF node {index} is its own ancestor")

        if not 0 <= index < len(self.node_defs):
            logger.debug("node %d does not exist; using an empty node", index)
            template = SceneNode()
        else:
            self._building.add(index)
            node_def = self.node_defs[index]

            mesh_index = node_def.get("mesh")
            template = SceneNode() if mesh_index is None else self.mesh(mesh_index).copy()
            if node_def.get("name"):
                template.name = str(node_def["name"])
            for child in node_def.get("children") or []:
                template.add(self.node(child).copy())

            self._building.discard(index)

        self._node_cache[index] = template
        return template

    def scenes(self) -> List[SceneNode]:
        scenes = []
        for scene_def in self.doc.get("scenes") or []:
            root = SceneNode(name=str(scene_def.get("name") or ""))
            for index in scene_def.get("nodes") or []:
                root.add(self.node(index).copy())
            scenes.append(root)
        return scenes

    def nodes(self) -> List[SceneNode]:
        return [self._node_cache[i] for i in sorted(self._node_cache)]


class GltfImporter(AssetImporter[GltfAsset]):
    """
    glTF 2.0 documents (.gltf JSON or .glb binary).

    import_bytes handles self-contained documents only; load fetches
    external buffers through the context resolver.
    """

    extensions = (".gltf", ".glb")

    def import_bytes(self, data: bytes, path: str) -> GltfAsset:
        doc, bin_chunk = parse_document(data, path)

        buffers = []
        for index, buffer in enumerate(doc.get("buffers") or []):
            content = inline_buffer(index, buffer, bin_chunk)
            if content is None:
                raise MissingElementError(
                    f"Buffer {index} references external URI {buffer.get('uri')!r} "
                    "and no resolver is available"
                )
            buffers.append(content)

        return self.build_asset(doc, buffers, path)

    async def load(self, data: bytes, path: str, context: ImportContext) -> GltfAsset:
        try:
            doc, bin_chunk = parse_document(data, path)
            buffers = await self.fetch_buffers(doc, bin_chunk, path, context)
            return await context.run(self.build_asset, doc, buffers, path)
        except AssetError as exc:
            exc.with_path(path)
            raise

    async def fetch_buffers(
        self,
        doc: Dict[str, Any],
        bin_chunk: Optional[bytes],
        path: str,
        context: ImportContext,
    ) -> List[bytes]:
        """
        Load every buffer in declaration order, reporting cumulative progress
        after each one.
        """
        definitions = doc.get("buffers") or []
        if not definitions:
            return []

        total = max(1, sum(int(b.get("byteLength", 0)) for b in definitions))
        base_path = context.base_path or base_path_of(path)
        if base_path and not base_path.endswith("/"):
            base_path += "/"

        loaded = 0
        buffers: List[bytes] = []
        for index, buffer in enumerate(definitions):
            content = inline_buffer(index, buffer, bin_chunk)
            if content is None:
                if context.resolver is None:
                    raise MissingElementError(
                        f"Buffer {index} references external URI "
                        f"{buffer.get('uri')!r} and no resolver is available"
                    )
                content = await context.resolver(buffer["uri"], base_path)

            loaded += len(content)
            if context.progress is not None:
                context.progress(LoadingProgress(loaded, total))
            buffers.append(content)

        return buffers

    def build_asset(
        self, doc: Dict[str, Any], buffers: List[bytes], path: str
    ) -> GltfAsset:
        builder = _SceneBuilder(doc, AccessorReader(doc, buffers), path)
        scenes = builder.scenes()

        default = doc.get("scene")
        if isinstance(default, int) and 0 <= default < len(scenes):
            scene = scenes[default]
        elif scenes:
            scene = scenes[0]
        else:
            scene = SceneNode()

        nodes = builder.nodes()
        logger.debug(
            "%s: %d scenes, %d nodes, %d primitives",
            path,
            len(scenes),
            len(nodes),
            len(builder.meshes),
        )

        return GltfAsset(scene=scene, scenes=scenes, nodes=nodes, meshes=builder.meshes)
