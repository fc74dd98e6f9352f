# finch/assets/types.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import ClassVar, List, Optional, Sequence, Tuple, Union

import numpy as np

from finch.assets.errors import MalformedDataError
from finch.assets.handle import AssetId

Aabb = Tuple[Tuple[float, float, float], Tuple[float, float, float]]


class AssetKind(str, Enum):
    """Tag carried by every decoded asset type."""

    MESH = "mesh"
    TEXTURE = "texture"
    SCENE = "scene"


class PixelFormat(str, Enum):
    RGBA8 = "rgba8"
    RGBA32F = "rgba32f"


class DrawMode(IntEnum):
    """glTF primitive topology; every other format emits TRIANGLES."""

    POINTS = 0
    LINES = 1
    LINE_LOOP = 2
    LINE_STRIP = 3
    TRIANGLES = 4
    TRIANGLE_STRIP = 5
    TRIANGLE_FAN = 6


@dataclass(frozen=True, slots=True)
class VertexLayout:
    """Describes vertex attributes for VAO creation."""

    attributes: Sequence[str]  # e.g. ["in_pos", "in_normal", "in_uv"]
    format: str  # buffer format string e.g. "3f 3f 2f"
    stride_bytes: int


@dataclass(frozen=True, slots=True)
class VertexAttributeSet:
    """
    Flat per-vertex arrays plus an optional index array.

    position is float32[3n]; normal float32[3n], uv float32[2n] and color
    float32[color_components * n] are optional. indices is uint32.
    """

    position: np.ndarray
    normal: Optional[np.ndarray] = None
    uv: Optional[np.ndarray] = None
    color: Optional[np.ndarray] = None
    color_components: int = 4
    indices: Optional[np.ndarray] = None

    @property
    def vertex_count(self) -> int:
        return len(self.position) // 3

    @property
    def index_count(self) -> int:
        return 0 if self.indices is None else len(self.indices)

    @property
    def aabb(self) -> Aabb:
        if self.vertex_count == 0:
            inf = float("inf")
            return ((inf, inf, inf), (-inf, -inf, -inf))
        pts = self.position.reshape(-1, 3)
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return (
            (float(lo[0]), float(lo[1]), float(lo[2])),
            (float(hi[0]), float(hi[1]), float(hi[2])),
        )

    def validate(self) -> None:
        """
        Raises:
            MalformedDataError: if an array length disagrees with the vertex
                count or an index points past the last vertex.
        """
        if len(self.position) % 3 != 0:
            raise MalformedDataError(
                f"position length {len(self.position)} is not a multiple of 3"
            )
        n = self.vertex_count

        for name, array, width in (
            ("normal", self.normal, 3),
            ("uv", self.uv, 2),
            ("color", self.color, self.color_components),
        ):
            if array is not None and len(array) != n * width:
                raise MalformedDataError(
                    f"{name} has {len(array)} values, expected {n * width}"
                )

        if self.color is not None and self.color_components not in (3, 4):
            raise MalformedDataError(
                f"color must have 3 or 4 components, got {self.color_components}"
            )

        if self.indices is not None and len(self.indices):
            top = int(self.indices.max())
            if top >= n:
                raise MalformedDataError(
                    f"index {top} out of range for {n} vertices"
                )

    def interleave(self) -> Tuple[bytes, VertexLayout]:
        """Pack attributes into one interleaved float32 buffer."""
        n = self.vertex_count
        columns: List[np.ndarray] = [self.position.reshape(n, 3)]
        names = ["in_pos"]
        formats = ["3f"]

        if self.normal is not None:
            columns.append(self.normal.reshape(n, 3))
            names.append("in_normal")
            formats.append("3f")
        if self.uv is not None:
            columns.append(self.uv.reshape(n, 2))
            names.append("in_uv")
            formats.append("2f")
        if self.color is not None:
            c = self.color_components
            columns.append(self.color.reshape(n, c))
            names.append("in_color")
            formats.append(f"{c}f")

        packed = np.hstack(columns).astype("<f4", copy=False)
        stride = packed.shape[1] * 4
        layout = VertexLayout(
            attributes=names, format=" ".join(formats), stride_bytes=stride
        )
        return packed.tobytes(), layout


@dataclass(frozen=True, slots=True)
class DecodedMesh:
    """One mesh produced by a decode call. The core does not retain it."""

    kind: ClassVar[AssetKind] = AssetKind.MESH

    attributes: VertexAttributeSet
    name: str
    material: str
    asset_id: AssetId = AssetId(0)
    draw_mode: DrawMode = DrawMode.TRIANGLES


@dataclass(frozen=True, slots=True)
class PixelBuffer:
    """
    Row-major RGBA pixels.

    data is uint8 for RGBA8 and float32 for RGBA32F, with
    len(data) == width * height * channels.
    """

    kind: ClassVar[AssetKind] = AssetKind.TEXTURE

    width: int
    height: int
    data: np.ndarray
    format: PixelFormat
    channels: int = 4
    name: str = ""
    gamma: float = 1.0
    exposure: float = 1.0

    def __post_init__(self) -> None:
        expected = self.width * self.height * self.channels
        if self.data.size != expected:
            raise MalformedDataError(
                f"pixel data has {self.data.size} values, expected {expected}"
            )

    @property
    def is_hdr(self) -> bool:
        return self.format is PixelFormat.RGBA32F

    def texel(self, x: int, y: int) -> Tuple[float, ...]:
        i = (y * self.width + x) * self.channels
        return tuple(self.data[i : i + self.channels].tolist())

    def flipped_y(self) -> PixelBuffer:
        rows = self.data.reshape(self.height, self.width * self.channels)
        return replace(self, data=rows[::-1].reshape(-1).copy())


@dataclass(slots=True)
class SceneNode:
    """A node in a decoded glTF hierarchy."""

    name: str = ""
    mesh: Optional[DecodedMesh] = None
    children: List[SceneNode] = field(default_factory=list)

    def add(self, child: SceneNode) -> None:
        self.children.append(child)

    def copy(self) -> SceneNode:
        """Deep copy of the node tree. Geometry is shared, not copied."""
        return SceneNode(
            name=self.name,
            mesh=self.mesh,
            children=[child.copy() for child in self.children],
        )

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True, slots=True)
class GltfAsset:
    """
    Result of decoding a glTF document.

    scene is the default scene (or the first, or an empty root). meshes
    holds the shared geometry for every primitive that was built.
    """

    kind: ClassVar[AssetKind] = AssetKind.SCENE

    scene: SceneNode
    scenes: List[SceneNode]
    nodes: List[SceneNode]
    meshes: List[DecodedMesh]


@dataclass(frozen=True, slots=True)
class LoadingProgress:
    """Bytes loaded so far out of total (total may be 0 if unknown)."""

    loaded: int
    total: int

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 1.0
        return min(1.0, max(0.0, self.loaded / self.total))


DecodedAsset = Union[DecodedMesh, PixelBuffer, GltfAsset]
