# finch/assets/geometry.py
from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from finch.assets.errors import MalformedDataError
from finch.assets.types import VertexAttributeSet

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]

# (position index, uv index, normal index); decode-local.
CompositeVertexKey = Tuple[int, Optional[int], Optional[int]]

DEFAULT_UV: Vec2 = (0.0, 0.0)
DEFAULT_NORMAL: Vec3 = (0.0, 0.0, 1.0)


def fan_triangles(count: int) -> Iterator[Tuple[int, int, int]]:
    """Corner triples (0, i, i+1) covering an N-gon; nothing for N < 3."""
    for i in range(1, count - 1):
        yield 0, i, i + 1


def resolve_index(raw: int, size: int) -> int:
    """
    Resolve a 1-based OBJ-style reference to a 0-based index.

    Negative values count back from the end of the array as it is sized
    right now, so -1 is the most recently declared element.
    """
    if raw > 0:
        idx = raw - 1
    elif raw < 0:
        idx = size + raw
    else:
        raise MalformedDataError("index 0 is not a valid reference")

    if not 0 <= idx < size:
        raise MalformedDataError(
            f"reference {raw} out of range for {size} declared elements"
        )
    return idx


def group(flat: Sequence[float], width: int) -> List[Tuple[float, ...]]:
    """Split a flat list into width-sized tuples; a ragged tail is dropped."""
    n = len(flat) // width
    return [tuple(flat[i * width : (i + 1) * width]) for i in range(n)]


class MeshBuilder:
    """
    Deduplicates composite vertex keys into an indexed vertex set.

    The first occurrence of a key appends a new output vertex; later
    occurrences reuse its index.
    """

    def __init__(
        self,
        positions: Sequence[Sequence[float]],
        uvs: Sequence[Sequence[float]] = (),
        normals: Sequence[Sequence[float]] = (),
        *,
        flip_v: bool = True,
    ) -> None:
        self._positions = positions
        self._uvs = uvs
        self._normals = normals
        self._flip_v = flip_v

        self._lookup: Dict[CompositeVertexKey, int] = {}
        self._keys: List[CompositeVertexKey] = []
        self._indices: List[int] = []
        self._has_uv = False
        self._has_normal = False

    @property
    def vertex_count(self) -> int:
        return len(self._keys)

    @property
    def index_count(self) -> int:
        return len(self._indices)

    def vertex(self, key: CompositeVertexKey) -> int:
        idx = self._lookup.get(key)
        if idx is None:
            idx = len(self._keys)
            self._lookup[key] = idx
            self._keys.append(key)
            if key[1] is not None:
                self._has_uv = True
            if key[2] is not None:
                self._has_normal = True
        return idx

    def polygon(self, keys: Sequence[CompositeVertexKey]) -> int:
        """Fan-triangulate a polygon. Returns the number of triangles."""
        if len(keys) < 3:
            return 0
        corners = [self.vertex(k) for k in keys]
        for a, b, c in fan_triangles(len(corners)):
            self._indices.extend((corners[a], corners[b], corners[c]))
        return len(corners) - 2

    def build(self) -> VertexAttributeSet:
        n = len(self._keys)
        position = np.empty((n, 3), dtype=np.float32)
        uv = np.empty((n, 2), dtype=np.float32) if self._has_uv else None
        normal = np.empty((n, 3), dtype=np.float32) if self._has_normal else None

        for i, (p, t, nrm) in enumerate(self._keys):
            position[i] = self._positions[p][:3]
            if uv is not None:
                if t is None:
                    uv[i] = DEFAULT_UV
                else:
                    u, v = self._uvs[t][:2]
                    uv[i] = (u, 1.0 - v) if self._flip_v else (u, v)
            if normal is not None:
                normal[i] = DEFAULT_NORMAL if nrm is None else self._normals[nrm][:3]

        attributes = VertexAttributeSet(
            position=position.reshape(-1),
            normal=None if normal is None else normal.reshape(-1),
            uv=None if uv is None else uv.reshape(-1),
            indices=np.asarray(self._indices, dtype=np.uint32),
        )
        attributes.validate()
        return attributes


def expand_flat(
    positions: Sequence[float] | np.ndarray,
    normals: Optional[Sequence[float] | np.ndarray] = None,
    uvs: Optional[Sequence[float] | np.ndarray] = None,
) -> VertexAttributeSet:
    """Non-deduplicated vertex set with identity indices."""
    position = np.asarray(positions, dtype=np.float32).reshape(-1)
    n = len(position) // 3
    attributes = VertexAttributeSet(
        position=position,
        normal=None if normals is None else np.asarray(normals, dtype=np.float32).reshape(-1),
        uv=None if uvs is None else np.asarray(uvs, dtype=np.float32).reshape(-1),
        indices=np.arange(n, dtype=np.uint32),
    )
    attributes.validate()
    return attributes
