# finch/assets/cubemap.py
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence, Tuple

import numpy as np

from finch.assets.errors import InvalidHeaderError
from finch.assets.types import PixelBuffer, PixelFormat


class CubeFace(IntEnum):
    """Cube map faces in upload order."""

    POSITIVE_X = 0
    NEGATIVE_X = 1
    POSITIVE_Y = 2
    NEGATIVE_Y = 3
    POSITIVE_Z = 4
    NEGATIVE_Z = 5


def _basis(face: CubeFace, u, v, one):
    if face is CubeFace.POSITIVE_X:
        return one, -v, -u
    if face is CubeFace.NEGATIVE_X:
        return -one, -v, u
    if face is CubeFace.POSITIVE_Y:
        return u, one, v
    if face is CubeFace.NEGATIVE_Y:
        return u, -one, -v
    if face is CubeFace.POSITIVE_Z:
        return u, -v, one
    return -u, -v, -one


def face_direction(face: CubeFace, u: float, v: float) -> Tuple[float, float, float]:
    """Unit direction through face coordinate (u, v), both in [-1, 1]."""
    x, y, z = _basis(CubeFace(face), u, v, 1.0)
    length = math.sqrt(x * x + y * y + z * z)
    return x / length, y / length, z / length


def direction_to_equirect(direction: Sequence[float]) -> Tuple[float, float]:
    """Equirectangular (U, V) in [0, 1] for a unit direction."""
    x, y, z = direction
    phi = math.atan2(z, x)
    theta = math.acos(max(-1.0, min(1.0, y)))
    return phi / (2 * math.pi) + 0.5, theta / math.pi


def _face_coords(size: int) -> np.ndarray:
    if size == 1:
        return np.zeros(1)
    return np.arange(size, dtype=np.float64) / (size - 1) * 2.0 - 1.0


def equirect_to_cube_face(image: PixelBuffer, face: CubeFace, size: int) -> PixelBuffer:
    """
    Nearest-sample one size x size face out of an equirectangular image.
    The storage type of the source pixels is kept.
    """
    if size < 1:
        raise ValueError("cube face size must be positive")

    t = _face_coords(size)
    u, v = np.meshgrid(t, t)  # u varies along x, v along y
    x, y, z = _basis(CubeFace(face), u, v, np.ones_like(u))
    length = np.sqrt(x * x + y * y + z * z)
    x, y, z = x / length, y / length, z / length

    phi = np.arctan2(z, x)
    theta = np.arccos(np.clip(y, -1.0, 1.0))
    eq_u = phi / (2 * np.pi) + 0.5
    eq_v = theta / np.pi

    w, h = image.width, image.height
    src_x = np.clip((eq_u * (w - 1)).astype(np.int64), 0, w - 1)
    src_y = np.clip((eq_v * (h - 1)).astype(np.int64), 0, h - 1)

    source = image.data.reshape(h, w, image.channels)
    pixels = source[src_y, src_x].reshape(-1).copy()

    return PixelBuffer(
        width=size,
        height=size,
        data=pixels,
        format=image.format,
        channels=image.channels,
        name=image.name,
        gamma=image.gamma,
        exposure=image.exposure,
    )


@dataclass(frozen=True, slots=True)
class CubeMap:
    """Six square faces of equal size, indexed by CubeFace."""

    size: int
    faces: Tuple[PixelBuffer, ...]
    name: str = ""

    @property
    def format(self) -> PixelFormat:
        return self.faces[0].format

    def face(self, face: CubeFace) -> PixelBuffer:
        return self.faces[CubeFace(face)]

    @classmethod
    def from_faces(cls, faces: Sequence[PixelBuffer], name: str = "") -> CubeMap:
        """
        Raises:
            InvalidHeaderError: unless there are six square faces sharing one
                size and one pixel format.
        """
        if len(faces) != len(CubeFace):
            raise InvalidHeaderError(
                f"cube map needs {len(CubeFace)} faces, got {len(faces)}"
            )
        size = faces[0].width
        for face, buffer in zip(CubeFace, faces):
            if buffer.width != size or buffer.height != size:
                raise InvalidHeaderError(
                    f"{face.name} is {buffer.width}x{buffer.height}, "
                    f"expected {size}x{size}"
                )
            if buffer.format is not faces[0].format:
                raise InvalidHeaderError(
                    f"{face.name} is {buffer.format.value}, "
                    f"expected {faces[0].format.value}"
                )
        return cls(size=size, faces=tuple(faces), name=name)


def equirect_to_cubemap(image: PixelBuffer, size: int) -> CubeMap:
    faces = [equirect_to_cube_face(image, face, size) for face in CubeFace]
    return CubeMap.from_faces(faces, name=image.name)
