# finch/assets/importers/draco.py
from __future__ import annotations

import json
from typing import Any, Dict, Optional

import numpy as np

from finch.assets.errors import (
    InvalidHeaderError,
    MalformedDataError,
    MissingAttributeError,
)
from finch.assets.handle import asset_id_for
from finch.assets.importers.base import AssetImporter
from finch.assets.types import DecodedMesh, VertexAttributeSet
from finch.logger import get_logger

logger = get_logger(__name__)

DEFAULT_NAME = "DracoMesh"
DEFAULT_MATERIAL = "DracoMaterial"


def _array(doc: Dict[str, Any], key: str, dtype) -> Optional[np.ndarray]:
    value = doc.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise MalformedDataError(f"'{key}' must be an array")
    try:
        return np.asarray(value, dtype=dtype).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise MalformedDataError(f"'{key}' holds non-numeric values") from exc


class DracoJsonImporter(AssetImporter[DecodedMesh]):
    """
    Placeholder interchange JSON standing in for Draco:
    {"positions": [...], "indices": [...], "normals"?, "uvs"?, "name"?,
    "material"?}. Nothing is decompressed.
    """

    extensions = (".drc", ".draco")

    def import_bytes(self, data: bytes, path: str) -> DecodedMesh:
        try:
            doc = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidHeaderError(f"invalid Draco JSON: {exc}") from exc
        if not isinstance(doc, dict):
            raise InvalidHeaderError("Draco JSON root is not an object")

        positions = _array(doc, "positions", np.float32)
        if positions is None or positions.size == 0:
            raise MissingAttributeError("Draco JSON missing positions")

        indices = _array(doc, "indices", np.int64)
        if indices is None or indices.size == 0:
            raise MissingAttributeError("Draco JSON missing indices")
        if indices.min() < 0:
            raise MalformedDataError("Draco JSON has negative indices")

        attributes = VertexAttributeSet(
            position=positions,
            normal=_array(doc, "normals", np.float32),
            uv=_array(doc, "uvs", np.float32),
            indices=indices.astype(np.uint32),
        )
        attributes.validate()

        logger.debug(
            "%s: %d vertices, %d indices",
            path,
            attributes.vertex_count,
            attributes.index_count,
        )

        return DecodedMesh(
            attributes=attributes,
            name=str(doc.get("name") or DEFAULT_NAME),
            material=str(doc.get("material") or DEFAULT_MATERIAL),
            asset_id=asset_id_for(path),
        )
