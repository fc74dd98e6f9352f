# finch/assets/formats.py
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from finch.assets.errors import UnknownFormatError
from finch.assets.importers.base import AssetImporter
from finch.assets.importers.collada import ColladaImporter
from finch.assets.importers.draco import DracoJsonImporter
from finch.assets.importers.exr import ExrImporter, is_exr
from finch.assets.importers.fbx import BINARY_MAGIC as FBX_BINARY_MAGIC
from finch.assets.importers.fbx import FbxImporter
from finch.assets.importers.gltf import GLB_MAGIC, GltfImporter
from finch.assets.importers.hdr import HdrImporter
from finch.assets.importers.obj import ObjImporter
from finch.assets.importers.stl import StlImporter, is_binary_stl
from finch.assets.importers.texture import (
    ImageFormat,
    TextureImporter,
    detect_image_format,
)
from finch.assets.resolver import normalize_path
from finch.assets.types import DecodedAsset


class AssetFormat(str, Enum):
    GLTF = "gltf"
    OBJ = "obj"
    STL = "stl"
    COLLADA = "collada"
    FBX = "fbx"
    DRACO = "draco"
    HDR = "hdr"
    EXR = "exr"
    IMAGE = "image"


# Importers are stateless, one shared instance per format.
_IMPORTERS: Dict[AssetFormat, AssetImporter] = {
    AssetFormat.GLTF: GltfImporter(),
    AssetFormat.OBJ: ObjImporter(),
    AssetFormat.STL: StlImporter(),
    AssetFormat.COLLADA: ColladaImporter(),
    AssetFormat.FBX: FbxImporter(),
    AssetFormat.DRACO: DracoJsonImporter(),
    AssetFormat.HDR: HdrImporter(),
    AssetFormat.EXR: ExrImporter(),
    AssetFormat.IMAGE: TextureImporter(),
}

EXTENSIONS: Dict[str, AssetFormat] = {
    ext: fmt for fmt, importer in _IMPORTERS.items() for ext in importer.extensions
}


def extension_of(path: str) -> str:
    name = normalize_path(path).rsplit("/", 1)[-1]
    # query strings and fragments never carry the extension
    for sep in ("?", "#"):
        name = name.split(sep, 1)[0]
    dot = name.rfind(".")
    return name[dot:].lower() if dot > 0 else ""


def sniff_format(data: bytes) -> Optional[AssetFormat]:
    """Best guess from leading magic bytes, or None."""
    head = data[:32]
    if head.startswith(GLB_MAGIC):
        return AssetFormat.GLTF
    if is_exr(head):
        return AssetFormat.EXR
    if head.startswith((b"#?RADIANCE", b"#?RGBE")):
        return AssetFormat.HDR
    if head.startswith(FBX_BINARY_MAGIC) or head.lstrip().startswith(b"; FBX"):
        return AssetFormat.FBX
    if detect_image_format(data) is not ImageFormat.UNKNOWN:
        return AssetFormat.IMAGE
    if is_binary_stl(data):
        return AssetFormat.STL
    return None


def detect_format(path: str, data: Optional[bytes] = None) -> AssetFormat:
    """
    Format from the (case-insensitive) file extension. A path with no
    extension at all falls back to sniffing the leading bytes of data.

    Raises:
        UnknownFormatError: if neither identifies a supported format.
    """
    ext = extension_of(path)
    fmt = EXTENSIONS.get(ext)
    if not ext and data is not None:
        fmt = sniff_format(data)
    if fmt is None:
        raise UnknownFormatError(
            f"No importer for {ext or 'files without an extension'}", path=path
        )
    return fmt


def importer_for(fmt: AssetFormat) -> AssetImporter:
    return _IMPORTERS[AssetFormat(fmt)]


def decode_asset(path: str, data: bytes) -> DecodedAsset:
    """
    Decode in the calling thread. glTF documents must be self-contained.
    """
    return importer_for(detect_format(path, data)).decode(data, path)
