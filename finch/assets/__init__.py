# finch/assets/__init__.py
from finch.assets.cubemap import (
    CubeFace,
    CubeMap,
    equirect_to_cube_face,
    equirect_to_cubemap,
)
from finch.assets.errors import AssetError
from finch.assets.formats import (
    AssetFormat,
    decode_asset,
    detect_format,
    importer_for,
)
from finch.assets.handle import AssetId
from finch.assets.resolver import DirectoryResolver, Resolver
from finch.assets.server import AssetServer
from finch.assets.settings import LoaderSettings
from finch.assets.types import (
    AssetKind,
    DecodedAsset,
    DecodedMesh,
    DrawMode,
    GltfAsset,
    LoadingProgress,
    PixelBuffer,
    PixelFormat,
    SceneNode,
    VertexAttributeSet,
    VertexLayout,
)

__all__ = [
    "AssetServer",
    "AssetId",
    "AssetError",
    "AssetFormat",
    "AssetKind",
    "CubeFace",
    "CubeMap",
    "DecodedAsset",
    "DecodedMesh",
    "DirectoryResolver",
    "DrawMode",
    "GltfAsset",
    "LoaderSettings",
    "LoadingProgress",
    "PixelBuffer",
    "PixelFormat",
    "Resolver",
    "SceneNode",
    "VertexAttributeSet",
    "VertexLayout",
    "decode_asset",
    "detect_format",
    "equirect_to_cube_face",
    "equirect_to_cubemap",
    "importer_for",
]
