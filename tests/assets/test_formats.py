import json

import pytest

from finch.assets.errors import UnknownFormatError
from finch.assets.formats import (
    AssetFormat,
    decode_asset,
    detect_format,
    extension_of,
    importer_for,
    sniff_format,
)
from finch.assets.importers.gltf import GltfImporter
from finch.assets.importers.hdr import HdrImporter
from finch.assets.types import AssetKind
from tests.conftest import EXR_MAGIC_LE, build_exr, build_glb, build_stl_binary, png_bytes


@pytest.mark.parametrize(
    "path, expected",
    [
        ("scene.gltf", AssetFormat.GLTF),
        ("scene.GLB", AssetFormat.GLTF),
        ("mesh.obj", AssetFormat.OBJ),
        ("part.stl", AssetFormat.STL),
        ("model.dae", AssetFormat.COLLADA),
        ("rig.fbx", AssetFormat.FBX),
        ("shard.drc", AssetFormat.DRACO),
        ("shard.draco", AssetFormat.DRACO),
        ("sky.hdr", AssetFormat.HDR),
        ("sky.pic", AssetFormat.HDR),
        ("sky.exr", AssetFormat.EXR),
        ("albedo.png", AssetFormat.IMAGE),
        ("albedo.JPEG", AssetFormat.IMAGE),
        ("decal.tga", AssetFormat.IMAGE),
        ("dir.v2\\mesh.obj", AssetFormat.OBJ),
        ("mesh.obj?v=3", AssetFormat.OBJ),
    ],
)
def test_detect_format_by_extension(path, expected):
    assert detect_format(path) is expected


@pytest.mark.parametrize("path", ["model.xyz", "README", "archive.tar.gz"])
def test_unknown_extension(path):
    with pytest.raises(UnknownFormatError) as info:
        detect_format(path)
    assert info.value.path == path


def test_extension_of():
    assert extension_of("a/b.c/mesh.OBJ") == ".obj"
    assert extension_of("a/b.c/mesh") == ""
    assert extension_of(".hidden") == ""


def test_sniff_format():
    assert sniff_format(build_glb({"asset": {}})) is AssetFormat.GLTF
    assert sniff_format(build_exr(1, 1, {"R": [[0.0]]})) is AssetFormat.EXR
    assert sniff_format(build_exr(1, 1, {"R": [[0.0]]}, magic=EXR_MAGIC_LE)) is AssetFormat.EXR
    assert sniff_format(b"#?RADIANCE\n") is AssetFormat.HDR
    assert sniff_format(png_bytes(1, 1)) is AssetFormat.IMAGE
    assert sniff_format(build_stl_binary([((0, 0, 1), (0, 0, 0), (1, 0, 0), (0, 1, 0))])) is AssetFormat.STL
    assert sniff_format(b"plain text") is None


def test_missing_extension_falls_back_to_magic():
    assert detect_format("downloads/sky", b"#?RADIANCE\n") is AssetFormat.HDR
    with pytest.raises(UnknownFormatError):
        detect_format("downloads/blob", b"plain text")


def test_unknown_extension_is_never_sniffed():
    with pytest.raises(UnknownFormatError):
        detect_format("model.xyz", png_bytes(1, 1))
    with pytest.raises(UnknownFormatError):
        decode_asset("model.xyz", b"#?RADIANCE\n")


def test_importer_for_returns_shared_instances():
    assert isinstance(importer_for(AssetFormat.GLTF), GltfImporter)
    assert importer_for("hdr") is importer_for(AssetFormat.HDR)
    assert isinstance(importer_for(AssetFormat.HDR), HdrImporter)


def test_decode_asset_dispatches(triangle_gltf_doc):
    mesh = decode_asset("tri.obj", b"v 0 0 0\nv 1 0 0\nv 0 1 0\nf 1 2 3\n")
    assert mesh.kind is AssetKind.MESH

    image = decode_asset("tex.png", png_bytes(3, 1))
    assert image.kind is AssetKind.TEXTURE

    doc, data = triangle_gltf_doc
    scene = decode_asset("tri.glb", build_glb(doc, data))
    assert scene.kind is AssetKind.SCENE

    draco = decode_asset(
        "a.drc", json.dumps({"positions": [0, 0, 0], "indices": [0, 0, 0]}).encode()
    )
    assert draco.attributes.index_count == 3
