import asyncio
import copy
import json
import logging

import pytest

from finch.assets.cubemap import CubeFace
from finch.assets.errors import (
    MalformedDataError,
    UnknownFormatError,
    UnsupportedFeatureError,
)
from finch.assets.resolver import DirectoryResolver
from finch.assets.server import AssetServer
from finch.assets.settings import LoaderSettings
from finch.assets.types import (
    AssetKind,
    DecodedMesh,
    GltfAsset,
    LoadingProgress,
    PixelFormat,
)
from tests.conftest import build_hdr, png_bytes

OBJ_TRIANGLE = b"v 0 0 0\nv 1 0 0\nv 0 1 0\nf 1 2 3\n"


@pytest.fixture
def server(tmp_path):
    server = AssetServer(DirectoryResolver(tmp_path), LoaderSettings(cube_face_size=4))
    yield server
    server.close()


def test_asset_server_loads_obj(tmp_path, server):
    (tmp_path / "tri.obj").write_bytes(OBJ_TRIANGLE)

    mesh = asyncio.run(server.load("tri.obj"))

    assert isinstance(mesh, DecodedMesh)
    assert mesh.kind is AssetKind.MESH
    assert mesh.attributes.vertex_count == 3


def test_asset_server_fetches_external_gltf_buffers(tmp_path, server, triangle_gltf_doc):
    doc, data = triangle_gltf_doc
    doc = copy.deepcopy(doc)
    doc["buffers"][0]["uri"] = "tri.bin"

    models = tmp_path / "models"
    models.mkdir()
    (models / "tri.gltf").write_text(json.dumps(doc))
    (models / "tri.bin").write_bytes(data)

    updates = []
    asset = asyncio.run(server.load("models\\tri.gltf", progress=updates.append))

    assert isinstance(asset, GltfAsset)
    assert asset.meshes[0].attributes.index_count == 3
    assert updates == [LoadingProgress(len(data), len(data))]


def test_asset_server_load_many(tmp_path, server):
    (tmp_path / "a.obj").write_bytes(OBJ_TRIANGLE)
    (tmp_path / "b.png").write_bytes(png_bytes(2, 2))

    mesh, image = asyncio.run(server.load_many(["a.obj", "b.png"]))

    assert mesh.kind is AssetKind.MESH
    assert image.kind is AssetKind.TEXTURE


def test_asset_server_load_texture_rejects_meshes(tmp_path, server):
    (tmp_path / "a.obj").write_bytes(OBJ_TRIANGLE)
    with pytest.raises(UnsupportedFeatureError):
        asyncio.run(server.load_texture("a.obj"))


def test_asset_server_equirect_cubemap(tmp_path, server):
    pixels = [(128, 64, 32, 129)] * (8 * 4)
    (tmp_path / "sky.hdr").write_bytes(build_hdr(8, 4, pixels))

    cube = asyncio.run(server.load_cubemap("sky.hdr"))
    assert cube.size == 4
    assert cube.format is PixelFormat.RGBA32F
    assert cube.face(CubeFace.POSITIVE_Z).texel(0, 0) == (1.0, 0.5, 0.25, 1.0)

    cube = asyncio.run(server.load_cubemap("sky.hdr", face_size=2))
    assert cube.size == 2


def test_asset_server_cube_faces(tmp_path, server):
    sky = tmp_path / "sky"
    sky.mkdir()
    names = ["px", "nx", "py", "ny", "pz", "nz"]
    for i, name in enumerate(names):
        (sky / f"{name}.png").write_bytes(png_bytes(2, 2, color=(i, 0, 0)))

    updates = []
    cube = asyncio.run(
        server.load_cube_faces([f"sky/{n}.png" for n in names], progress=updates.append)
    )

    assert cube.name == "sky/cubemap"
    assert cube.size == 2
    assert cube.format is PixelFormat.RGBA8
    assert [cube.face(f).texel(0, 0)[0] for f in CubeFace] == list(range(6))
    assert updates == [LoadingProgress(n, 6) for n in range(1, 7)]


def test_asset_server_cube_faces_needs_six(server):
    with pytest.raises(ValueError):
        asyncio.run(server.load_cube_faces(["a.png"] * 5))


def test_asset_server_logs_and_reraises(tmp_path, server, caplog):
    with caplog.at_level(logging.ERROR, logger="finch"):
        with pytest.raises(FileNotFoundError):
            asyncio.run(server.load("missing.obj"))

    assert "Failed to load missing.obj" in caplog.text


def test_directory_resolver_stays_inside_root(tmp_path):
    resolver = DirectoryResolver(tmp_path / "assets")
    with pytest.raises(MalformedDataError):
        resolver.path_for("../secret.txt")
    assert resolver.path_for("b.bin", "models/") == (tmp_path / "assets" / "models" / "b.bin").resolve()


def test_asset_server_context_manager(tmp_path):
    (tmp_path / "a.obj").write_bytes(OBJ_TRIANGLE)
    with AssetServer(DirectoryResolver(tmp_path)) as server:
        mesh = asyncio.run(server.load("a.obj"))
    assert mesh.attributes.vertex_count == 3
    with pytest.raises(RuntimeError):
        server._executor.submit(print)


def test_asset_server_unknown_extension_is_not_sniffed(tmp_path, server):
    (tmp_path / "model.xyz").write_bytes(png_bytes(1, 1))
    with pytest.raises(UnknownFormatError):
        asyncio.run(server.load("model.xyz"))
