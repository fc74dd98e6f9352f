# finch/assets/server.py
from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from finch.assets.cubemap import CubeMap, equirect_to_cubemap
from finch.assets.errors import UnsupportedFeatureError
from finch.assets.formats import detect_format, importer_for
from finch.assets.importers.base import ImportContext, ProgressCallback
from finch.assets.resolver import Resolver, base_path_of, normalize_path
from finch.assets.settings import LoaderSettings
from finch.assets.types import DecodedAsset, LoadingProgress, PixelBuffer
from finch.logger import SERVER_FORMAT, get_logger, setup_logging

logger = get_logger(__name__)


class AssetServer:
    """
    Fetches asset bytes through a resolver and decodes them on a worker
    pool. Nothing is cached: every load returns fresh objects.
    """

    def __init__(
        self, resolver: Resolver, settings: Optional[LoaderSettings] = None
    ) -> None:
        self.resolver = resolver
        self.settings = settings or LoaderSettings()
        if self.settings.log_level is not None:
            setup_logging(self.settings.log_level, fmt=SERVER_FORMAT)

        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_workers,
            thread_name_prefix=self.settings.thread_name_prefix,
        )

    async def load(
        self, path: str, progress: Optional[ProgressCallback] = None
    ) -> DecodedAsset:
        """
        Fetch and decode one asset. Errors are logged and re-raised.
        """
        path = normalize_path(path)
        try:
            data = await self.resolver(path, None)
            fmt = detect_format(path, data)
            context = ImportContext(
                resolver=self.resolver,
                base_path=base_path_of(path),
                progress=progress,
                executor=self._executor,
            )
            asset = await importer_for(fmt).load(data, path, context)
        except Exception as e:
            logger.error("Failed to load %s: %s", path, e)
            raise

        logger.debug("Loaded %s as %s", path, asset.kind.value)
        return asset

    async def load_many(self, paths: Sequence[str]) -> List[DecodedAsset]:
        return list(await asyncio.gather(*(self.load(p) for p in paths)))

    async def load_texture(self, path: str) -> PixelBuffer:
        asset = await self.load(path)
        if not isinstance(asset, PixelBuffer):
            raise UnsupportedFeatureError(
                f"{asset.kind.value} asset is not an image", path=path
            )
        return asset

    async def load_cubemap(self, path: str, face_size: Optional[int] = None) -> CubeMap:
        """Project an equirectangular image onto six cube faces."""
        image = await self.load_texture(path)
        size = face_size or self.settings.cube_face_size
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, equirect_to_cubemap, image, size
        )

    async def load_cube_faces(
        self, paths: Sequence[str], progress: Optional[ProgressCallback] = None
    ) -> CubeMap:
        """
        Build a cube map from six images given as [+X, -X, +Y, -Y, +Z, -Z].
        progress receives (faces loaded, 6) as each face completes.
        """
        if len(paths) != 6:
            raise ValueError("cube map requires exactly 6 face images")

        done = 0

        async def face(path: str) -> PixelBuffer:
            nonlocal done
            image = await self.load_texture(path)
            done += 1
            if progress is not None:
                progress(LoadingProgress(done, len(paths)))
            return image

        faces = await asyncio.gather(*(face(p) for p in paths))
        directory = base_path_of(normalize_path(paths[0])) or ""
        return CubeMap.from_faces(faces, name=f"{directory}cubemap")

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> AssetServer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
