# finch/assets/resolver.py
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional

from finch.assets.datauri import is_data_uri
from finch.assets.errors import MalformedDataError

# resolve(uri, base_path) -> bytes. base_path, when given, ends with '/'.
Resolver = Callable[[str, Optional[str]], Awaitable[bytes]]


def normalize_path(path: str) -> str:
    return path.replace("\\", "/")


def base_path_of(path: str) -> Optional[str]:
    """Directory part of path with a trailing slash, or None."""
    path = normalize_path(path)
    cut = path.rfind("/")
    if cut <= 0:
        return None
    return path[: cut + 1]


def join_uri(uri: str, base_path: Optional[str]) -> str:
    if not base_path or is_data_uri(uri) or uri.startswith("/") or "://" in uri:
        return uri
    if not base_path.endswith("/"):
        base_path += "/"
    return base_path + uri


class DirectoryResolver:
    """
    Resolves relative URIs against a root directory.

    Reads run in a worker thread so the event loop never blocks on disk.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, uri: str, base_path: Optional[str] = None) -> Path:
        rel = join_uri(normalize_path(uri), base_path)
        full = (self.root / rel.lstrip("/")).resolve()
        root = self.root.resolve()
        if full != root and root not in full.parents:
            raise MalformedDataError(f"URI escapes asset root: {uri}")
        return full

    async def __call__(self, uri: str, base_path: Optional[str] = None) -> bytes:
        return await asyncio.to_thread(self.path_for(uri, base_path).read_bytes)
