# finch/assets/importers/base.py
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, ClassVar, Generic, Optional, Tuple, TypeVar

from finch.assets.errors import AssetError
from finch.assets.resolver import Resolver, normalize_path
from finch.assets.types import LoadingProgress

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[LoadingProgress], None]


@dataclass(slots=True)
class ImportContext:
    """
    Everything an importer may need beyond the primary bytes.

    executor, when set, receives the CPU-bound decode so the event loop
    stays free; otherwise decode runs inline.
    """

    resolver: Optional[Resolver] = None
    base_path: Optional[str] = None
    progress: Optional[ProgressCallback] = None
    executor: Optional[Executor] = None

    async def run(self, fn: Callable[..., R], *args) -> R:
        if self.executor is None:
            return fn(*args)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, fn, *args)


def stem_of(path: str) -> str:
    name = normalize_path(path).rsplit("/", 1)[-1]
    return name.split(".", 1)[0] if "." in name else name


class AssetImporter(ABC, Generic[T]):
    extensions: ClassVar[Tuple[str, ...]] = ()

    @abstractmethod
    def import_bytes(self, data: bytes, path: str) -> T:
        """
        Decode raw bytes into a CPU-friendly data object.
        Must be thread-safe and keep no state between calls.
        """
        pass

    def decode(self, data: bytes, path: str) -> T:
        """import_bytes with the file path attached to any AssetError."""
        try:
            return self.import_bytes(data, path)
        except AssetError as exc:
            exc.with_path(path)
            raise

    async def load(self, data: bytes, path: str, context: ImportContext) -> T:
        return await context.run(self.decode, data, path)
