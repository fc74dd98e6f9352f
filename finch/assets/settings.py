# finch/assets/settings.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class LoaderSettings:
    """
    Configuration for the AssetServer.
    """

    max_workers: int = 2
    thread_name_prefix: str = "AssetWorker"
    cube_face_size: int = 512
    # When set, the server installs the finch console handler at this level
    log_level: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.cube_face_size < 1:
            raise ValueError("cube_face_size must be positive")
