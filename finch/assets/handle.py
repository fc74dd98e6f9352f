# finch/assets/handle.py
import hashlib
from typing import NewType

AssetId = NewType("AssetId", int)  # 64-bit content-derived id


def asset_id_for(path: str, *parts: str) -> AssetId:
    """
    Deterministic id derived from the source path (and optional sub-parts
    such as a primitive index). Same input, same id, across calls and runs.
    """
    key = "\x00".join((path, *parts))
    digest = hashlib.sha256(key.encode()).digest()
    return AssetId(int.from_bytes(digest[:8], "little"))
