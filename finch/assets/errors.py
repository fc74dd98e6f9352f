# finch/assets/errors.py
from __future__ import annotations

from typing import Optional


class AssetError(ValueError):
    """
    Base class for every decode failure.

    Errors are terminal for the decode call that raised them. The offending
    file path is attached by the importer on the way out.
    """

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def with_path(self, path: str) -> AssetError:
        if self.path is None:
            self.path = path
        return self

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} [{self.path}]"
        return self.message


class TruncatedBufferError(AssetError):
    """Read past the end of a buffer."""


class InvalidMagicError(AssetError):
    """File signature does not match the expected format."""


class InvalidHeaderError(AssetError):
    """Header present but unusable (bad dimensions, bad JSON, ...)."""


class MissingElementError(AssetError):
    """A required structural element is absent."""


class MissingAttributeError(AssetError):
    """A required vertex attribute is absent."""


class UnsupportedFeatureError(AssetError):
    """Valid input using a feature this decoder does not implement."""


class UnsupportedComponentTypeError(UnsupportedFeatureError):
    """glTF accessor component type not supported for this use."""


class UnknownFormatError(AssetError):
    """No decoder registered for the file extension."""


class EmptyGeometryError(AssetError):
    """Decode produced zero vertices."""


class ScanlineOrderError(AssetError):
    """EXR scanline y does not match its position in the offset table."""


class MalformedDataError(AssetError):
    """Structurally parseable input with inconsistent or unparsable values."""


__all__ = [
    "AssetError",
    "TruncatedBufferError",
    "InvalidMagicError",
    "InvalidHeaderError",
    "MissingElementError",
    "MissingAttributeError",
    "UnsupportedFeatureError",
    "UnsupportedComponentTypeError",
    "UnknownFormatError",
    "EmptyGeometryError",
    "ScanlineOrderError",
    "MalformedDataError",
]
