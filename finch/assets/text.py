# finch/assets/text.py
from __future__ import annotations

from typing import Iterator, List, Sequence

from finch.assets.errors import MalformedDataError


def decode_text(data: bytes) -> str:
    """Decode a text asset, tolerating a UTF-8 BOM and stray bytes."""
    if data.startswith(b"\xef\xbb\xbf"):
        data = data[3:]
    return data.decode("utf-8", errors="replace")


def iter_lines(text: str, *, skip_comments: bool = True) -> Iterator[str]:
    """
    Yield stripped, non-empty lines.

    Handles \\n, \\r\\n and bare \\r endings without a regex. Lines whose
    first non-blank character is '#' are dropped when skip_comments is set.
    """
    start = 0
    n = len(text)
    while start < n:
        end = start
        while end < n and text[end] != "\n" and text[end] != "\r":
            end += 1

        line = text[start:end].strip()
        if line and not (skip_comments and line[0] == "#"):
            yield line

        if end < n and text[end] == "\r" and end + 1 < n and text[end + 1] == "\n":
            end += 1
        start = end + 1


def tokens(line: str) -> List[str]:
    """Whitespace-separated fields of one line; runs of blanks and tabs collapse."""
    return line.split()


def parse_float(token: str) -> float:
    try:
        return float(token)
    except ValueError:
        raise MalformedDataError(f"invalid number: {token!r}") from None


def parse_int(token: str) -> int:
    try:
        return int(token)
    except ValueError:
        raise MalformedDataError(f"invalid integer: {token!r}") from None


def parse_floats(
    parts: Sequence[str], count: int, default: float = 0.0
) -> List[float]:
    """
    Parse up to count floats from parts; missing trailing values take the
    default (e.g. an OBJ 'vt u' line without v).
    """
    values = [parse_float(p) for p in parts[:count]]
    while len(values) < count:
        values.append(default)
    return values


def split_numbers(payload: str) -> List[str]:
    """Split a whitespace and/or comma delimited payload into tokens."""
    return payload.replace(",", " ").split()


def parse_float_list(payload: str) -> List[float]:
    return [parse_float(t) for t in split_numbers(payload)]


def parse_int_list(payload: str) -> List[int]:
    out: List[int] = []
    for t in split_numbers(payload):
        try:
            out.append(int(t))
        except ValueError:
            # exporters occasionally write integral values as "3.0"
            value = parse_float(t)
            if not value.is_integer():
                raise MalformedDataError(f"invalid integer: {t!r}") from None
            out.append(int(value))
    return out
