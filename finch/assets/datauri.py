# finch/assets/datauri.py
from __future__ import annotations

import base64
import binascii

from finch.assets.errors import MalformedDataError

_ALPHABET = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
)


def is_data_uri(uri: str) -> bool:
    return uri[:5].lower() == "data:"


def decode_base64(payload: str) -> bytes:
    """
    Lenient base64: whitespace is ignored, decoding stops at the first '='
    or at the first character outside the alphabet, and a dangling
    sextet that cannot complete a byte is dropped.
    """
    chars = []
    for ch in payload:
        if ch in " \t\r\n":
            continue
        if ch not in _ALPHABET:
            break
        chars.append(ch)

    if len(chars) % 4 == 1:
        chars.pop()
    text = "".join(chars)
    text += "=" * (-len(text) % 4)

    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as exc:
        raise MalformedDataError(f"invalid base64 payload: {exc}") from exc


def decode_data_uri(uri: str) -> bytes:
    """
    Decode data:[<mediatype>][;base64],<payload>.

    Non-base64 payloads are taken verbatim as UTF-8 text.
    """
    if not is_data_uri(uri):
        raise MalformedDataError("not a data URI")

    comma = uri.find(",")
    if comma == -1:
        raise MalformedDataError("data URI has no ',' separator")

    metadata = uri[5:comma]
    payload = uri[comma + 1 :]
    if metadata.lower().endswith(";base64"):
        return decode_base64(payload)
    return payload.encode("utf-8")
