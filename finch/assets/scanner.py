# finch/assets/scanner.py
"""
Cursor scanners for loosely structured text formats.

Neither scanner is a real parser. TagScanner walks XML-ish markup
(COLLADA) one tag type at a time, and FbxScanner walks FBX ASCII node
syntax. Both move an explicit offset forward through the text, so each
lookup is a single linear pass bounded by [start, end).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from finch.assets.errors import MalformedDataError
from finch.assets.text import split_numbers

# Only ever applied to the text of one opening tag.
_ATTRIBUTE = re.compile(
    r"""([A-Za-z_][\w:.\-]*)\s*=\s*(?:"([^"]*)"|'([^']*)')"""
)


def parse_attributes(header: str) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    for m in _ATTRIBUTE.finditer(header):
        value = m.group(2) if m.group(2) is not None else m.group(3)
        attrs[m.group(1)] = value
    return attrs


@dataclass(frozen=True, slots=True)
class Element:
    """
    One tagged block. body_start == body_end for self-closing tags.
    end is the offset just past the closing tag.
    """

    tag: str
    attrs: Dict[str, str]
    start: int
    body_start: int
    body_end: int
    end: int

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attrs.get(name, default)


class TagScanner:
    def __init__(self, text: str) -> None:
        self.text = text

    def _limit(self, end: Optional[int]) -> int:
        return len(self.text) if end is None else min(end, len(self.text))

    def elements(
        self, tag: str, start: int = 0, end: Optional[int] = None
    ) -> Iterator[Element]:
        """
        Yield every <tag> element in [start, end), in document order.

        Same-name nesting is not supported: scanning resumes after the
        first matching close tag.
        """
        text = self.text
        limit = self._limit(end)
        opener = "<" + tag
        closer = "</" + tag + ">"
        pos = start

        while pos < limit:
            i = text.find(opener, pos, limit)
            if i == -1:
                return

            j = i + len(opener)
            if j >= limit:
                return
            ch = text[j]
            if not (ch.isspace() or ch == ">" or ch == "/"):
                # <p> must not match <param>
                pos = j
                continue

            gt = text.find(">", j, limit)
            if gt == -1:
                raise MalformedDataError(f"unterminated <{tag}> at offset {i}")

            header = text[j:gt]
            attrs = parse_attributes(header)

            if header.rstrip().endswith("/"):
                yield Element(tag, attrs, i, gt + 1, gt + 1, gt + 1)
                pos = gt + 1
                continue

            close = text.find(closer, gt + 1, limit)
            if close == -1:
                raise MalformedDataError(
                    f"<{tag}> at offset {i} has no closing tag"
                )

            yield Element(tag, attrs, i, gt + 1, close, close + len(closer))
            pos = close + len(closer)

    def first(
        self, tag: str, start: int = 0, end: Optional[int] = None
    ) -> Optional[Element]:
        return next(self.elements(tag, start, end), None)

    def body(self, element: Element) -> str:
        return self.text[element.body_start : element.body_end]

    def children(self, parent: Element, tag: str) -> Iterator[Element]:
        return self.elements(tag, parent.body_start, parent.body_end)


class FbxScanner:
    """Cursor over FBX ASCII (6.x and 7.x) node syntax."""

    def __init__(self, text: str) -> None:
        self.text = text

    def _limit(self, end: Optional[int]) -> int:
        return len(self.text) if end is None else min(end, len(self.text))

    def find_key(
        self, name: str, start: int = 0, end: Optional[int] = None
    ) -> Optional[int]:
        """Offset just past the first 'name:' that starts a word, or None."""
        text = self.text
        limit = self._limit(end)
        token = name + ":"
        pos = start

        while True:
            i = text.find(token, pos, limit)
            if i == -1:
                return None
            if i > 0 and (text[i - 1].isalnum() or text[i - 1] == "_"):
                pos = i + 1
                continue
            return i + len(token)

    def find_block(
        self, name: str, start: int = 0, end: Optional[int] = None
    ) -> Optional[Tuple[int, int]]:
        """
        Body extent (after '{', at the matching '}') of the first node
        named name.
        """
        limit = self._limit(end)
        after = self.find_key(name, start, limit)
        if after is None:
            return None

        brace = self.text.find("{", after, limit)
        if brace == -1:
            return None

        depth = 0
        text = self.text
        for i in range(brace, limit):
            ch = text[i]
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return brace + 1, i

        raise MalformedDataError(f"unbalanced braces in FBX node {name!r}")

    def read_array(
        self, name: str, start: int = 0, end: Optional[int] = None
    ) -> Optional[List[str]]:
        """
        Raw number tokens of an array property, or None if absent.

        7.x form:  Name: *N { a: v,v,v }
        6.x form:  Name: v,v,v  with continuation lines starting with ','
        """
        text = self.text
        limit = self._limit(end)
        p = self.find_key(name, start, limit)
        if p is None:
            return None

        while p < limit and text[p] in " \t":
            p += 1

        if p < limit and text[p] == "*":
            brace = text.find("{", p, limit)
            if brace == -1:
                raise MalformedDataError(f"FBX array {name!r} has no body")
            close = text.find("}", brace, limit)
            if close == -1:
                raise MalformedDataError(f"FBX array {name!r} is unterminated")

            body_start = self.find_key("a", brace + 1, close)
            if body_start is None:
                return []
            return split_numbers(text[body_start:close])

        return split_numbers(self._read_legacy_values(p, limit))

    def _read_legacy_values(self, p: int, limit: int) -> str:
        text = self.text
        parts: List[str] = []
        eol = text.find("\n", p, limit)
        if eol == -1:
            eol = limit
        parts.append(text[p:eol])

        while eol < limit:
            nxt = text.find("\n", eol + 1, limit)
            if nxt == -1:
                nxt = limit
            line = text[eol + 1 : nxt].strip()
            if not line.startswith(","):
                break
            parts.append(line)
            eol = nxt

        return " ".join(parts)

    def model_name(self, start: int = 0, end: Optional[int] = None) -> Optional[str]:
        """Name from the first "Model::name" reference."""
        text = self.text
        limit = self._limit(end)
        marker = '"Model::'
        i = text.find(marker, start, limit)
        if i == -1:
            return None
        j = text.find('"', i + len(marker), limit)
        if j == -1:
            return None
        return text[i + len(marker) : j]
