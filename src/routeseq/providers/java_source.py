"""Text helpers for Java sources: offset/position mapping and comment/string masking."""
from __future__ import annotations

import bisect
from typing import Optional

from routeseq.domain.models import Position, SourceRange


class SourceDocument:
    """Immutable text of one file, addressable by line/character ranges."""

    def __init__(self, file: str, text: str) -> None:
        self.file = file
        self.text = text
        self._line_starts = [0]
        for i, ch in enumerate(text):
            if ch == "\n":
                self._line_starts.append(i + 1)

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def position_at(self, offset: int) -> Position:
        offset = max(0, min(offset, len(self.text)))
        line = bisect.bisect_right(self._line_starts, offset) - 1
        return Position(line=line, character=offset - self._line_starts[line])

    def offset_at(self, pos: Position) -> int:
        if pos.line >= len(self._line_starts):
            return len(self.text)
        start = self._line_starts[pos.line]
        line_end = self._line_end(pos.line)
        return min(start + pos.character, line_end)

    def range_of(self, start: int, end: int) -> SourceRange:
        return SourceRange(start=self.position_at(start), end=self.position_at(end))

    def get_text(self, rng: Optional[SourceRange] = None) -> str:
        if rng is None:
            return self.text
        return self.text[self.offset_at(rng.start) : self.offset_at(rng.end)]

    def line_at(self, line: int) -> str:
        if line < 0 or line >= len(self._line_starts):
            raise IndexError(f"line {line} out of range for {self.file}")
        return self.text[self._line_starts[line] : self._line_end(line)]

    def lines_text(self, first: int, last: int) -> str:
        """Whole lines ``first..last`` (inclusive), clamped to the document."""
        first = max(0, first)
        last = min(last, self.line_count - 1)
        if last < first:
            return ""
        return self.text[self._line_starts[first] : self._line_end(last)]

    def _line_end(self, line: int) -> int:
        if line + 1 < len(self._line_starts):
            return self._line_starts[line + 1] - 1
        return len(self.text)


def mask_java(text: str) -> str:
    """
    Blank out comments and string/char literals, keeping offsets and newlines.

    The result has the same length as ``text`` so offsets found in the masked
    copy are valid in the original.
    """
    out = list(text)
    n = len(text)
    i = 0

    def blank(a: int, b: int) -> None:
        for k in range(a, min(b, n)):
            if out[k] != "\n":
                out[k] = " "

    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""
        if ch == "/" and nxt == "/":
            end = text.find("\n", i)
            end = n if end == -1 else end
            blank(i, end)
            i = end
        elif ch == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            blank(i, end)
            i = end
        elif text.startswith('"""', i):
            end = text.find('"""', i + 3)
            end = n if end == -1 else end + 3
            blank(i, end)
            i = end
        elif ch in "\"'":
            j = i + 1
            while j < n and text[j] != ch and text[j] != "\n":
                j += 2 if text[j] == "\\" else 1
            end = min(j + 1, n)
            blank(i, end)
            i = end
        else:
            i += 1
    return "".join(out)


def match_bracket(src: str, open_idx: int, limit: Optional[int] = None) -> int:
    """Index of the bracket closing the one at ``open_idx`` (in masked text), or -1."""
    pairs = {"(": ")", "{": "}", "[": "]", "<": ">"}
    opener = src[open_idx]
    closer = pairs[opener]
    end = len(src) if limit is None else limit
    depth = 0
    for k in range(open_idx, end):
        c = src[k]
        if c == opener:
            depth += 1
        elif c == closer:
            depth -= 1
            if depth == 0:
                return k
    return -1
