from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Optional

from loguru import logger

from routeseq.providers.base import DocumentSymbol, SymbolKind
from routeseq.providers.java_source import SourceDocument, mask_java, match_bracket
from routeseq.repo.scanner import scan_source_files

_IDENT = re.compile(r"[A-Za-z_$][\w$]*")
_TYPE_NAME = re.compile(r"\s+([A-Za-z_$][\w$]*)")
_THROWS = re.compile(r"\s*throws\s+[\w$.<>,\s?\[\]]+")
_DEFAULT_VALUE = re.compile(r"\s*default\b")

_TYPE_KEYWORDS = {
    "class": SymbolKind.CLASS,
    "interface": SymbolKind.INTERFACE,
    "enum": SymbolKind.ENUM,
    "record": SymbolKind.STRUCT,
}

# identifiers that can be followed by "(" without being a declaration
JAVA_KEYWORDS = frozenset(
    {
        "if", "for", "while", "switch", "catch", "synchronized", "return", "new",
        "throw", "super", "this", "try", "do", "else", "case", "assert", "yield",
        "instanceof", "default", "sizeof",
    }
)


def outline_java(doc: SourceDocument) -> list[DocumentSymbol]:
    """
    Build a class/method outline of a Java file without a grammar.

    Comments and literals are masked first, then a brace-matching scan walks
    member level only: type declarations recurse into their bodies, anything
    shaped ``name(...) [throws ...] {`` or ``;`` becomes a method, and blocks,
    initialisers and field values are skipped.
    """
    masked = mask_java(doc.text)
    return _scan_members(doc, masked, 0, len(masked), owner=None)


def _prev_char(src: str, idx: int) -> str:
    k = idx - 1
    while k >= 0 and src[k].isspace():
        k -= 1
    return src[k] if k >= 0 else ""


def _prev_word(src: str, idx: int) -> str:
    k = idx - 1
    while k >= 0 and src[k].isspace():
        k -= 1
    end = k + 1
    while k >= 0 and (src[k].isalnum() or src[k] in "_$"):
        k -= 1
    return src[k + 1 : end]


def _skip_ws(src: str, idx: int, end: int) -> int:
    while idx < end and src[idx].isspace():
        idx += 1
    return idx


def _scan_members(
    doc: SourceDocument, src: str, start: int, end: int, owner: Optional[str]
) -> list[DocumentSymbol]:
    symbols: list[DocumentSymbol] = []
    i = start
    seg_start = start  # first offset of the current member declaration
    seg_assign = False  # saw "=" at member level: we're inside a field initialiser

    def reset(at: int) -> None:
        nonlocal seg_start, seg_assign
        seg_start = at
        seg_assign = False

    while i < end:
        ch = src[i]

        if ch in ";}":
            i += 1
            reset(i)
            continue
        if ch == "{":
            close = match_bracket(src, i, end)
            if close == -1:
                break
            i = close + 1
            if not seg_assign:
                reset(i)
            continue
        if ch == "(":
            close = match_bracket(src, i, end)
            if close == -1:
                break
            i = close + 1
            continue
        if ch == "=":
            seg_assign = True
            i += 1
            continue

        if not (ch.isalpha() or ch in "_$") or (i > 0 and (src[i - 1].isalnum() or src[i - 1] in "_$")):
            i += 1
            continue

        m = _IDENT.match(src, i)
        word = m.group()
        prev = _prev_char(src, i)
        decl_start = _skip_ws(src, seg_start, i)

        if word in _TYPE_KEYWORDS and prev != "." and not seg_assign:
            name_m = _TYPE_NAME.match(src, m.end())
            if name_m and name_m.group(1) not in JAVA_KEYWORDS:
                brace = src.find("{", name_m.end(), end)
                close = match_bracket(src, brace, end) if brace != -1 else -1
                if close == -1:
                    break
                name = name_m.group(1)
                children = _scan_members(doc, src, brace + 1, close, owner=name)
                symbols.append(
                    DocumentSymbol(
                        name=name,
                        kind=_TYPE_KEYWORDS[word],
                        full_range=doc.range_of(decl_start, close + 1),
                        selection_range=doc.range_of(name_m.start(1), name_m.end(1)),
                        children=tuple(children),
                    )
                )
                i = close + 1
                reset(i)
                continue

        paren = _skip_ws(src, m.end(), end)
        if (
            owner is not None
            and paren < end
            and src[paren] == "("
            and word not in JAVA_KEYWORDS
            and word not in _TYPE_KEYWORDS
            and prev not in ("@", ".")
            # a return type precedes every method name; enum constants follow "{" or ","
            and (word == owner or (prev != "" and (prev.isalnum() or prev in "_$>]")))
            and _prev_word(src, i) != "new"
            and not seg_assign
        ):
            close_paren = match_bracket(src, paren, end)
            if close_paren == -1:
                break
            k = close_paren + 1
            t = _THROWS.match(src, k)
            if t:
                k = t.end()
            k = _skip_ws(src, k, end)
            body_end = -1
            if k < end and src[k] == "{":
                close = match_bracket(src, k, end)
                body_end = close + 1 if close != -1 else -1
            elif k < end and src[k] == ";":
                body_end = k + 1
            elif _DEFAULT_VALUE.match(src, k):
                semi = src.find(";", k, end)
                body_end = semi + 1 if semi != -1 else -1

            if body_end != -1:
                symbols.append(
                    DocumentSymbol(
                        name=word,
                        kind=SymbolKind.CONSTRUCTOR if word == owner else SymbolKind.METHOD,
                        full_range=doc.range_of(decl_start, body_end),
                        selection_range=doc.range_of(m.start(), m.end()),
                        detail=owner,
                    )
                )
                i = body_end
                reset(i)
                continue

        i = m.end()

    return symbols


_PACKAGE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.M)


def package_of(doc: SourceDocument) -> str:
    m = _PACKAGE.search(mask_java(doc.text))
    return m.group(1) if m else ""


class JavaSymbolProvider:
    """
    Symbol introspection over Java files on disk.

    Stands in for a language server: files are read once and their outlines
    cached for the lifetime of the provider.
    """

    def __init__(self, root: Path, max_file_bytes: int = 500_000) -> None:
        self.root = root.expanduser().resolve()
        self.max_file_bytes = max_file_bytes
        self._docs: dict[str, SourceDocument] = {}
        self._symbols: dict[str, list[DocumentSymbol]] = {}

    async def list_files(self, glob: str = "**/*.java") -> list[str]:
        return await asyncio.to_thread(scan_source_files, self.root, glob)

    async def open_document(self, file: str) -> SourceDocument:
        key = str(Path(file).resolve())
        doc = self._docs.get(key)
        if doc is None:
            text = await asyncio.to_thread(self._read, Path(key))
            doc = SourceDocument(key, text)
            self._docs[key] = doc
        return doc

    async def document_symbols(self, file: str) -> list[DocumentSymbol]:
        doc = await self.open_document(file)
        symbols = self._symbols.get(doc.file)
        if symbols is None:
            symbols = outline_java(doc)
            self._symbols[doc.file] = symbols
            logger.bind(op="document_symbols").debug(f"{doc.file}: {len(symbols)} top-level types")
        return symbols

    def _read(self, path: Path) -> str:
        data = path.read_bytes()[: self.max_file_bytes]
        return data.decode("utf-8", errors="ignore")
