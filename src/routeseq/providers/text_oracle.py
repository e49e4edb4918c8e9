from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from routeseq.domain.models import Position, SourceRange
from routeseq.graph.model import CallIdentity, OutgoingCall
from routeseq.providers.base import CLASS_LIKE_KINDS, DocumentSymbol, SymbolKind
from routeseq.providers.java_source import SourceDocument, mask_java, match_bracket
from routeseq.providers.java_symbols import JAVA_KEYWORDS, JavaSymbolProvider, package_of

_CALL = re.compile(r"([A-Za-z_$][\w$]*)\s*\(")
_RECEIVER = re.compile(r"([A-Za-z_$][\w$]*)\s*\.\s*$")
_SUPERTYPES = re.compile(r"\b(?:extends|implements)\b(.*)", re.S)
_GENERIC_ARGS = re.compile(r"<[^<>]*>")
_CALLABLE_KINDS = frozenset({SymbolKind.METHOD, SymbolKind.CONSTRUCTOR})


@dataclass
class _MethodEntry:
    symbol: DocumentSymbol
    identity: CallIdentity
    arity: int


@dataclass
class _TypeEntry:
    name: str
    kind: SymbolKind
    file: str
    symbol: DocumentSymbol
    supertypes: tuple[str, ...]
    methods: dict[str, list[_MethodEntry]] = field(default_factory=dict)


@dataclass
class _Index:
    types: dict[str, list[_TypeEntry]] = field(default_factory=dict)
    by_method: dict[str, list[_MethodEntry]] = field(default_factory=dict)
    by_key: dict[str, tuple[_TypeEntry, _MethodEntry]] = field(default_factory=dict)


def _arity(masked: str, doc: SourceDocument, sym: DocumentSymbol) -> int:
    start = doc.offset_at(sym.selection_range.end)
    paren = masked.find("(", start)
    if paren == -1:
        return 0
    close = match_bracket(masked, paren)
    if close == -1:
        return 0
    return _count_args(masked[paren + 1 : close])


def _count_args(inner: str) -> int:
    if not inner.strip():
        return 0
    depth = 0
    count = 1
    for ch in inner:
        if ch in "(<[{":
            depth += 1
        elif ch in ")>]}":
            depth -= 1
        elif ch == "," and depth == 0:
            count += 1
    return count


def _simple_type(name: str) -> str:
    return name.split("<")[0].split(".")[-1].strip()


class TextCallGraphOracle:
    """
    Call-graph oracle over the same Java outline the symbol provider builds.

    ``prepare`` returns the innermost method or constructor containing a
    position. ``outgoing_calls`` scans that method's body for ``name(`` call
    sites and resolves each by name: same class for unqualified and ``this.``
    calls, the declared type of the receiver for ``x.name(``, and otherwise a
    unique method of that name in the corpus. Calls that resolve to nothing
    in the corpus (library calls) are dropped.
    """

    def __init__(self, provider: JavaSymbolProvider, glob: str = "**/*.java") -> None:
        self.provider = provider
        self.glob = glob
        self._index: Optional[_Index] = None
        self._lock = asyncio.Lock()

    async def prepare(self, file: str, position: Position) -> list[CallIdentity]:
        index = await self._ensure_index()
        doc = await self.provider.open_document(file)
        best: Optional[CallIdentity] = None
        best_span = None
        for owner, entry in index.by_key.values():
            if owner.file != doc.file or not entry.symbol.full_range.contains(position):
                continue
            r = entry.symbol.full_range
            span = (r.end.line - r.start.line, r.end.character - r.start.character)
            if best_span is None or span < best_span:
                best, best_span = entry.identity, span
        return [best] if best is not None else []

    async def outgoing_calls(self, identity: CallIdentity) -> list[OutgoingCall]:
        index = await self._ensure_index()
        found = index.by_key.get(identity.key)
        if found is None:
            return []
        owner, entry = found
        doc = await self.provider.open_document(owner.file)
        masked = mask_java(doc.get_text())

        body = self._body_bounds(doc, masked, entry.symbol)
        if body is None:
            return []
        start, end = body
        scope = masked[doc.offset_at(owner.symbol.full_range.start) : doc.offset_at(owner.symbol.full_range.end)]

        grouped: dict[str, tuple[CallIdentity, list[SourceRange]]] = {}
        for m in _CALL.finditer(masked, start, end):
            name = m.group(1)
            if name in JAVA_KEYWORDS or (m.start() > 0 and (masked[m.start() - 1].isalnum() or masked[m.start() - 1] in "_$")):
                continue
            before = masked[max(start, m.start() - 80) : m.start()]
            stripped = before.rstrip()
            if stripped.endswith("@") or re.search(r"\bnew\s*$", before):
                continue

            close = match_bracket(masked, m.end() - 1, end)
            arity = _count_args(masked[m.end() : close]) if close != -1 else -1
            receiver = None
            rm = _RECEIVER.search(before)
            if rm is not None:
                receiver = rm.group(1)
            elif stripped.endswith("."):
                # chained call on an expression we don't type
                receiver = ""

            callee = self._resolve(index, owner, scope, name, receiver, arity)
            if callee is None:
                continue
            site = doc.range_of(m.start(1), m.end(1))
            if callee.key in grouped:
                grouped[callee.key][1].append(site)
            else:
                grouped[callee.key] = (callee, [site])

        calls = [OutgoingCall(callee=c, call_site_ranges=tuple(sites)) for c, sites in grouped.values()]
        logger.bind(op="outgoing_calls").debug(f"{identity.name}: {len(calls)} resolved callees")
        return calls

    async def _ensure_index(self) -> _Index:
        async with self._lock:
            if self._index is None:
                self._index = await self._build_index()
            return self._index

    async def _build_index(self) -> _Index:
        index = _Index()
        files = await self.provider.list_files(self.glob)
        for f in files:
            doc = await self.provider.open_document(f)
            symbols = await self.provider.document_symbols(f)
            masked = mask_java(doc.get_text())
            pkg = package_of(doc)
            for sym in symbols:
                self._index_type(index, doc, masked, sym, pkg)
        logger.bind(op="call_index").info(
            f"indexed {sum(len(v) for v in index.types.values())} types, {len(index.by_key)} callables"
        )
        return index

    def _index_type(self, index: _Index, doc: SourceDocument, masked: str, sym: DocumentSymbol, context: str) -> None:
        if sym.kind not in CLASS_LIKE_KINDS:
            return
        qualified = f"{context}.{sym.name}" if context else sym.name
        header_start = doc.offset_at(sym.selection_range.end)
        header_end = masked.find("{", header_start)
        header = masked[header_start:header_end] if header_end != -1 else ""
        while _GENERIC_ARGS.search(header):
            header = _GENERIC_ARGS.sub("", header)
        supertypes: tuple[str, ...] = ()
        m = _SUPERTYPES.search(header)
        if m is not None:
            supertypes = tuple(
                _simple_type(n) for n in re.split(r"[,\s]+", m.group(1)) if n and n not in ("extends", "implements")
            )

        entry = _TypeEntry(name=sym.name, kind=sym.kind, file=doc.file, symbol=sym, supertypes=supertypes)
        index.types.setdefault(sym.name, []).append(entry)

        for child in sym.children:
            if child.kind in _CALLABLE_KINDS:
                identity = CallIdentity(
                    name=child.name,
                    detail=qualified,
                    file=doc.file,
                    range=child.full_range,
                    selection_range=child.selection_range,
                )
                method = _MethodEntry(symbol=child, identity=identity, arity=_arity(masked, doc, child))
                entry.methods.setdefault(child.name, []).append(method)
                index.by_method.setdefault(child.name, []).append(method)
                index.by_key[identity.key] = (entry, method)
            elif child.kind in CLASS_LIKE_KINDS:
                self._index_type(index, doc, masked, child, qualified)

    @staticmethod
    def _body_bounds(doc: SourceDocument, masked: str, sym: DocumentSymbol) -> Optional[tuple[int, int]]:
        name_end = doc.offset_at(sym.selection_range.end)
        end = doc.offset_at(sym.full_range.end)
        paren = masked.find("(", name_end, end)
        if paren == -1:
            return None
        close = match_bracket(masked, paren, end)
        if close == -1:
            return None
        brace = masked.find("{", close, end)
        if brace == -1:
            return None
        return brace + 1, end

    def _resolve(
        self,
        index: _Index,
        owner: _TypeEntry,
        scope: str,
        name: str,
        receiver: Optional[str],
        arity: int,
    ) -> Optional[CallIdentity]:
        if receiver is None or receiver == "this":
            return self._in_type(index, owner, name, arity)
        if receiver == "super":
            for st in owner.supertypes:
                for t in index.types.get(st, []):
                    hit = self._in_type(index, t, name, arity)
                    if hit is not None:
                        return hit
            return None

        type_name = None
        if receiver:
            if receiver[0].isupper():
                # static call; unknown classes are library code
                if receiver not in index.types:
                    return None
                type_name = receiver
            else:
                type_name = self._declared_type(scope, receiver)
        if type_name:
            for t in index.types.get(type_name, []):
                hit = self._in_type(index, self._implementation(index, t, name), name, arity)
                if hit is not None:
                    return hit
            return None

        candidates = index.by_method.get(name, [])
        if len(candidates) == 1:
            return candidates[0].identity
        return None

    @staticmethod
    def _declared_type(scope: str, variable: str) -> Optional[str]:
        # fields, parameters and locals of the owning class all live in its text
        pattern = re.compile(
            r"([A-Z][\w$]*)(?:\s*<[^;(){}]*?>)?(?:\s*\[\s*\])*\s+" + re.escape(variable) + r"\s*[;=,):]"
        )
        m = pattern.search(scope)
        return m.group(1) if m else None

    @staticmethod
    def _implementation(index: _Index, t: _TypeEntry, name: str) -> _TypeEntry:
        """For an interface, the single implementing class that defines ``name``."""
        if t.kind != SymbolKind.INTERFACE:
            return t
        impls = [
            e
            for entries in index.types.values()
            for e in entries
            if t.name in e.supertypes and e.kind != SymbolKind.INTERFACE and name in e.methods
        ]
        return impls[0] if len(impls) == 1 else t

    @staticmethod
    def _in_type(index: _Index, t: _TypeEntry, name: str, arity: int) -> Optional[CallIdentity]:
        methods = t.methods.get(name, [])
        if not methods:
            return None
        for m in methods:
            if m.arity == arity:
                return m.identity
        return methods[0].identity
