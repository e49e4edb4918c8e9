from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from loguru import logger

from routeseq.domain.models import EndpointDescriptor, Position, SourceLocation, SourceRange
from routeseq.extractors.spring.mapping import (
    DEFAULT_RULES,
    MappingRule,
    is_controller_block,
    parse_mapping_annotations,
)
from routeseq.extractors.spring.paths import combine_paths, normalize_path
from routeseq.providers.base import CLASS_LIKE_KINDS, DocumentSymbol, SymbolKind, SymbolProvider, TextDocument
from routeseq.shared.boundary import call_collaborator
from routeseq.shared.cancellation import CancellationToken
from routeseq.shared.errors import CollaboratorError, OperationCancelled

DEFAULT_CLASS_WINDOW = 5
DEFAULT_FILE_CONCURRENCY = 8


@dataclass(frozen=True)
class ControllerClass:
    symbol: DocumentSymbol
    base_path: str


def _iter_class_symbols(symbols: Sequence[DocumentSymbol]) -> Iterable[tuple[DocumentSymbol, Optional[DocumentSymbol]]]:
    """Yield (class symbol, previous sibling) pairs, nested classes included."""
    ordered = sorted(symbols, key=lambda s: (s.full_range.start.line, s.full_range.start.character))
    prev: Optional[DocumentSymbol] = None
    for sym in ordered:
        if sym.kind in CLASS_LIKE_KINDS:
            yield sym, prev
            yield from _iter_class_symbols(sym.children)
        prev = sym


def _class_window(doc: TextDocument, sym: DocumentSymbol, prev: Optional[DocumentSymbol], window: int) -> tuple[int, str]:
    sel_line = sym.selection_range.start.line
    first = max(0, sel_line - window)
    if prev is not None:
        first = max(first, prev.full_range.end.line + 1)
    first = min(first, sel_line)
    rng = SourceRange(start=Position(line=first, character=0), end=sym.selection_range.start)
    return first, doc.get_text(rng)


def find_controller_classes(
    doc: TextDocument,
    symbols: Sequence[DocumentSymbol],
    window: int = DEFAULT_CLASS_WINDOW,
    rules: Sequence[MappingRule] = DEFAULT_RULES,
) -> list[ControllerClass]:
    """
    Classes carrying @RestController/@Controller within ``window`` lines above
    their name, with the base path from a class-level mapping ("/" if none).
    """
    controllers: list[ControllerClass] = []
    for sym, prev in _iter_class_symbols(symbols):
        _, text = _class_window(doc, sym, prev, window)
        if not is_controller_block(text):
            continue

        info = parse_mapping_annotations(text, rules)
        base_path = "/"
        if info is not None and info.paths:
            base_path = normalize_path(info.paths[0]) or "/"
        controllers.append(ControllerClass(symbol=sym, base_path=base_path))
    return controllers


def find_endpoints_in_class(
    doc: TextDocument,
    class_symbol: DocumentSymbol,
    base_path: str,
    token: Optional[CancellationToken] = None,
    rules: Sequence[MappingRule] = DEFAULT_RULES,
) -> list[EndpointDescriptor]:
    """
    One descriptor per (verb, path) declared on the class's methods.

    The annotation text of a method is everything between the end of the
    previous method (or the class name for the first one) and the method's
    own name, so annotations never leak from one handler to the next.
    """
    methods = [c for c in class_symbol.children if c.kind == SymbolKind.METHOD]
    methods.sort(key=lambda s: (s.full_range.start.line, s.full_range.start.character))

    endpoints: list[EndpointDescriptor] = []
    for i, method in enumerate(methods):
        if token is not None and token.is_cancelled:
            break

        window_start = methods[i - 1].full_range.end if i > 0 else class_symbol.selection_range.end
        window_end = method.selection_range.start
        if (window_start.line, window_start.character) > (window_end.line, window_end.character):
            window_start = Position(line=window_end.line, character=0)

        text = doc.get_text(SourceRange(start=window_start, end=window_end))
        info = parse_mapping_annotations(text, rules)
        if info is None or not info.paths:
            continue

        annotation_line = window_start.line + text[: info.offset].count("\n")
        first_line = min(annotation_line, method.full_range.start.line)
        for method_path in info.paths:
            endpoints.append(
                EndpointDescriptor(
                    http_method=info.http_method,
                    path=combine_paths(base_path, method_path),
                    handler_name=method.name,
                    location=SourceLocation(file=doc.file, position=method.selection_range.start),
                    annotation_span=(first_line, method.full_range.end.line),
                )
            )
    return endpoints


async def discover_endpoints_in_file(
    provider: SymbolProvider,
    file: str,
    *,
    token: Optional[CancellationToken] = None,
    class_window: int = DEFAULT_CLASS_WINDOW,
    timeout: Optional[float] = None,
    rules: Sequence[MappingRule] = DEFAULT_RULES,
) -> list[EndpointDescriptor]:
    log = logger.bind(op="discover_file")
    try:
        doc = await call_collaborator(
            "open_document", provider.open_document(file), target=file, token=token, timeout=timeout
        )
        # cheap text check before asking for symbols
        if not is_controller_block(doc.get_text()):
            return []
        symbols = await call_collaborator(
            "document_symbols", provider.document_symbols(file), target=file, token=token, timeout=timeout
        )
    except OperationCancelled:
        return []
    except CollaboratorError as exc:
        log.warning(f"skipping {file}: {exc}")
        return []

    if not symbols:
        return []

    endpoints: list[EndpointDescriptor] = []
    for ctrl in find_controller_classes(doc, symbols, class_window, rules):
        if token is not None and token.is_cancelled:
            break
        endpoints.extend(find_endpoints_in_class(doc, ctrl.symbol, ctrl.base_path, token, rules))

    if endpoints:
        log.debug(f"{file}: {len(endpoints)} endpoints")
    return endpoints


async def discover_endpoints(
    provider: SymbolProvider,
    *,
    token: Optional[CancellationToken] = None,
    glob: str = "**/*.java",
    class_window: int = DEFAULT_CLASS_WINDOW,
    timeout: Optional[float] = None,
    concurrency: int = DEFAULT_FILE_CONCURRENCY,
    rules: Sequence[MappingRule] = DEFAULT_RULES,
) -> list[EndpointDescriptor]:
    """
    Scan every file matching ``glob`` and return all endpoint descriptors.

    Files are processed concurrently and independently; a file that cannot be
    opened or outlined is skipped with a warning. Order of the result is not
    meaningful, sort before showing it to anyone.
    """
    log = logger.bind(op="discover_endpoints")
    if token is not None and token.is_cancelled:
        return []

    try:
        files = await call_collaborator("list_files", provider.list_files(glob), target=glob, token=token, timeout=timeout)
    except OperationCancelled:
        return []
    except CollaboratorError as exc:
        log.error(f"could not list files: {exc}")
        return []

    log.info(f"found {len(files)} files matching {glob}")
    sem = asyncio.Semaphore(max(1, concurrency))

    async def one(f: str) -> list[EndpointDescriptor]:
        async with sem:
            if token is not None and token.is_cancelled:
                return []
            return await discover_endpoints_in_file(
                provider, f, token=token, class_window=class_window, timeout=timeout, rules=rules
            )

    per_file = await asyncio.gather(*(one(f) for f in files))
    endpoints = [e for batch in per_file for e in batch]
    log.info(f"discovered {len(endpoints)} endpoints")
    return endpoints
