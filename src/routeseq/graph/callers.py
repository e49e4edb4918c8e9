from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from loguru import logger

from routeseq.domain.models import EndpointDescriptor, Position, SourceRange
from routeseq.providers.base import DocumentSymbol, SymbolKind, SymbolProvider
from routeseq.shared.boundary import call_collaborator
from routeseq.shared.cancellation import CancellationToken
from routeseq.shared.errors import CollaboratorError, InvalidInvocationError, OperationCancelled

_COMMENT_PREFIXES = ("//", "/*", "*")
_CALLABLE_KINDS = (SymbolKind.METHOD, SymbolKind.CONSTRUCTOR, SymbolKind.FUNCTION)


@dataclass(frozen=True)
class CallerLocation:
    file: str
    range: SourceRange
    line_text: str
    calling_function: Optional[str] = None


@dataclass
class CallerSearchResult:
    target: EndpointDescriptor
    callers: list[CallerLocation] = field(default_factory=list)


def _enclosing_callable(symbols: Sequence[DocumentSymbol], pos: Position) -> Optional[str]:
    found: Optional[str] = None
    for sym in symbols:
        if not sym.full_range.contains(pos):
            continue
        if sym.kind in _CALLABLE_KINDS:
            found = sym.name
        inner = _enclosing_callable(sym.children, pos)
        if inner is not None:
            found = inner
    return found


async def find_callers(
    descriptor: Optional[EndpointDescriptor],
    provider: SymbolProvider,
    *,
    token: Optional[CancellationToken] = None,
    glob: str = "**/*.java",
    timeout: Optional[float] = None,
) -> CallerSearchResult:
    """
    Plain-text search for places that mention the handler's name.

    Matches are whole words. The descriptor's own annotation span in its
    own file is skipped, as are lines that start like a comment. Each hit is
    tagged with the method or constructor it sits in, when the outline has
    one. Unreadable files are skipped; cancellation returns what was found.
    """
    if descriptor is None or not descriptor.handler_name:
        raise InvalidInvocationError("find_callers() needs an endpoint with a handler name")

    log = logger.bind(op="find_callers")
    result = CallerSearchResult(target=descriptor)
    word = re.compile(r"\b" + re.escape(descriptor.handler_name) + r"\b")
    first, last = descriptor.annotation_span

    try:
        files = await call_collaborator("list_files", provider.list_files(glob), target=glob, token=token, timeout=timeout)
    except OperationCancelled:
        return result
    except CollaboratorError as exc:
        log.error(f"could not list files: {exc}")
        return result

    for file in files:
        if token is not None and token.is_cancelled:
            log.bind(status="cancelled_partial").info(f"{len(result.callers)} callers so far")
            break
        try:
            doc = await call_collaborator("open_document", provider.open_document(file), target=file, token=token, timeout=timeout)
        except OperationCancelled:
            break
        except CollaboratorError as exc:
            log.warning(f"skipping {file}: {exc}")
            continue

        own_file = file == descriptor.location.file
        hits: list[tuple[int, re.Match[str], str]] = []
        for line in range(doc.line_count):
            if own_file and first <= line <= last:
                continue
            text = doc.line_at(line)
            if text.strip().startswith(_COMMENT_PREFIXES):
                continue
            for m in word.finditer(text):
                hits.append((line, m, text))
        if not hits:
            continue

        try:
            symbols = await call_collaborator(
                "document_symbols", provider.document_symbols(file), target=file, token=token, timeout=timeout
            )
        except (CollaboratorError, OperationCancelled):
            symbols = []

        for line, m, text in hits:
            start = Position(line=line, character=m.start())
            result.callers.append(
                CallerLocation(
                    file=file,
                    range=SourceRange(start=start, end=Position(line=line, character=m.end())),
                    line_text=text.strip(),
                    calling_function=_enclosing_callable(symbols, start),
                )
            )

    log.bind(status="success").info(f"{descriptor.handler_name}: {len(result.callers)} callers")
    return result
