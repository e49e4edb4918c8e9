"""Interfaces of the external collaborators the core talks to.

All calls are coroutines (or async iterators) so a slow language server,
call-graph backend or model endpoint never blocks other pipeline runs.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import AsyncIterator, Literal, Optional, Protocol, Sequence

from routeseq.domain.models import Position, SourceRange
from routeseq.graph.model import CallIdentity, OutgoingCall


class SymbolKind(IntEnum):
    # numbering follows the LSP SymbolKind table
    FILE = 1
    MODULE = 2
    NAMESPACE = 3
    PACKAGE = 4
    CLASS = 5
    METHOD = 6
    PROPERTY = 7
    FIELD = 8
    CONSTRUCTOR = 9
    ENUM = 10
    INTERFACE = 11
    FUNCTION = 12
    STRUCT = 23


CLASS_LIKE_KINDS = frozenset({SymbolKind.CLASS, SymbolKind.INTERFACE, SymbolKind.ENUM, SymbolKind.STRUCT})


@dataclass(frozen=True)
class DocumentSymbol:
    name: str
    kind: SymbolKind
    full_range: SourceRange
    selection_range: SourceRange
    children: tuple["DocumentSymbol", ...] = ()
    detail: str = ""


class TextDocument(Protocol):
    file: str

    @property
    def line_count(self) -> int: ...

    def get_text(self, rng: Optional[SourceRange] = None) -> str: ...

    def line_at(self, line: int) -> str: ...


class SymbolProvider(Protocol):
    async def list_files(self, glob: str) -> list[str]: ...

    async def open_document(self, file: str) -> TextDocument: ...

    async def document_symbols(self, file: str) -> list[DocumentSymbol]: ...


class CallGraphOracle(Protocol):
    async def prepare(self, file: str, position: Position) -> list[CallIdentity]: ...

    async def outgoing_calls(self, identity: CallIdentity) -> list[OutgoingCall]: ...


@dataclass(frozen=True)
class ChatMessage:
    role: Literal["system", "user", "assistant"]
    content: str


class LanguageAssistant(Protocol):
    def ask(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]: ...


class OutputSink(Protocol):
    def progress(self, message: str) -> None: ...

    def markdown(self, text: str) -> None: ...
