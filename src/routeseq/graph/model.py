from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from routeseq.domain.models import SourceRange

EdgeType = Literal["CALLS", "CALLS_AGAIN"]


@dataclass(frozen=True)
class CallIdentity:
    """A callable as reported by the call-graph oracle."""

    name: str
    detail: str  # qualifying context, e.g. "com.example.web.UserController"
    file: str
    range: SourceRange
    selection_range: SourceRange

    @property
    def key(self) -> str:
        sel = self.selection_range.start
        return f"{self.file}:{sel.line}:{sel.character}:{self.name}"

    @property
    def bare_name(self) -> str:
        return self.name.split("(")[0].strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "detail": self.detail,
            "file": self.file,
            "line": self.selection_range.start.line,
            "character": self.selection_range.start.character,
        }


@dataclass(frozen=True)
class OutgoingCall:
    callee: CallIdentity
    call_site_ranges: tuple[SourceRange, ...] = ()


@dataclass(eq=False)
class CallNode:
    """
    One node of a reconstructed call tree.

    Children are owned by their parent. A callee that already sits on the
    path from the root shows up again as a leaf (``repeated=True``) instead
    of being expanded, so the structure is always a finite tree.
    """

    identity: CallIdentity
    children: list["CallNode"] = field(default_factory=list)
    repeated: bool = False
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        out = self.identity.to_dict()
        if self.repeated:
            out["repeated"] = True
        if self.truncated:
            out["truncated"] = True
        out["children"] = [c.to_dict() for c in self.children]
        return out

    def walk(self):
        yield self
        for c in self.children:
            yield from c.walk()


@dataclass(frozen=True)
class CallEdge:
    src: str
    dst: str
    type: EdgeType


@dataclass
class CallGraph:
    """Arena view of a call tree: identities keyed by ``CallIdentity.key``, edges by key."""

    nodes: dict[str, CallIdentity]
    edges: list[CallEdge]
    root: Optional[str]

    def __init__(self) -> None:
        self.nodes = {}
        self.edges = []
        self.root = None

    def add_node(self, identity: CallIdentity) -> str:
        # de-dupe by key
        if identity.key not in self.nodes:
            self.nodes[identity.key] = identity
        return identity.key

    def add_edge(self, edge: CallEdge) -> None:
        self.edges.append(edge)

    @classmethod
    def from_tree(cls, root: CallNode) -> "CallGraph":
        g = cls()
        g.root = g.add_node(root.identity)
        stack = [root]
        while stack:
            node = stack.pop()
            for child in node.children:
                g.add_node(child.identity)
                g.add_edge(
                    CallEdge(
                        src=node.identity.key,
                        dst=child.identity.key,
                        type="CALLS_AGAIN" if child.repeated else "CALLS",
                    )
                )
            stack.extend(reversed(node.children))
        return g
