"""Mermaid ``sequenceDiagram`` text from a call tree."""
from __future__ import annotations

import re
from typing import Optional

from routeseq.domain.models import EndpointDiagramMeta
from routeseq.graph.model import CallIdentity, CallNode

CLIENT = "Client"
UNKNOWN_PARTICIPANT = "UnknownParticipant"
UNKNOWN_CONTROLLER = "UnknownController"
INDENT = "    "

EMPTY_DIAGRAM = "sequenceDiagram\n    participant User\n    User->>System: No call hierarchy data to display."

_UNSAFE = re.compile(r"[^\w]+")
# words the sequenceDiagram grammar reads as keywords when used as a participant id
_RESERVED = frozenset(
    {
        "participant", "actor", "end", "loop", "alt", "else", "opt", "par", "and", "rect",
        "critical", "break", "note", "over", "activate", "deactivate", "autonumber", "box",
        "create", "destroy", "title",
    }
)
_CONTEXT_SEP = re.compile(r"[./]")
# characters that end or corrupt a Mermaid message label
_MESSAGE_ESCAPES = {";": "#59;", "#": "#35;", "\n": " ", "\r": " "}


def sanitize_participant_name(name: str) -> str:
    """Reduce ``name`` to a Mermaid-safe identifier, ``UnknownParticipant`` if nothing is left."""
    cleaned = _UNSAFE.sub("_", name or "").strip("_")
    if not cleaned:
        return UNKNOWN_PARTICIPANT
    if cleaned.lower() in _RESERVED:
        return f"{cleaned}_"
    return cleaned


def escape_message(text: str) -> str:
    return "".join(_MESSAGE_ESCAPES.get(ch, ch) for ch in text)


def _context_class(detail: str) -> str:
    if not detail:
        return ""
    return _CONTEXT_SEP.split(detail.strip())[-1].strip()


def participant_name(identity: CallIdentity) -> str:
    """
    Display name of the actor owning ``identity``: the last segment of its
    qualifying context (the class), or the bare callable name when there is
    no usable context.
    """
    cls = _context_class(identity.detail)
    if cls:
        return cls
    return identity.bare_name.replace(".", "_").replace(":", "_")


class _Participants:
    """Sanitized participant ids in first-seen order; ``external`` is kept for the caller outside the code."""

    def __init__(self, external: Optional[str] = None) -> None:
        self._seen: dict[str, None] = {}
        self.external = external
        if external is not None:
            self._seen[external] = None

    def add(self, raw: str) -> str:
        pid = sanitize_participant_name(raw)
        if pid == self.external:
            pid = f"{pid}_"
        self._seen.setdefault(pid, None)
        return pid

    def declarations(self) -> list[str]:
        return [f"{INDENT}participant {p}" for p in self._seen]


def _emit_calls(node: CallNode, caller: str, participants: _Participants, out: list[str]) -> None:
    for child in node.children:
        callee = participants.add(participant_name(child.identity))
        out.append(f"{INDENT}{caller}->>{callee}: {escape_message(child.identity.bare_name)}()")
        _emit_calls(child, callee, participants, out)
        out.append(f"{INDENT}{callee}-->>{caller}: Returns")


def synthesize_sequence_diagram(root: Optional[CallNode], meta: Optional[EndpointDiagramMeta] = None) -> str:
    """
    Render ``root`` as Mermaid sequence-diagram text.

    With ``meta`` the diagram is framed as an HTTP exchange: Client sends the
    request to the controller, a note names the handler, the calls follow
    depth-first and the controller answers Client last. This framing is kept
    for handlers that call nothing. Without ``meta`` only the calls are drawn,
    or a single self-message when there are none.

    Output depends only on the tree and ``meta``; the same input always gives
    the same text.
    """
    if root is None:
        return EMPTY_DIAGRAM

    participants = _Participants(CLIENT if meta is not None else None)
    body: list[str] = []

    if meta is not None:
        client = CLIENT
        ctrl = participants.add(_context_class(root.identity.detail) or UNKNOWN_CONTROLLER)
        body.append(f"{INDENT}{client}->>{ctrl}: {escape_message(f'{meta.http_method} {meta.path}')}")
        body.append(f"{INDENT}Note over {ctrl}: {escape_message(meta.handler_name or root.identity.bare_name)}()")
        _emit_calls(root, ctrl, participants, body)
        body.append(f"{INDENT}{ctrl}-->>{client}: Response")
    else:
        top = participants.add(participant_name(root.identity))
        _emit_calls(root, top, participants, body)
        if not body:
            body.append(f"{INDENT}{top}->>{top}: No outgoing calls found to diagram.")

    return "\n".join(["sequenceDiagram", *participants.declarations(), *body])
