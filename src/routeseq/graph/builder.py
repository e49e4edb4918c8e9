from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from routeseq.domain.models import SourceLocation
from routeseq.graph.model import CallIdentity, CallNode
from routeseq.providers.base import CallGraphOracle
from routeseq.shared.boundary import call_collaborator
from routeseq.shared.cancellation import CancellationToken
from routeseq.shared.errors import CollaboratorError, InvalidInvocationError, OperationCancelled

MAX_CALL_DEPTH = 5


@dataclass
class _Walk:
    oracle: CallGraphOracle
    token: Optional[CancellationToken]
    max_depth: int
    timeout: Optional[float]
    expansions: int = 0
    stopped: bool = False

    @property
    def cancelled(self) -> bool:
        return self.token is not None and self.token.is_cancelled


async def build_call_tree(
    oracle: CallGraphOracle,
    location: Optional[SourceLocation],
    *,
    token: Optional[CancellationToken] = None,
    max_depth: int = MAX_CALL_DEPTH,
    timeout: Optional[float] = None,
) -> Optional[CallNode]:
    """
    Expand the outgoing calls reachable from ``location`` into a finite tree.

    The root sits at depth 0; a node at ``max_depth`` is kept but not
    expanded (``truncated``). A callee already on the path from the root is
    added as a ``repeated`` leaf, so cycles cost one extra node and never
    recurse. Returns None when the oracle cannot resolve the root location or
    when cancelled before it does; a later cancellation returns the partial
    tree built so far.
    """
    if location is None:
        raise InvalidInvocationError("build_call_tree() needs a source location")
    if max_depth < 0:
        raise InvalidInvocationError(f"max_depth must be >= 0, got {max_depth}")

    log = logger.bind(op="call_tree", target=location.file)
    walk = _Walk(oracle=oracle, token=token, max_depth=max_depth, timeout=timeout)
    if walk.cancelled:
        log.bind(status="cancelled_before_prepare").info("cancelled")
        return None

    target = f"{location.file}:{location.position.line}:{location.position.character}"
    try:
        prepared = await call_collaborator(
            "oracle.prepare",
            oracle.prepare(location.file, location.position),
            target=target,
            token=token,
            timeout=timeout,
        )
    except OperationCancelled:
        log.bind(status="cancelled_before_prepare").info("cancelled")
        return None
    except CollaboratorError as exc:
        log.bind(status="initial_prepare_failed").warning(str(exc))
        return None

    if not prepared:
        log.bind(status="initial_prepare_failed").info(f"nothing callable at {target}")
        return None

    root = CallNode(identity=prepared[0])
    await _expand(walk, root, depth=0, on_path=frozenset({root.identity.key}))
    log.bind(status="cancelled_partial" if walk.stopped else "success").info(
        f"tree for {root.identity.name}: {sum(1 for _ in root.walk())} nodes, {walk.expansions} expansions"
    )
    return root


async def _expand(walk: _Walk, node: CallNode, depth: int, on_path: frozenset[str]) -> None:
    log = logger.bind(op="call_tree")
    if walk.stopped:
        return
    if depth >= walk.max_depth:
        node.truncated = True
        log.bind(status="max_depth_reached").debug(f"{node.identity.name} at depth {depth}")
        return
    if walk.cancelled:
        walk.stopped = True
        return

    try:
        calls = await call_collaborator(
            "oracle.outgoing_calls",
            walk.oracle.outgoing_calls(node.identity),
            target=node.identity.key,
            token=walk.token,
            timeout=walk.timeout,
        )
    except OperationCancelled:
        walk.stopped = True
        return
    except CollaboratorError as exc:
        # this node becomes a leaf, siblings keep expanding
        log.bind(status="outgoing_calls_failed").warning(str(exc))
        return

    walk.expansions += 1
    for call in calls:
        if walk.stopped:
            return
        child = CallNode(identity=call.callee)
        node.children.append(child)
        if call.callee.key in on_path:
            child.repeated = True
            continue
        await _expand(walk, child, depth + 1, on_path | {call.callee.key})


def format_tree(root: Optional[CallNode]) -> str:
    """Indented plain-text rendering, one node per line."""
    if root is None:
        return "(no call hierarchy)"

    lines: list[str] = []

    def visit(node: CallNode, indent: int) -> None:
        ident: CallIdentity = node.identity
        suffix = ""
        if node.repeated:
            suffix = "  [repeated]"
        elif node.truncated:
            suffix = "  [max depth]"
        where = f"{ident.file}:{ident.selection_range.start.line + 1}"
        ctx = f"{ident.detail}." if ident.detail else ""
        lines.append(f"{'  ' * indent}{ctx}{ident.bare_name}()  ({where}){suffix}")
        for c in node.children:
            visit(c, indent + 1)

    visit(root, 0)
    return "\n".join(lines)
