from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from loguru import logger

from routeseq.diagram.sequence import synthesize_sequence_diagram
from routeseq.domain.models import EndpointDescriptor, EndpointDiagramMeta
from routeseq.extractors.spring.discovery import discover_endpoints
from routeseq.graph.builder import build_call_tree
from routeseq.graph.callers import CallerSearchResult, find_callers
from routeseq.graph.model import CallNode
from routeseq.providers.base import LanguageAssistant, OutputSink
from routeseq.providers.java_symbols import JavaSymbolProvider
from routeseq.providers.text_oracle import TextCallGraphOracle
from routeseq.providers.sink import RecordingSink
from routeseq.resolver.disambiguation import EndpointResolver, Resolution
from routeseq.shared.cancellation import CancellationToken
from routeseq.shared.config import RouteseqConfig, load_config

MSG_NO_ENDPOINTS = (
    "No REST endpoints found in the current workspace. "
    "Ensure your project uses common annotations like @RestController, @GetMapping, etc."
)
MSG_NO_TREE = (
    "Could not build the call hierarchy for the selected endpoint. The endpoint might not have "
    "any outgoing calls or there might have been an issue processing it."
)


@dataclass
class PipelineResult:
    status: str  # "ok" | "no_endpoints" | "unresolved" | "no_tree" | "cancelled"
    descriptors: list[EndpointDescriptor] = field(default_factory=list)
    resolution: Optional[Resolution] = None
    tree: Optional[CallNode] = None
    diagram: Optional[str] = None
    callers: Optional[CallerSearchResult] = None

    @property
    def endpoint(self) -> Optional[EndpointDescriptor]:
        return self.resolution.descriptor if self.resolution is not None else None


def sorted_endpoints(endpoints: list[EndpointDescriptor]) -> list[EndpointDescriptor]:
    return sorted(endpoints, key=lambda d: d.sort_key())


async def list_endpoints(
    repo_path: Path,
    config: Optional[RouteseqConfig] = None,
    token: Optional[CancellationToken] = None,
    provider: Optional[JavaSymbolProvider] = None,
) -> list[EndpointDescriptor]:
    config = config or load_config()
    provider = provider or JavaSymbolProvider(repo_path, max_file_bytes=config.max_file_bytes)
    found = await discover_endpoints(
        provider,
        token=token,
        glob=config.file_glob,
        class_window=config.class_annotation_window,
        timeout=config.collaborator_timeout,
    )
    return sorted_endpoints(found)


async def run_pipeline(
    repo_path: Path,
    query: str,
    *,
    config: Optional[RouteseqConfig] = None,
    assistant: Optional[LanguageAssistant] = None,
    sink: Optional[OutputSink] = None,
    token: Optional[CancellationToken] = None,
    max_depth: Optional[int] = None,
) -> PipelineResult:
    """
    Discovery -> resolver -> call tree -> diagram for one free-text query.

    Each stage only sees the previous stage's output. Progress and
    user-facing messages go to ``sink``; a run that stops early reports why
    in ``PipelineResult.status``.
    """
    config = config or load_config()
    sink = sink or RecordingSink()
    token = token or CancellationToken.none()
    depth = config.max_call_depth if max_depth is None else max_depth
    repo_path = repo_path.expanduser().resolve()
    log = logger.bind(op="pipeline")
    log.info(f"query {query!r} in {repo_path}")

    provider = JavaSymbolProvider(repo_path, max_file_bytes=config.max_file_bytes)

    sink.progress("Discovering REST endpoints...")
    descriptors = await list_endpoints(repo_path, config, token, provider)
    if token.is_cancelled:
        return PipelineResult(status="cancelled", descriptors=descriptors)
    if not descriptors:
        sink.markdown(MSG_NO_ENDPOINTS)
        log.bind(status="no_endpoints_found").info("nothing to resolve")
        return PipelineResult(status="no_endpoints")

    sink.progress("Figuring out which endpoint you mean...")
    resolver = EndpointResolver(assistant=assistant, sink=sink, timeout=config.collaborator_timeout)
    resolution = await resolver.resolve_detailed(query, descriptors, token)
    if token.is_cancelled:
        return PipelineResult(status="cancelled", descriptors=descriptors, resolution=resolution)
    target = resolution.descriptor
    if target is None:
        return PipelineResult(status="unresolved", descriptors=descriptors, resolution=resolution)

    sink.progress(f"Building call hierarchy for {target.handler_name}...")
    oracle = TextCallGraphOracle(provider, glob=config.file_glob)
    tree = await build_call_tree(
        oracle, target.location, token=token, max_depth=depth, timeout=config.collaborator_timeout
    )
    if token.is_cancelled:
        return PipelineResult(status="cancelled", descriptors=descriptors, resolution=resolution, tree=tree)
    if tree is None:
        sink.markdown(MSG_NO_TREE)
        return PipelineResult(status="no_tree", descriptors=descriptors, resolution=resolution)

    sink.progress("Generating sequence diagram...")
    diagram = synthesize_sequence_diagram(tree, EndpointDiagramMeta.from_descriptor(target))
    log.bind(status="success").info(f"diagram for {target.label}: {len(diagram.splitlines())} lines")
    return PipelineResult(status="ok", descriptors=descriptors, resolution=resolution, tree=tree, diagram=diagram)


async def run_caller_search(
    repo_path: Path,
    query: str,
    *,
    config: Optional[RouteseqConfig] = None,
    assistant: Optional[LanguageAssistant] = None,
    sink: Optional[OutputSink] = None,
    token: Optional[CancellationToken] = None,
) -> PipelineResult:
    """Resolve ``query`` to one endpoint like ``run_pipeline`` and list the places that mention its handler."""
    config = config or load_config()
    sink = sink or RecordingSink()
    token = token or CancellationToken.none()
    repo_path = repo_path.expanduser().resolve()
    provider = JavaSymbolProvider(repo_path, max_file_bytes=config.max_file_bytes)

    sink.progress("Discovering REST endpoints...")
    descriptors = await list_endpoints(repo_path, config, token, provider)
    if token.is_cancelled:
        return PipelineResult(status="cancelled", descriptors=descriptors)
    if not descriptors:
        sink.markdown(MSG_NO_ENDPOINTS)
        return PipelineResult(status="no_endpoints")

    sink.progress("Figuring out which endpoint you mean...")
    resolver = EndpointResolver(assistant=assistant, sink=sink, timeout=config.collaborator_timeout)
    resolution = await resolver.resolve_detailed(query, descriptors, token)
    if token.is_cancelled:
        return PipelineResult(status="cancelled", descriptors=descriptors, resolution=resolution)
    if resolution.descriptor is None:
        return PipelineResult(status="unresolved", descriptors=descriptors, resolution=resolution)

    sink.progress(f"Searching for callers of {resolution.descriptor.handler_name}...")
    callers = await find_callers(
        resolution.descriptor, provider, token=token, glob=config.file_glob, timeout=config.collaborator_timeout
    )
    status = "cancelled" if token.is_cancelled else "ok"
    return PipelineResult(status=status, descriptors=descriptors, resolution=resolution, callers=callers)
