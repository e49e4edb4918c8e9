import pytest

from fakes import WARMUP, write_project
from routeseq.graph.callers import find_callers
from routeseq.orchestrator.pipeline import list_endpoints, run_caller_search
from routeseq.providers.java_symbols import JavaSymbolProvider
from routeseq.providers.sink import RecordingSink
from routeseq.shared.cancellation import CancellationToken
from routeseq.shared.config import load_config
from routeseq.shared.errors import InvalidInvocationError

WARMUP_FILE = "src/main/java/com/example/jobs/Warmup.java"


async def _ping_endpoint(root):
    rows = await list_endpoints(root, load_config())
    return next(d for d in rows if d.label == "GET /legacy/ping")


@pytest.mark.asyncio
async def test_callers_skip_declaration_and_comments(tmp_path):
    write_project(tmp_path, {WARMUP_FILE: WARMUP})
    desc = await _ping_endpoint(tmp_path)

    result = await find_callers(desc, JavaSymbolProvider(tmp_path))

    assert result.target is desc
    assert [(c.range.start.line, c.calling_function) for c in result.callers] == [(7, "start"), (12, "Warmup")]
    assert all(c.file.endswith("Warmup.java") for c in result.callers)
    assert result.callers[0].line_text == "legacy.ping();"
    assert result.callers[1].range.start.character == WARMUP.splitlines()[12].index("ping")
    assert result.callers[1].range.end.character - result.callers[1].range.start.character == len("ping")


@pytest.mark.asyncio
async def test_mentions_in_other_words_do_not_count(tmp_path):
    write_project(tmp_path, {WARMUP_FILE: WARMUP.replace("legacy.ping()", "legacy.pinged()")})
    desc = await _ping_endpoint(tmp_path)

    result = await find_callers(desc, JavaSymbolProvider(tmp_path))

    assert result.callers == []


@pytest.mark.asyncio
async def test_find_callers_needs_a_descriptor(tmp_path):
    with pytest.raises(InvalidInvocationError):
        await find_callers(None, JavaSymbolProvider(tmp_path))


@pytest.mark.asyncio
async def test_cancelled_search_returns_empty_result(tmp_path):
    write_project(tmp_path, {WARMUP_FILE: WARMUP})
    desc = await _ping_endpoint(tmp_path)
    token = CancellationToken()
    token.cancel()

    result = await find_callers(desc, JavaSymbolProvider(tmp_path), token=token)

    assert result.callers == []


@pytest.mark.asyncio
async def test_caller_search_pipeline(tmp_path):
    write_project(tmp_path, {WARMUP_FILE: WARMUP})
    sink = RecordingSink()

    result = await run_caller_search(tmp_path, "GET /legacy/ping", sink=sink)

    assert result.status == "ok"
    assert result.endpoint.handler_name == "ping"
    assert len(result.callers.callers) == 2
    assert result.diagram is None
    assert sink.progress_messages[-1] == "Searching for callers of ping..."


@pytest.mark.asyncio
async def test_caller_search_unresolved_query(tmp_path):
    write_project(tmp_path, {WARMUP_FILE: WARMUP})
    result = await run_caller_search(tmp_path, "users", sink=RecordingSink())
    assert result.status == "unresolved"
    assert result.callers is None
