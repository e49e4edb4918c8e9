import pytest

from fakes import FakeAssistant, endpoint
from routeseq.providers.sink import RecordingSink
from routeseq.resolver.disambiguation import (
    EndpointResolver,
    Stage,
    build_assistant_prompt,
    keyword_matches,
    parse_assistant_reply,
    parse_direct_query,
)
from routeseq.shared.cancellation import CancellationToken
from routeseq.shared.errors import InvalidInvocationError


def _catalog():
    return [
        endpoint("GET", "/api/users", "listUsers"),
        endpoint("GET", "/api/users/{id}", "getUser", line=20),
        endpoint("POST", "/api/users", "createUser", line=30),
        endpoint("GET", "/api/orders", "listOrders", file="/src/OrderController.java"),
        endpoint("DELETE", "/api/orders/{id}", "cancelOrder", file="/src/OrderController.java", line=40),
    ]


@pytest.mark.asyncio
async def test_empty_list_returns_none_without_messages():
    sink = RecordingSink()
    res = await EndpointResolver(FakeAssistant("0"), sink).resolve_detailed("anything", [])
    assert res.descriptor is None
    assert res.status == "no_endpoints_provided"
    assert sink.events == []


@pytest.mark.asyncio
async def test_single_descriptor_always_wins_and_assistant_is_not_called():
    only = endpoint("GET", "/x", "handlerX")
    assistant = FakeAssistant("None")
    for query in ["", "totally unrelated", "POST /nope"]:
        assert await EndpointResolver(assistant).resolve(query, [only]) is only
    assert assistant.calls == 0


@pytest.mark.asyncio
async def test_direct_match_skips_assistant():
    catalog = _catalog()
    assistant = FakeAssistant("4")
    res = await EndpointResolver(assistant, RecordingSink()).resolve_detailed("GET /api/users/{id}", catalog)
    assert res.descriptor is catalog[1]
    assert res.stage == Stage.DIRECT_MATCH
    assert res.status == "direct_match_found"
    assert assistant.calls == 0


@pytest.mark.asyncio
async def test_direct_match_is_case_insensitive_on_method_and_tolerates_trailing_slash():
    catalog = _catalog()
    resolver = EndpointResolver(FakeAssistant("None"))
    assert await resolver.resolve("post /api/users/", catalog) is catalog[2]


@pytest.mark.asyncio
async def test_unique_keyword_match():
    catalog = _catalog()
    assistant = FakeAssistant("0")
    res = await EndpointResolver(assistant).resolve_detailed("cancelorder", catalog)
    assert res.descriptor is catalog[4]
    assert res.stage == Stage.KEYWORD_MATCH
    assert assistant.calls == 0


def test_keyword_matching_both_directions():
    catalog = _catalog()
    assert keyword_matches("orders", catalog) == [catalog[3], catalog[4]]
    # the query contains a path
    assert keyword_matches("show me /api/orders please", catalog) == [catalog[3]]
    assert keyword_matches("   ", catalog) == []


@pytest.mark.asyncio
async def test_ambiguous_keyword_goes_to_assistant_with_narrowed_candidates():
    catalog = _catalog()
    sink = RecordingSink()
    assistant = FakeAssistant("1")
    res = await EndpointResolver(assistant, sink).resolve_detailed("orders", catalog)

    assert res.descriptor is catalog[4]
    assert res.stage == Stage.ASSISTANT
    prompt = assistant.prompts[0][0].content
    assert "Index: 0\nMethod: GET\nPath: /api/orders\nHandler: listOrders\nFile: OrderController.java" in prompt
    assert "Index: 2" not in prompt
    assert sink.progress_messages == ["Multiple endpoints found. Asking AI to help select the best match..."]
    assert sink.markdown_messages == ["AI suggested: DELETE /api/orders/{id}"]


@pytest.mark.asyncio
async def test_assistant_none_falls_back_to_clarification_listing_every_candidate():
    catalog = _catalog()
    sink = RecordingSink()
    res = await EndpointResolver(FakeAssistant("None"), sink).resolve_detailed("something vague", catalog)

    assert res.descriptor is None
    assert res.stage == Stage.CLARIFY
    assert res.candidates == catalog
    first, clarification = sink.markdown_messages
    assert first == "AI assistant could not determine a single best match. Please choose from the list."
    for d in catalog:
        assert f"- `{d.http_method} {d.path}` (in {d.location.file_name})" in clarification
    assert '"something vague"' in clarification


@pytest.mark.asyncio
async def test_unusable_replies_are_treated_alike():
    catalog = _catalog()
    for reply in ["17", "-1", "the second one", ""]:
        sink = RecordingSink()
        res = await EndpointResolver(FakeAssistant(reply), sink).resolve_detailed("vague", catalog)
        assert res.descriptor is None
        assert sink.markdown_messages[0] == "AI assistant gave an unclear answer. Please choose from the list."


@pytest.mark.asyncio
async def test_assistant_transport_failure_falls_through():
    catalog = _catalog()
    sink = RecordingSink()
    assistant = FakeAssistant(fail=ConnectionError("model endpoint unreachable"))
    res = await EndpointResolver(assistant, sink).resolve_detailed("vague", catalog)

    assert res.descriptor is None
    assert res.stage == Stage.CLARIFY
    assert sink.markdown_messages[0] == (
        "Error during AI assistance: model endpoint unreachable. Please choose from the list."
    )


@pytest.mark.asyncio
async def test_no_assistant_configured_goes_straight_to_clarification():
    sink = RecordingSink()
    res = await EndpointResolver(None, sink).resolve_detailed("vague", _catalog())
    assert res.stage == Stage.CLARIFY
    assert sink.progress_messages == []
    assert len(sink.markdown_messages) == 1


@pytest.mark.asyncio
async def test_empty_query_with_many_descriptors_asks_the_user():
    assistant = FakeAssistant("0")
    res = await EndpointResolver(assistant, RecordingSink()).resolve_detailed("  ", _catalog())
    assert res.descriptor is None
    assert res.stage == Stage.CLARIFY
    assert assistant.calls == 0


@pytest.mark.asyncio
async def test_cancelled_resolver_returns_none_silently():
    sink = RecordingSink()
    token = CancellationToken()
    token.cancel()
    assistant = FakeAssistant("0")
    res = await EndpointResolver(assistant, sink).resolve_detailed("GET /api/users", _catalog(), token)
    assert res.descriptor is None
    assert res.status.startswith("cancelled_")
    assert sink.events == []
    assert assistant.calls == 0


@pytest.mark.asyncio
async def test_none_descriptor_list_is_a_programming_error():
    with pytest.raises(InvalidInvocationError):
        await EndpointResolver().resolve("x", None)


def test_reply_parsing():
    assert parse_assistant_reply(" 2 \n", 3) == (2, "llm_selected_endpoint")
    assert parse_assistant_reply("NONE", 3) == (None, "llm_said_none")
    assert parse_assistant_reply("3", 3) == (None, "llm_invalid_index")
    assert parse_assistant_reply("maybe", 3) == (None, "llm_invalid_index")


def test_direct_query_parsing():
    assert parse_direct_query("get  /a b") == ("GET", "/a b")
    assert parse_direct_query("users") is None


def test_prompt_asks_for_index_or_none():
    prompt = build_assistant_prompt("q", _catalog()[:2])
    assert prompt.startswith('The user provided the query: "q"')
    assert 'respond with "None"' in prompt


class _CancellingAssistant:
    """Says "None" and cancels the run while doing so."""

    def __init__(self, token):
        self.token = token

    async def ask(self, messages):
        self.token.cancel()
        yield "None"


@pytest.mark.asyncio
async def test_cancel_during_assistant_skips_clarification():
    token = CancellationToken()
    sink = RecordingSink()
    res = await EndpointResolver(_CancellingAssistant(token), sink).resolve_detailed("vague", _catalog(), token)

    assert res.descriptor is None
    assert res.stage == Stage.CLARIFY
    assert res.status == "cancelled_clarify"
    # the assistant's answer is reported, the clarification list is not
    assert sink.markdown_messages == ["AI assistant could not determine a single best match. Please choose from the list."]
