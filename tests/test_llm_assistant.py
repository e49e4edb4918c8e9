import json

import httpx
import pytest

from routeseq.providers.base import ChatMessage
from routeseq.providers.llm import OpenAICompatibleAssistant, _parse_sse_line
from routeseq.shared.config import load_config


def _sse(*chunks):
    lines = []
    for c in chunks:
        lines.append("data: " + json.dumps({"choices": [{"delta": {"content": c}}]}))
        lines.append("")
    lines.append("data: [DONE]")
    return "\n".join(lines) + "\n"


async def _collect(assistant, text="pick one"):
    return "".join([c async for c in assistant.ask([ChatMessage(role="user", content=text)])])


@pytest.mark.asyncio
async def test_streamed_reply_is_reassembled():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text=_sse("1", "2", ""), headers={"content-type": "text/event-stream"})

    assistant = OpenAICompatibleAssistant(
        "http://llm.local/v1/", "tiny", api_key="k", transport=httpx.MockTransport(handler)
    )
    assert await _collect(assistant) == "12"
    assert seen["url"] == "http://llm.local/v1/chat/completions"
    assert seen["auth"] == "Bearer k"
    assert seen["body"]["stream"] is True
    assert seen["body"]["messages"] == [{"role": "user", "content": "pick one"}]


@pytest.mark.asyncio
async def test_http_error_propagates():
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="busy"))
    assistant = OpenAICompatibleAssistant("http://llm.local/v1", "tiny", transport=transport)
    with pytest.raises(httpx.HTTPStatusError):
        await _collect(assistant)


def test_sse_line_parsing():
    assert _parse_sse_line("") is None
    assert _parse_sse_line(": keep-alive") is None
    assert _parse_sse_line("data: [DONE]") == "[DONE]"
    assert _parse_sse_line('data: {"choices": []}') is None
    assert _parse_sse_line('data: {"choices": [{"message": {"content": "None"}}]}') == "None"


def test_from_config(monkeypatch):
    monkeypatch.setenv("ROUTESEQ_LLM_BASE_URL", "http://localhost:11434/v1")
    monkeypatch.setenv("ROUTESEQ_LLM_MODEL", "llama3")
    assistant = OpenAICompatibleAssistant.from_config(load_config())
    assert assistant.base_url == "http://localhost:11434/v1"
    assert assistant.model == "llama3"
