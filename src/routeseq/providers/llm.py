from __future__ import annotations

import json
from typing import AsyncIterator, Optional, Sequence

import httpx
from loguru import logger

from routeseq.providers.base import ChatMessage
from routeseq.shared.config import RouteseqConfig


class OpenAICompatibleAssistant:
    """
    Language assistant backed by any OpenAI-compatible ``/chat/completions``
    endpoint, streamed as server-sent events.

    Transport errors propagate to the caller; the resolver's boundary wrapper
    turns them into a fallback.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        temperature: float = 0.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: RouteseqConfig) -> "OpenAICompatibleAssistant":
        return cls(
            base_url=config.llm_base_url,
            model=config.llm_model,
            api_key=config.llm_api_key,
            temperature=config.llm_temperature,
            timeout=config.collaborator_timeout,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def ask(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        payload = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": self.temperature,
            "stream": True,
        }
        log = logger.bind(op="assistant.ask")
        log.debug(f"POST {self.base_url}/chat/completions model={self.model}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            async with client.stream(
                "POST", f"{self.base_url}/chat/completions", json=payload, headers=self._headers()
            ) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    chunk = _parse_sse_line(line)
                    if chunk is None:
                        continue
                    if chunk == "[DONE]":
                        break
                    yield chunk


def _parse_sse_line(line: str) -> Optional[str]:
    """Content delta carried by one ``data:`` line, ``"[DONE]"`` at end of stream."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:") :].strip()
    if data == "[DONE]":
        return data
    if not data:
        return None
    event = json.loads(data)
    choices = event.get("choices") or []
    if not choices:
        return None
    delta = choices[0].get("delta") or choices[0].get("message") or {}
    content = delta.get("content")
    return content or None
