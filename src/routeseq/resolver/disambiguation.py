from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from loguru import logger

from routeseq.domain.models import EndpointDescriptor
from routeseq.extractors.spring.paths import normalize_path
from routeseq.providers.base import ChatMessage, LanguageAssistant, OutputSink
from routeseq.shared.boundary import call_collaborator
from routeseq.shared.cancellation import CancellationToken
from routeseq.shared.errors import CollaboratorError, InvalidInvocationError, OperationCancelled


class Stage(str, Enum):
    TRIVIAL = "trivial"
    DIRECT_MATCH = "direct_match"
    KEYWORD_MATCH = "keyword_match"
    ASSISTANT = "assistant"
    CLARIFY = "clarify"


# one successor per stage when it fails to produce a unique descriptor;
# CLARIFY is terminal and always answers
_NEXT: dict[Stage, Stage] = {
    Stage.TRIVIAL: Stage.DIRECT_MATCH,
    Stage.DIRECT_MATCH: Stage.KEYWORD_MATCH,
    Stage.KEYWORD_MATCH: Stage.ASSISTANT,
    Stage.ASSISTANT: Stage.CLARIFY,
}

_INDEX_REPLY = re.compile(r"^\s*(-?\d+)")

PROGRESS_ASKING = "Multiple endpoints found. Asking AI to help select the best match..."
MSG_SAID_NONE = "AI assistant could not determine a single best match. Please choose from the list."
MSG_UNCLEAR = "AI assistant gave an unclear answer. Please choose from the list."


@dataclass
class Resolution:
    """Outcome of one resolve call; ``descriptor`` None means "ask the user"."""

    descriptor: Optional[EndpointDescriptor]
    stage: Optional[Stage]
    status: str
    candidates: list[EndpointDescriptor] = field(default_factory=list)


@dataclass
class _State:
    query: str
    descriptors: list[EndpointDescriptor]
    candidates: list[EndpointDescriptor]
    token: Optional[CancellationToken]


def parse_direct_query(query: str) -> Optional[tuple[str, str]]:
    """Split ``"<METHOD> <path>"``; None when the query does not have that shape."""
    parts = query.strip().split()
    if len(parts) < 2:
        return None
    return parts[0].upper(), " ".join(parts[1:])


def keyword_matches(query: str, descriptors: Sequence[EndpointDescriptor]) -> list[EndpointDescriptor]:
    """
    Descriptors whose path or handler name contains the query, or is contained
    in it. Case-insensitive. The root path "/" is too short to count as being
    contained in a query.
    """
    q = query.strip().lower()
    if not q:
        return []

    out: list[EndpointDescriptor] = []
    for d in descriptors:
        path = d.path.lower()
        handler = d.handler_name.lower()
        if q in path or q in handler:
            out.append(d)
        elif (path != "/" and path in q) or (handler and handler in q):
            out.append(d)
    return out


def build_assistant_prompt(query: str, candidates: Sequence[EndpointDescriptor]) -> str:
    listing = "\n\n".join(
        f"Index: {i}\nMethod: {d.http_method}\nPath: {d.path}\nHandler: {d.handler_name}\nFile: {d.location.file_name}"
        for i, d in enumerate(candidates)
    )
    return (
        f'The user provided the query: "{query}"\n\n'
        "I found the following REST API endpoints. Which one is the best match for the user's query?\n\n"
        f"{listing}\n\n"
        "Please respond with only the numeric index of the best matching endpoint. "
        'For example, if the best match is the first endpoint, respond with "0". '
        'If you cannot determine a single best match, respond with "None".'
    )


def parse_assistant_reply(reply: str, count: int) -> tuple[Optional[int], str]:
    """
    Map the assistant's raw reply to (index, status).

    status is one of ``llm_selected_endpoint``, ``llm_said_none`` or
    ``llm_invalid_index``; index is only set for the first.
    """
    text = reply.strip()
    if text.lower() == "none":
        return None, "llm_said_none"
    m = _INDEX_REPLY.match(text)
    if m is None:
        return None, "llm_invalid_index"
    idx = int(m.group(1))
    if 0 <= idx < count:
        return idx, "llm_selected_endpoint"
    return None, "llm_invalid_index"


def clarification_message(query: str, candidates: Sequence[EndpointDescriptor]) -> str:
    lines = "\n".join(f"- `{d.http_method} {d.path}` (in {d.location.file_name})" for d in candidates)
    return (
        f'I found several potential endpoints matching your query "{query}":\n\n'
        f"{lines}\n\n"
        "Could you please clarify which one you meant? You can specify the method and path "
        "(e.g., 'POST /api/users') or provide more details about the functionality."
    )


class EndpointResolver:
    """
    Narrow a descriptor list and a free-text query down to one descriptor.

    Stages run in a fixed order (see ``Stage``), each either returning a
    descriptor or handing over to its single successor. The resolver keeps no
    state between calls; the clarification turn belongs to the caller.
    """

    def __init__(
        self,
        assistant: Optional[LanguageAssistant] = None,
        sink: Optional[OutputSink] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.assistant = assistant
        self.sink = sink
        self.timeout = timeout

    async def resolve(
        self,
        query: str,
        descriptors: Sequence[EndpointDescriptor],
        token: Optional[CancellationToken] = None,
    ) -> Optional[EndpointDescriptor]:
        return (await self.resolve_detailed(query, descriptors, token)).descriptor

    async def resolve_detailed(
        self,
        query: str,
        descriptors: Sequence[EndpointDescriptor],
        token: Optional[CancellationToken] = None,
    ) -> Resolution:
        if descriptors is None or isinstance(descriptors, (str, bytes)):
            raise InvalidInvocationError("resolve() needs a list of endpoint descriptors")
        query = query or ""
        log = logger.bind(op="disambiguate")
        log.bind(status="started").debug(f"{query!r} over {len(descriptors)} endpoints")

        state = _State(query=query, descriptors=list(descriptors), candidates=list(descriptors), token=token)
        handlers = {
            Stage.TRIVIAL: self._trivial,
            Stage.DIRECT_MATCH: self._direct_match,
            Stage.KEYWORD_MATCH: self._keyword_match,
            Stage.ASSISTANT: self._assistant,
        }

        stage = Stage.TRIVIAL
        while stage is not Stage.CLARIFY:
            if token is not None and token.is_cancelled:
                return _cancelled(stage, state)
            result = await handlers[stage](state)
            if result is not None:
                log.bind(status=result.status).info(f"{stage.value}: {result.status}")
                return result
            stage = _NEXT[stage]

        if token is not None and token.is_cancelled:
            return _cancelled(stage, state)
        result = await self._clarify(state)
        log.bind(status=result.status).info(f"{stage.value}: {result.status}")
        return result

    def _notify_progress(self, message: str) -> None:
        if self.sink is not None:
            self.sink.progress(message)

    def _notify(self, text: str) -> None:
        if self.sink is not None:
            self.sink.markdown(text)

    async def _trivial(self, s: _State) -> Optional[Resolution]:
        if not s.descriptors:
            return Resolution(None, Stage.TRIVIAL, "no_endpoints_provided", [])
        if len(s.descriptors) == 1:
            return Resolution(s.descriptors[0], Stage.TRIVIAL, "single_endpoint_returned", s.descriptors)
        if not s.query.strip():
            # nothing to match on; go straight to the user
            return await self._clarify(s)
        return None

    async def _direct_match(self, s: _State) -> Optional[Resolution]:
        parsed = parse_direct_query(s.query)
        if parsed is None:
            return None
        method, path = parsed
        wanted = {path, normalize_path(path) or "/"}
        hits = [d for d in s.descriptors if d.http_method == method and d.path in wanted]
        logger.bind(op="disambiguate").debug(f"direct match {method} {path!r}: {len(hits)} hits")
        if len(hits) == 1:
            return Resolution(hits[0], Stage.DIRECT_MATCH, "direct_match_found", hits)
        return None

    async def _keyword_match(self, s: _State) -> Optional[Resolution]:
        hits = keyword_matches(s.query, s.descriptors)
        logger.bind(op="disambiguate").debug(f"keyword match {s.query!r}: {len(hits)} hits")
        if len(hits) == 1:
            return Resolution(hits[0], Stage.KEYWORD_MATCH, "unique_keyword_match_found", hits)
        s.candidates = hits if len(hits) > 1 else list(s.descriptors)
        return None

    async def _assistant(self, s: _State) -> Optional[Resolution]:
        log = logger.bind(op="disambiguate")
        if self.assistant is None:
            log.info("no language assistant configured, skipping")
            return None

        self._notify_progress(PROGRESS_ASKING)
        prompt = build_assistant_prompt(s.query, s.candidates)
        log.bind(status="sending_prompt").debug(f"prompt of {len(prompt)} chars, {len(s.candidates)} candidates")

        try:
            reply = await call_collaborator(
                "assistant.ask",
                _collect(self.assistant, [ChatMessage(role="user", content=prompt)]),
                target=s.query,
                token=s.token,
                timeout=self.timeout,
            )
        except OperationCancelled:
            return Resolution(None, Stage.ASSISTANT, "cancelled_assistant", s.candidates)
        except CollaboratorError as exc:
            log.bind(status="llm_request_failed").error(f"assistant failed: {exc}")
            reason = str(exc.cause) if exc.cause is not None and str(exc.cause) else "Unknown error"
            self._notify(f"Error during AI assistance: {reason}. Please choose from the list.")
            return None

        idx, status = parse_assistant_reply(reply, len(s.candidates))
        log.bind(status=status).info(f"assistant replied {reply.strip()!r}")
        if idx is not None:
            chosen = s.candidates[idx]
            self._notify(f"AI suggested: {chosen.http_method} {chosen.path}")
            return Resolution(chosen, Stage.ASSISTANT, status, s.candidates)

        self._notify(MSG_SAID_NONE if status == "llm_said_none" else MSG_UNCLEAR)
        return None

    async def _clarify(self, s: _State) -> Resolution:
        self._notify(clarification_message(s.query, s.candidates))
        return Resolution(None, Stage.CLARIFY, "asking_user_clarification", s.candidates)


async def _collect(assistant: LanguageAssistant, messages: Sequence[ChatMessage]) -> str:
    parts: list[str] = []
    async for fragment in assistant.ask(messages):
        parts.append(fragment)
    return "".join(parts)


def _cancelled(stage: Stage, s: _State) -> Resolution:
    logger.bind(op="disambiguate", status=f"cancelled_{stage.value}").info("cancelled")
    return Resolution(None, stage, f"cancelled_{stage.value}", s.candidates)
