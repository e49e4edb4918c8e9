from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence


@dataclass(frozen=True)
class MappingRule:
    """One recognised route annotation; ``http_method`` None means "read it from method="."""

    annotation: str
    http_method: Optional[str]


@dataclass(frozen=True)
class MappingInfo:
    http_method: str
    paths: tuple[str, ...]
    offset: int = 0  # where the winning annotation starts in the parsed text


DEFAULT_RULES: tuple[MappingRule, ...] = (
    MappingRule("GetMapping", "GET"),
    MappingRule("PostMapping", "POST"),
    MappingRule("PutMapping", "PUT"),
    MappingRule("DeleteMapping", "DELETE"),
    MappingRule("PatchMapping", "PATCH"),
    MappingRule("RequestMapping", None),
)

CONTROLLER_ANNOTATIONS: tuple[str, ...] = ("RestController", "Controller")

PATH_KEYS = ("value", "path")
METHOD_KEY = "method"
DEFAULT_METHOD = "GET"
DEFAULT_PATH = "/"

_REQUEST_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE")

_STRING_LITERAL = re.compile(r'"((?:[^"\\]|\\.)*)"')
_SINGLE_STRING = re.compile(r'^"((?:[^"\\]|\\.)*)"$', re.S)
_BRACED = re.compile(r"^\{(.*)\}$", re.S)
_ATTRIBUTE_KEY = re.compile(r"(\w+)\s*=\s*")
_BARE_VALUE = re.compile(r"(?:[\w$]+\.)*[\w$]+")
_ENUM_VERB = re.compile(r"(?:\bRequestMethod\.)?\b(" + "|".join(_REQUEST_METHODS) + r")\b")


def _annotation_pattern(names: Sequence[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(n) for n in names)
    return re.compile(r"@(?:[\w$]+\.)*(" + alternatives + r")\b")


_CONTROLLER_RE = _annotation_pattern(CONTROLLER_ANNOTATIONS)


def is_controller_block(text: str) -> bool:
    return bool(text) and _CONTROLLER_RE.search(text) is not None


def parse_mapping_annotations(
    text: str, rules: Sequence[MappingRule] = DEFAULT_RULES
) -> Optional[MappingInfo]:
    """
    Find the route annotation in a text block and return its verb and raw paths.

    The block is usually the lines in front of a class or method declaration
    and may hold unrelated annotations and comments. When several route
    annotations are present the last one (closest to the declaration) wins.

    Recognised attribute shapes:
      @GetMapping("/x")
      @GetMapping({"/a", "/b"})
      @PostMapping(value = "/x") / (path = {"/a", "/b"})
      @RequestMapping(value = "/x", method = RequestMethod.POST)
      @RequestMapping(method = {RequestMethod.GET, RequestMethod.POST})  -> first verb only

    Paths are trimmed but otherwise returned as written; normalisation is
    the combiner's job.
    """
    if not text:
        return None

    by_name = {r.annotation: r for r in rules}
    pattern = _annotation_pattern(list(by_name))

    last: Optional[tuple[MappingRule, str, int]] = None
    for m in pattern.finditer(text):
        attrs = _attribute_list(text, m.end())
        last = (by_name[m.group(1)], attrs if attrs is not None else "", m.start())

    if last is None:
        return None

    rule, attrs, offset = last
    method, paths = _parse_attributes(attrs.strip(), rule.http_method)
    return MappingInfo(http_method=method or DEFAULT_METHOD, paths=tuple(paths), offset=offset)


def _attribute_list(text: str, pos: int) -> Optional[str]:
    """Return the contents of a parenthesised list starting at ``pos`` (after whitespace).

    Stops at the first balancing ``)``; string literals and nested brackets may
    span lines. Returns None when no list follows or it never closes.
    """
    i = pos
    n = len(text)
    while i < n and text[i].isspace():
        i += 1
    if i >= n or text[i] != "(":
        return None

    end = _balanced(text, i)
    return None if end is None else text[i + 1 : end]


def _balanced(text: str, i: int) -> Optional[int]:
    """Index of the bracket closing the one at ``i``, skipping string literals."""
    n = len(text)
    depth = 0
    j = i
    while j < n:
        ch = text[j]
        if ch == '"':
            m = _STRING_LITERAL.match(text, j)
            if m is None:
                return None
            j = m.end()
            continue
        if ch in "({[":
            depth += 1
        elif ch in ")}]":
            depth -= 1
            if depth == 0:
                return j
        j += 1
    return None


def _iter_attributes(attrs: str) -> Iterator[tuple[str, Optional[str], Optional[str], Optional[str]]]:
    """Yield (key, string value, array content, bare value) for each ``key = value`` pair."""
    pos = 0
    while True:
        m = _ATTRIBUTE_KEY.search(attrs, pos)
        if m is None:
            return
        key, start = m.group(1), m.end()
        if attrs.startswith('"', start):
            s = _STRING_LITERAL.match(attrs, start)
            if s is None:
                return
            yield key, s.group(1), None, None
            pos = s.end()
        elif attrs.startswith("{", start):
            end = _balanced(attrs, start)
            if end is None:
                return
            yield key, None, attrs[start + 1 : end], None
            pos = end + 1
        else:
            bare = _BARE_VALUE.match(attrs, start)
            if bare is None:
                pos = start
                continue
            yield key, None, None, bare.group(0)
            pos = bare.end()


def _has_assignment(attrs: str) -> bool:
    return "=" in _STRING_LITERAL.sub('""', attrs)


def _string_items(content: str) -> list[str]:
    return [s.strip() for s in _STRING_LITERAL.findall(content)]


def _first_verb(text: str) -> Optional[str]:
    m = _ENUM_VERB.search(text)
    return m.group(1) if m else None


def _parse_attributes(attrs: str, implied_method: Optional[str]) -> tuple[Optional[str], list[str]]:
    method = implied_method

    if not attrs:
        return method, [DEFAULT_PATH]

    if not _has_assignment(attrs):
        single = _SINGLE_STRING.match(attrs)
        if single:
            return method, [single.group(1).strip()]
        braced = _BRACED.match(attrs)
        if braced:
            return method, _string_items(braced.group(1))

    paths: list[str] = []
    found_path_key = False
    for key, string_value, array_content, bare_value in _iter_attributes(attrs):
        if key in PATH_KEYS:
            found_path_key = True
            if array_content is not None:
                paths = _string_items(array_content)
            elif string_value is not None:
                paths = [string_value.strip()]
        elif key == METHOD_KEY:
            verb = _first_verb(array_content if array_content is not None else (bare_value or ""))
            if verb is not None:
                method = verb

    if not found_path_key:
        paths = [DEFAULT_PATH]

    return method, paths
