from __future__ import annotations

from pathlib import PurePath
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# The five mapping-annotation verbs plus the remaining RequestMethod members
# a `method = RequestMethod.X` attribute can name.
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD", "TRACE"]


class Position(BaseModel):
    """Zero-based line/character position in a source file."""

    model_config = ConfigDict(frozen=True)

    line: int = Field(ge=0)
    character: int = Field(default=0, ge=0)


class SourceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: Position
    end: Position

    @model_validator(mode="after")
    def _ordered(self) -> "SourceRange":
        if (self.end.line, self.end.character) < (self.start.line, self.start.character):
            raise ValueError("range end precedes start")
        return self

    def contains(self, pos: Position) -> bool:
        return (self.start.line, self.start.character) <= (pos.line, pos.character) <= (
            self.end.line,
            self.end.character,
        )


class SourceLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    position: Position

    @property
    def file_name(self) -> str:
        return PurePath(self.file).name


class EndpointDescriptor(BaseModel):
    """
    One discovered route handler.

    A mapping with N paths yields N descriptors that share handler_name and
    location; they differ only in ``path``.
    """

    model_config = ConfigDict(frozen=True)

    http_method: HttpMethod
    path: str
    handler_name: str
    location: SourceLocation
    annotation_span: tuple[int, int]

    @field_validator("path")
    @classmethod
    def _normalized_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"path must start with '/': {v!r}")
        if v != "/" and v.endswith("/"):
            raise ValueError(f"path must not end with '/': {v!r}")
        return v

    @field_validator("annotation_span")
    @classmethod
    def _span_ordered(cls, v: tuple[int, int]) -> tuple[int, int]:
        if v[1] < v[0]:
            raise ValueError(f"annotation span end precedes start: {v}")
        return v

    @property
    def label(self) -> str:
        return f"{self.http_method} {self.path}"

    def sort_key(self) -> tuple[str, str, str, str, int]:
        return (self.path, self.http_method, self.handler_name, self.location.file, self.location.position.line)


class EndpointDiagramMeta(BaseModel):
    """Framing details for a diagram rooted at an endpoint handler."""

    model_config = ConfigDict(frozen=True)

    http_method: str
    path: str
    handler_name: str

    @classmethod
    def from_descriptor(cls, d: EndpointDescriptor) -> "EndpointDiagramMeta":
        return cls(http_method=d.http_method, path=d.path, handler_name=d.handler_name)
