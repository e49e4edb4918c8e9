"""Configuration management using pydantic-settings."""
from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class RouteseqConfig(BaseSettings):
    """Runtime settings, read from ``ROUTESEQ_*`` environment variables."""

    log_level: str = Field(default="INFO", validation_alias="ROUTESEQ_LOG_LEVEL")
    file_glob: str = Field(default="**/*.java", validation_alias="ROUTESEQ_FILE_GLOB")
    max_call_depth: int = Field(default=5, ge=0, validation_alias="ROUTESEQ_MAX_CALL_DEPTH")
    class_annotation_window: int = Field(
        default=5, ge=1, validation_alias="ROUTESEQ_CLASS_ANNOTATION_WINDOW"
    )
    collaborator_timeout: float = Field(
        default=30.0, gt=0, validation_alias="ROUTESEQ_COLLABORATOR_TIMEOUT"
    )
    max_file_bytes: int = Field(default=500_000, validation_alias="ROUTESEQ_MAX_FILE_BYTES")

    llm_base_url: str = Field(
        default="https://api.openai.com/v1", validation_alias="ROUTESEQ_LLM_BASE_URL"
    )
    llm_api_key: Optional[str] = Field(default=None, validation_alias="ROUTESEQ_LLM_API_KEY")
    llm_model: str = Field(default="gpt-4o", validation_alias="ROUTESEQ_LLM_MODEL")
    llm_temperature: float = Field(default=0.0, validation_alias="ROUTESEQ_LLM_TEMPERATURE")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


def load_config(**overrides: object) -> RouteseqConfig:
    """Build a fresh config from the environment, applying explicit overrides."""
    cleaned = {k: v for k, v in overrides.items() if v is not None}
    return RouteseqConfig(**cleaned)
