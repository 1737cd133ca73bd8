"""Configuration schema: validates clixen-config.yml."""

from typing import Literal

from pydantic import BaseModel, model_validator


class StoreConfig(BaseModel):
    """Where templates, deployments and unmatched requests live."""

    backend: Literal["supabase", "local"] = "supabase"
    # Local backend only
    templates_dir: str = "./config/templates"
    state_file: str = ""  # JSON file for deployments / unmatched requests; empty = in-memory


class LLMConfig(BaseModel):
    model: str = "gpt-4o"
    intent_temperature: float = 0.3
    strict_temperature: float = 0.1
    value_temperature: float = 0.1


class MatchingConfig(BaseModel):
    max_candidates: int = 5
    strict_min_confidence: float = 0.75
    similarity_threshold: float = 0.7


class N8nConfig(BaseModel):
    """n8n REST API target. ``base_url`` falls back to the N8N_API_URL env var."""

    base_url: str = ""
    deploy: bool = False
    activate: bool = False


class ClixenConfig(BaseModel):
    """Top-level configuration loaded from clixen-config.yml.

    Secrets (API keys, service-role key) are never read from this file;
    they come from the environment.
    """

    store: StoreConfig = StoreConfig()
    llm: LLMConfig = LLMConfig()
    matching: MatchingConfig = MatchingConfig()
    n8n: N8nConfig = N8nConfig()

    # Firecrawl discovery keywords used to score gallery entries
    discovery_keywords: list[str] = []

    # Output
    output_directory: str = "./output"

    @model_validator(mode="after")
    def check_matching_bounds(self) -> "ClixenConfig":
        if self.matching.max_candidates < 1:
            raise ValueError("matching.max_candidates must be at least 1")
        if not 0.0 <= self.matching.strict_min_confidence <= 1.0:
            raise ValueError("matching.strict_min_confidence must be between 0 and 1")
        return self

    @model_validator(mode="after")
    def check_local_store_dir(self) -> "ClixenConfig":
        if self.store.backend == "local" and not self.store.templates_dir:
            raise ValueError("store.templates_dir is required for the local backend")
        return self
