"""Pydantic Settings with YAML profile support.

Priority (highest first): env vars > .env > config.yaml > config.default.yaml
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, YamlConfigSettingsSource


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class LLMProfile(BaseModel):
    """One named provider profile (embeddings + response generation)."""

    chat_model: str = "openai/gpt-4o-mini"
    embed_model: str = "openai/text-embedding-3-small"
    embed_dim: int = 1536
    embed_max_chars: int = 8000  # provider input limit, query text is cut here
    temperature: float = 0.1
    max_tokens: int = 2048


class QdrantConfig(BaseModel):
    path: str = "./data/qdrant"
    collection: str = "hub_chunks"


class StoreConfig(BaseModel):
    path: str = "./data/hubcontext.db"


class ChunkerConfig(BaseModel):
    chunk_size: int = 1000
    chunk_overlap: int = 200


class RetrievalConfig(BaseModel):
    """Defaults and bounds for context retrieval."""

    threshold: float = 0.7
    count: int = 5
    min_count: int = 1
    max_count: int = 50
    cache_ttl_seconds: int = 86_400  # one day
    snippet_length: int = 300


class BatchConfig(BaseModel):
    """Client polling and retention for ingestion batches."""

    poll_interval: float = 5.0
    max_poll_interval: float = 60.0
    backoff_factor: float = 2.0
    retention_days: int = 30


class MetricsConfig(BaseModel):
    enabled: bool = True


class PromptsConfig(BaseModel):
    """System prompt used when generating an answer from retrieved context."""

    system_prompt: str = (
        "You are a helpful assistant answering questions about company documents.\n"
        "Answer the user's question based on the provided context excerpts.\n"
        "Always cite your sources using [D1], [D2], etc.\n"
        "If the context doesn't contain enough information, say so clearly."
    )


# ---------------------------------------------------------------------------
# Main settings
# ---------------------------------------------------------------------------

def _project_root() -> Path:
    return Path(os.environ.get("HUBCONTEXT_ROOT", "."))


def _yaml_files() -> list[Path]:
    """Return YAML config file paths relative to the project root."""
    root = _project_root()
    files = [root / "config.default.yaml"]
    user_cfg = root / "config.yaml"
    if user_cfg.exists():
        files.append(user_cfg)
    return files


class Settings(BaseSettings):
    """Application settings loaded from YAML + env vars."""

    model_config = SettingsConfigDict(
        env_prefix="HUBCONTEXT_",
        env_nested_delimiter="__",
    )

    active_profile: str = "default"
    profiles: dict[str, LLMProfile] = {}
    qdrant: QdrantConfig = QdrantConfig()
    store: StoreConfig = StoreConfig()
    chunker: ChunkerConfig = ChunkerConfig()
    retrieval: RetrievalConfig = RetrievalConfig()
    batches: BatchConfig = BatchConfig()
    metrics: MetricsConfig = MetricsConfig()
    prompts: PromptsConfig = PromptsConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(
                settings_cls,
                yaml_file=_yaml_files(),
            ),
        )

    @property
    def llm(self) -> LLMProfile:
        """Return the currently active provider profile."""
        if self.active_profile not in self.profiles:
            available = ", ".join(self.profiles.keys()) or "(none)"
            raise KeyError(
                f"Profile '{self.active_profile}' not found. Available: {available}"
            )
        return self.profiles[self.active_profile]


# ---------------------------------------------------------------------------
# Cached accessor
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings(**kwargs: Any) -> Settings:
    """Load settings once per process. Call reset_settings() to reload."""
    load_dotenv(_project_root() / ".env", override=False)
    return Settings(**kwargs)


def reset_settings() -> None:
    """Clear the settings cache so the next get_settings() reloads from disk."""
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Config persistence
# ---------------------------------------------------------------------------

def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def save_user_config(overrides: dict) -> Path:
    """Deep-merge *overrides* into config.yaml and reset the settings cache.

    Keys not present in *overrides* are preserved.
    """
    import yaml

    config_path = _project_root() / "config.yaml"

    existing: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            existing = yaml.safe_load(f) or {}

    _deep_merge(existing, overrides)

    with open(config_path, "w") as f:
        yaml.dump(existing, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    reset_settings()
    return config_path
