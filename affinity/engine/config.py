"""Configuration management for Affinity."""

from pathlib import Path
from typing import List, Literal, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractionConfig(BaseModel):
    """Keyword extraction backend. ``api_key`` is opaque to the engine."""
    model_config = ConfigDict(frozen=True)

    provider: Literal["ollama", "openai"] = "ollama"
    model: str = "qwen2.5:3b"
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_s: float = 30.0
    max_content_chars: int = 20000


class IndexingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    exclude_folders: str = ""
    include_files: str = "**/*.md"
    exclude_files: str = ""
    keywords_property: str = "keywords"
    last_index_time_property: str = "lastIndexTime"
    min_reindex_gap_s: int = 120
    max_attempts: int = 3
    retry_delay_s: float = 1.0
    visibility_timeout_s: float = 2.0
    reindex_existing: bool = False
    auto_reindex: bool = False

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        return v

    @property
    def excluded_prefixes(self) -> List[str]:
        return _split_list(self.exclude_folders)

    @property
    def excluded_globs(self) -> List[str]:
        return _split_list(self.exclude_files)


class RelatedConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    similarity_threshold: float = 0.1
    title_weight: float = 0.5
    keyword_weight: float = 0.5
    content_weight: float = 0.0
    max_results: int = 10
    excerpt_length: int = 100
    open_mode: Literal["current", "new", "split"] = "current"

    @field_validator("similarity_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("similarity_threshold must be between 0 and 1")
        return v

    @field_validator("title_weight", "keyword_weight", "content_weight")
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if v < 0:
            raise ValueError("weights must be non-negative")
        return v


class Config(BaseModel):
    """Main configuration for Affinity."""
    model_config = ConfigDict(frozen=True)

    vault_path: Path
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    related: RelatedConfig = Field(default_factory=RelatedConfig)

    @field_validator("vault_path")
    @classmethod
    def validate_vault_path(cls, v: Path) -> Path:
        if isinstance(v, str):
            v = Path(v)
        v = v.expanduser().resolve()
        if not v.exists():
            logger.warning(f"Vault path does not exist: {v}")
        return v

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML file."""
        if config_path is None:
            candidates = [
                Path("affinity.yaml"),
                Path.home() / ".config" / "affinity" / "config.yaml",
                Path("/etc/affinity/config.yaml"),
            ]
            for candidate in candidates:
                if candidate.exists():
                    config_path = candidate
                    break
            else:
                raise FileNotFoundError(
                    f"No config file found. Searched: {[str(c) for c in candidates]}"
                )

        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]
