"""Configuration loading and validation."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/brew_intel.db"
    busy_timeout: float = 30.0
    journal_mode: str = "WAL"


class ApiKeysConfig(BaseModel):
    """API keys configuration."""

    anthropic: Optional[str] = None


class ExtractionConfig(BaseModel):
    """LLM extraction configuration."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2000
    temperature: float = 0.3
    max_content_length: int = 50000
    low_confidence_threshold: float = 0.5
    request_timeout: float = 60.0


class OCRConfig(BaseModel):
    """OCR configuration."""

    enabled: bool = True
    language: str = "eng"
    max_image_width: int = 2000
    timeout: float = 30.0


class DeduplicationConfig(BaseModel):
    """Duplicate detection policy constants."""

    shingle_size: int = 3
    num_perm: int = 128
    duplicate_threshold: float = 0.75
    early_exit_threshold: float = 0.90
    window_days: int = 3
    max_candidates: int = 50


class QueuePolicy(BaseModel):
    """Worker pool and retry policy for one queue."""

    concurrency: int = 1
    max_attempts: int = 3
    backoff_delay: float = 1.0
    max_backoff: float = 300.0
    channel_size: int = 1000


def _collect_policy() -> QueuePolicy:
    return QueuePolicy(concurrency=5, max_attempts=3, backoff_delay=2.0)


def _extract_policy() -> QueuePolicy:
    return QueuePolicy(concurrency=10, max_attempts=3, backoff_delay=5.0)


def _deduplicate_policy() -> QueuePolicy:
    return QueuePolicy(concurrency=3, max_attempts=2, backoff_delay=1.0)


class QueuesConfig(BaseModel):
    """Per-stage queue configuration."""

    collect: QueuePolicy = Field(default_factory=_collect_policy)
    extract: QueuePolicy = Field(default_factory=_extract_policy)
    deduplicate: QueuePolicy = Field(default_factory=_deduplicate_policy)


class RetentionConfig(BaseModel):
    """Retention windows for stored data."""

    content_months: int = 12
    failed_job_days: int = 30
    partition_lookahead_months: int = 3
    stalled_after_minutes: int = 30


class SchedulerConfig(BaseModel):
    """Scheduler configuration."""

    partition_cron: str = "0 0 1 * *"
    dlq_cleanup_cron: str = "30 3 * * *"
    recovery_cron: str = "*/15 * * * *"


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BREW_INTEL_",
        env_nested_delimiter="__",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api_keys: ApiKeysConfig = Field(default_factory=ApiKeysConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    deduplication: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    queues: QueuesConfig = Field(default_factory=QueuesConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def load_config(path: Optional[Path | str] = None) -> Config:
    """Load configuration from file or defaults."""
    global _config

    if path is None:
        search_paths = [
            Path.cwd() / "config.yaml",
            Path.cwd() / "config.yml",
            Path.home() / ".config" / "brew-intel" / "config.yaml",
        ]
        for search_path in search_paths:
            if search_path.exists():
                path = search_path
                break

    if path:
        _config = Config.from_yaml(path)
    else:
        _config = Config()

    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
