"""
Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env file.
Stage definitions can be bootstrapped from a YAML file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Main settings class combining all configurations."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # EM tunables (overridable per stage via options["maxIter"] / options["precision"])
    default_max_iterations: int = Field(default=50, ge=1)
    default_precision: float = Field(default=0.0001, gt=0.0)

    # Algorithm selection defaults for new stages
    default_answer_aggregator: str = Field(default="dawid_skene")
    default_worker_ranker: str = Field(default="dawid_skene")
    default_task_allocator: str = Field(default="random")

    # Stage store reads
    store_read_attempts: int = Field(default=3, ge=1)
    store_read_wait_min: float = Field(default=0.5, ge=0.0)
    store_read_wait_max: float = Field(default=8.0, ge=0.0)

    # Config file paths
    config_dir: Path = Field(
        default=Path(__file__).parent,
        description="Directory containing config files",
    )

    @property
    def stages_yaml_path(self) -> Path:
        """Path to stages.yaml bootstrap file."""
        return self.config_dir / "stages.yaml"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function for accessing settings
settings = get_settings()


def load_stage_configs(path: Path | str | None = None) -> list[Any]:
    """
    Load stage definitions from a YAML file.

    The file holds a top-level ``stages`` list; every entry carries the
    StageConfig fields (``id``, ``description``, ``worker_ranker``,
    ``task_allocator``, ``answer_aggregator``, ``options``).

    Args:
        path: YAML file (defaults to settings.stages_yaml_path)

    Returns:
        List of StageConfig records; empty if the file does not exist
    """
    from ..models import StageConfig

    path = Path(path) if path is not None else settings.stages_yaml_path
    if not path.exists():
        logger.info("stages_yaml_missing", path=str(path))
        return []

    with open(path, "r", encoding="utf-8") as f:
        document = yaml.safe_load(f) or {}

    entries = document.get("stages", []) if isinstance(document, dict) else []
    configs = []
    for entry in entries:
        data = dict(entry)
        data.setdefault("answer_aggregator", settings.default_answer_aggregator)
        data.setdefault("worker_ranker", settings.default_worker_ranker)
        data.setdefault("task_allocator", settings.default_task_allocator)
        configs.append(StageConfig(**data))

    logger.info("stages_yaml_loaded", path=str(path), count=len(configs))
    return configs
