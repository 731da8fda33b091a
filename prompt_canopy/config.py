"""Configuration — CLI settings from the environment, project config from .canopy/config.yaml."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

CANOPY_DIR = ".canopy"
CONFIG_FILE = "config.yaml"


class Settings(BaseSettings):
    """Settings for the command layer, read from CANOPY_* env vars or .env."""

    root: Path = Path(".")
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="CANOPY_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()


class ProjectConfig(BaseModel):
    """Contents of .canopy/config.yaml."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    project: str = "canopy"
    version: str = "1"
    emit_dir: str | None = None


def config_path(root: str | Path) -> Path:
    return Path(root) / CANOPY_DIR / CONFIG_FILE


def load_project_config(root: str | Path) -> ProjectConfig:
    """Load the project config, falling back to defaults if absent or unreadable."""
    path = config_path(root)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return ProjectConfig.model_validate(data)
    except FileNotFoundError:
        return ProjectConfig()
    except (yaml.YAMLError, ValidationError) as e:
        logger.warning("config.invalid", path=str(path), error=str(e))
        return ProjectConfig()


def save_project_config(root: str | Path, config: ProjectConfig) -> None:
    path = config_path(root)
    data = config.model_dump(by_alias=True, exclude_none=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
