"""Configuration loading and validation."""

import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from thumbforge.types import DEFAULT_WINDOW_SIZE, MAX_WINDOW_SIZE, MIN_WINDOW_SIZE


class WindowConfig(BaseModel):
    """Conversation window configuration."""

    window_size: int = Field(
        default=DEFAULT_WINDOW_SIZE,
        ge=MIN_WINDOW_SIZE,
        le=MAX_WINDOW_SIZE,
        description="Interactions retained verbatim per conversation",
    )
    chars_per_token: int = Field(default=4, ge=1, description="Characters per estimated token")


class BudgetConfig(BaseModel):
    """Token budgets for context slices."""

    display_max_tokens: int = Field(default=8000, ge=0, description="Budget for human-facing history views")
    generation_max_tokens: int = Field(
        default=3000, ge=0, description="Budget for generation requests (leaves headroom for the new prompt)"
    )


class StorageConfig(BaseModel):
    """Conversation store configuration."""

    backend: str = Field(default="json", description="Store backend: json or memory")
    path: Optional[str] = Field(default=None, description="Directory for the json backend")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate store backend."""
        if v not in ("json", "memory"):
            raise ValueError(f"Invalid storage backend: {v}. Must be json or memory")
        return v


class ContextSettings(BaseSettings):
    """Main configuration."""

    model_config = SettingsConfigDict(
        env_prefix="THUMBFORGE_",
        case_sensitive=False,
        extra="ignore",
    )

    window: WindowConfig = Field(default_factory=WindowConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @classmethod
    def load(cls, config_path: Optional[Path | str] = None) -> "ContextSettings":
        """Load configuration from file and environment."""
        if config_path is None:
            config_path = find_config_file()
        elif isinstance(config_path, str):
            config_path = Path(config_path)

        config_dict: dict[str, Any] = {}
        if config_path and config_path.exists():
            if config_path.suffix.lower() == ".json":
                with open(config_path, "r") as f:
                    config_dict = json.load(f) or {}
            else:
                # Default to YAML for .yaml, .yml, or no extension
                with open(config_path, "r") as f:
                    config_dict = yaml.safe_load(f) or {}

        env_overrides: dict[str, dict[str, Any]] = {}
        if storage_path := os.getenv("THUMBFORGE_STORAGE_PATH"):
            env_overrides.setdefault("storage", {})["path"] = storage_path
        if window_size := os.getenv("THUMBFORGE_WINDOW_SIZE"):
            env_overrides.setdefault("window", {})["window_size"] = int(window_size)

        for key, value in env_overrides.items():
            if key in config_dict:
                config_dict[key].update(value)
            else:
                config_dict[key] = value

        return cls(**config_dict)

    def storage_dir(self) -> Path:
        """Directory used by the json store."""
        if self.storage.path:
            return Path(self.storage.path).expanduser()
        return Path.home() / ".config" / "thumbforge" / "conversations"


def find_config_file() -> Optional[Path]:
    """Find config file in resolution order. Prefers JSON over YAML if both exist."""
    candidates = [
        Path(".thumbforge"),
        Path.home() / ".config" / "thumbforge",
    ]
    for directory in candidates:
        for name in ("config.json", "config.yaml", "config.yml"):
            path = directory / name
            if path.exists():
                return path
    return None
