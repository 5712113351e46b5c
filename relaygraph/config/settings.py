# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Engine settings with explicit precedence.

Precedence (highest to lowest):
1. Explicit overrides (cli_args passed to from_sources)
2. Environment variables (RELAYGRAPH_*)
3. YAML settings file (loaded manually)
4. .env file
5. Default values

Usage:
    settings = RelayGraphSettings.from_sources(
        cli_args={"max_steps": 25},
        settings_file="relaygraph.yaml",
    )
    graph = builder.compile(config=GraphConfig.from_settings(settings))
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from relaygraph.core.debug_logger import configure_logging
from relaygraph.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "RELAYGRAPH_"

VALID_BACKENDS = ("memory", "sqlite", "json")
VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CHECKPOINT_PATHS = {
    "sqlite": "~/.relaygraph/checkpoints.db",
    "json": "~/.relaygraph/checkpoints",
}


class RelayGraphSettings(BaseSettings):
    """Configuration for graph execution, checkpointing and logging."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env" if not os.getenv("RELAYGRAPH_SKIP_ENV_FILE") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Execution
    # ==========================================================================

    max_steps: int = Field(
        default=100, ge=1, description="Maximum node executions per invocation"
    )
    serialize_threads: bool = Field(
        default=True,
        description="Serialize concurrent invocations on the same thread id",
    )

    # ==========================================================================
    # Checkpointing
    # ==========================================================================

    checkpoint_backend: str = Field(
        default="memory", description="Checkpoint backend (memory, sqlite, json)"
    )
    checkpoint_path: Optional[str] = Field(
        default=None,
        description="SQLite database file or JSON checkpoint directory (backend default if unset)",
    )
    keep_checkpoint_history: bool = Field(
        default=False, description="Retain superseded checkpoints for list()"
    )

    # ==========================================================================
    # Logging
    # ==========================================================================

    log_level: str = Field(
        default="INFO", description="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR)"
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path (None for console only)"
    )

    @field_validator("checkpoint_backend")
    @classmethod
    def validate_checkpoint_backend(cls, v: str) -> str:
        """Validate checkpoint backend name."""
        v = v.lower()
        if v not in VALID_BACKENDS:
            raise ValueError(f"Invalid checkpoint_backend: {v}. Must be one of {list(VALID_BACKENDS)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {list(VALID_LOG_LEVELS)}")
        return v

    @classmethod
    def from_sources(
        cls,
        cli_args: Optional[Dict[str, Any]] = None,
        settings_file: Optional[Union[str, Path]] = None,
    ) -> "RelayGraphSettings":
        """Load settings with proper precedence.

        Args:
            cli_args: Explicit overrides (highest priority). None values
                and unknown keys are ignored.
            settings_file: Optional YAML file with top-level setting keys.

        Returns:
            RelayGraphSettings instance with all sources merged

        Raises:
            ConfigurationError: If the settings file is unreadable or a value
                fails validation
        """
        settings_dict: Dict[str, Any] = {}

        if settings_file is not None:
            for key, value in _load_yaml_settings(Path(settings_file)).items():
                if key not in cls.model_fields:
                    logger.warning(f"Ignoring unknown setting '{key}' in {settings_file}")
                    continue
                # Environment variables outrank the settings file
                if _env_var_set(key):
                    continue
                settings_dict[key] = value

        if cli_args:
            settings_dict.update(
                {k: v for k, v in cli_args.items() if v is not None and k in cls.model_fields}
            )

        try:
            return cls(**settings_dict)
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(p) for p in first.get("loc", ())) or None
            raise ConfigurationError(
                f"Invalid settings: {first.get('msg', str(e))}",
                config_key=key,
            ) from e

    def resolve_checkpoint_path(self, backend: Optional[str] = None) -> str:
        """Checkpoint location for ``backend`` (the configured backend if None).

        An explicit ``checkpoint_path`` is returned as is; otherwise the
        sqlite backend gets a database file and the json backend a directory.
        """
        if self.checkpoint_path:
            return self.checkpoint_path
        name = (backend or self.checkpoint_backend).lower()
        return DEFAULT_CHECKPOINT_PATHS.get(name, DEFAULT_CHECKPOINT_PATHS["sqlite"])

    def apply_logging(self) -> None:
        """Install relaygraph log handlers at the configured level and file."""
        configure_logging(self.log_level, self.log_file)


def _env_var_set(field_name: str) -> bool:
    wanted = f"{ENV_PREFIX}{field_name}".upper()
    return any(name.upper() == wanted for name in os.environ)


def _load_yaml_settings(path: Path) -> Dict[str, Any]:
    path = path.expanduser()
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load settings file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")
    return data


_settings: Optional[RelayGraphSettings] = None


def load_settings() -> RelayGraphSettings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = RelayGraphSettings.from_sources()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next load_settings() re-reads sources."""
    global _settings
    _settings = None


__all__ = ["RelayGraphSettings", "load_settings", "reset_settings"]
