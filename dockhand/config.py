"""Runtime settings and pipeline configuration loading.

Runtime settings are env-driven via pydantic-settings: every field can be
overridden with a ``DOCKHAND_*`` environment variable or a ``.env`` file.
The pipeline itself (registry, environments, checks) lives in a TOML file
and is loaded into a frozen ``PipelineConfig``.

Examples
--------
Override via environment::

    export DOCKHAND_LOG_LEVEL=DEBUG
    export DOCKHAND_SSH_CONNECT_TIMEOUT=5
    export DOCKHAND_CONFIG_PATH=deploy/dockhand.toml
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from dockhand.core.errors import ConfigError
from dockhand.models.config import PipelineConfig


class DockhandSettings(BaseSettings):
    """Process-level settings with environment variable overrides."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOCKHAND_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    config_path: Path = Path("dockhand.toml")

    # Remote execution
    ssh_binary: str = "ssh"
    ssh_connect_timeout: int = 10
    strict_host_key_checking: bool = True
    known_hosts_file: Path | None = None
    command_timeout_seconds: float = 600.0

    # Container runtime
    docker_binary: str = "docker"


# Module-level singleton, import as `from dockhand.config import settings`
settings = DockhandSettings()


def load_pipeline_config(path: Path) -> PipelineConfig:
    """Load a ``PipelineConfig`` from a TOML file.

    Accepts either a top-level table or a ``[tool.dockhand]`` table, so the
    configuration can live in ``pyproject.toml``.
    """
    path = Path(path)
    try:
        with path.open("rb") as fh:
            raw = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Pipeline config not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    data = raw.get("tool", {}).get("dockhand", raw)
    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid pipeline config in {path}:\n{exc}") from exc
