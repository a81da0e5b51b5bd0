"""
YAML configuration loader.

Reads optional defaults from .ralphctl.yaml and validates them using
Pydantic. Command-line flags override anything set in the file.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .agent import available_agents
from .errors import ConfigError
from .interrupt import DEFAULT_GRACE_PERIOD
from .iteration_log import DEFAULT_LOG_FILE

logger = logging.getLogger(__name__)

CONFIG_FILE = ".ralphctl.yaml"


# ---------------------------------------------------------------------------
# Pydantic Schema Models
# ---------------------------------------------------------------------------


class ModeSchema(BaseModel):
    """Per-command loop settings."""

    model_config = ConfigDict(extra="forbid")

    max_iterations: int = Field(default=50, ge=1, le=10_000)
    pause: bool = False


class ReverseModeSchema(ModeSchema):
    """Investigations get a higher default ceiling."""

    max_iterations: int = Field(default=100, ge=1, le=10_000)


class RalphConfig(BaseModel):
    """Schema for the whole configuration file."""

    model_config = ConfigDict(extra="forbid")

    agent: str = "claude"
    model: str | None = None
    log_file: str = DEFAULT_LOG_FILE
    grace_period: float = Field(default=DEFAULT_GRACE_PERIOD, gt=0)
    run: ModeSchema = Field(default_factory=ModeSchema)
    reverse: ReverseModeSchema = Field(default_factory=ReverseModeSchema)

    @field_validator("agent")
    @classmethod
    def validate_agent(cls, v: str) -> str:
        if v not in available_agents():
            raise ValueError(
                f"unknown agent '{v}' (available: {', '.join(available_agents())})"
            )
        return v

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    def with_overrides(self, mode: str | None = None, **overrides: Any) -> "RalphConfig":
        """Return a copy with every non-None override applied.

        ``max_iterations`` and ``pause`` apply to the ``mode`` section
        (``run`` or ``reverse``); other keys apply at the top level.
        """
        data = self.model_dump()
        for key in ("max_iterations", "pause"):
            value = overrides.pop(key, None)
            if value is None:
                continue
            if mode not in ("run", "reverse"):
                raise ValueError("mode must be 'run' or 'reverse' for loop overrides")
            data[mode][key] = value
        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return RalphConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(_format_validation_error(e)) from e


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "config"
        parts.append(f"{location}: {item['msg']}")
    return "invalid configuration: " + "; ".join(parts)


def load_config(path: str | Path | None = None, cwd: Path | None = None) -> RalphConfig:
    """Load configuration from ``path`` or ``<cwd>/.ralphctl.yaml``.

    A missing default file yields the built-in defaults; a missing explicit
    path is an error.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    explicit = path is not None
    config_path = Path(path) if explicit else (cwd or Path.cwd()) / CONFIG_FILE

    if not config_path.is_file():
        if explicit:
            raise ConfigError(f"config file not found: {config_path}")
        return RalphConfig()

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read {config_path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path}: expected a mapping at top level")

    try:
        config = RalphConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"{config_path}: {_format_validation_error(e)}") from e

    logger.info("Loaded configuration from %s", config_path)
    return config
