"""Configuration management for sysconst using Pydantic models."""

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

CONFIG_FILE_NAME = ".sysconst.json"


class OutputFormat(str, Enum):
    """Output format types."""
    TABLE = "table"
    JSON = "json"
    MARKDOWN = "markdown"


class LogLevel(str, Enum):
    """Logging levels."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"


class ValidationConfig(BaseModel):
    """Validation configuration section."""
    phases: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5, 6])
    strict: bool = False

    @field_validator("phases")
    @classmethod
    def validate_phases(cls, v):
        if not v:
            raise ValueError("phases must not be empty")
        invalid = [p for p in v if p not in range(1, 7)]
        if invalid:
            raise ValueError(f"phases must be between 1 and 6, got: {invalid}")
        return sorted(set(v))

    model_config = ConfigDict(populate_by_name=True)


class OutputConfig(BaseModel):
    """Output configuration section."""
    format: OutputFormat = OutputFormat.TABLE
    quiet: bool = False

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)


class GenerationConfig(BaseModel):
    """Retry-with-feedback loop configuration section."""
    max_attempts: int = Field(alias="maxAttempts", default=3)

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v):
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    model_config = ConfigDict(populate_by_name=True)


class LoggingConfig(BaseModel):
    """Logging configuration section."""
    level: LogLevel = LogLevel.WARN

    model_config = ConfigDict(use_enum_values=True)


class SysconstConfig(BaseModel):
    """Complete sysconst configuration model."""
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid")


def load_config(config_path: str | Path | None = None) -> SysconstConfig:
    """Load configuration, falling back to defaults when no file is found.

    Without an explicit path, ``.sysconst.json`` is searched upward from the
    current directory.

    Raises:
        ValueError: If the file is not a JSON object or fails validation
    """
    path = find_config_file() if config_path is None else Path(config_path)
    if path is None or not path.exists():
        return SysconstConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config file {path}: expected a JSON object")

    try:
        return SysconstConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Failed to load config from {path}: {e}") from e


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Nearest ``.sysconst.json`` in ``start_dir`` (default: cwd) or its parents."""
    start = Path(start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate
    return None
