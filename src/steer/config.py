"""Configuration loading and validation.

Settings live in a JSON file (`steer.json` in the working directory, or
`config.json` in the user config directory). Keys may be written in either
snake_case or camelCase. Secrets such as `ANTHROPIC_API_KEY` come from the
environment, optionally seeded from a `.env` file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError
from pydantic.alias_generators import to_camel

from steer.paths import config_dir

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_INTERRUPT_PREFIX = "[User interrupt]"
CONFIG_FILES = ("steer.json", ".steer.json")
USER_CONFIG_FILE = "config.json"

PermissionMode = Literal["default", "acceptEdits", "bypassPermissions", "plan"]
SpinnerStyle = Literal["braille", "dots", "minimal"]
ColorScheme = Literal["default", "light", "minimal"]


class ConfigError(ValueError):
    """Raised when a configuration file cannot be read or fails validation."""


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class UIConfig(_ConfigModel):
    """Display toggles and styling for the terminal renderer."""

    show_token_counts: bool = True
    show_cost: bool = True
    show_timing: bool = True
    spinner_style: SpinnerStyle = "braille"
    color_scheme: ColorScheme = "default"


class SteerConfig(_ConfigModel):
    """Resolved client configuration handed to the session."""

    model: str = Field(DEFAULT_MODEL, min_length=1)
    max_turns: PositiveInt = 50
    permission_mode: PermissionMode = "default"
    cwd: str | None = None
    allowed_tools: list[str] = Field(default_factory=list)
    disallowed_tools: list[str] = Field(default_factory=list)
    mcp_servers: dict[str, Any] = Field(default_factory=dict)
    system_prompt: str | None = None
    interrupt_prefix: str = Field(DEFAULT_INTERRUPT_PREFIX, min_length=1)
    ui: UIConfig = Field(default_factory=UIConfig)

    def working_directory(self) -> str:
        return self.cwd or os.getcwd()


def find_config_path(cwd: Path | None = None) -> Path | None:
    """Return the first existing config file, project files before the user file."""
    base = cwd or Path.cwd()
    for name in CONFIG_FILES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    user_file = config_dir() / USER_CONFIG_FILE
    if user_file.is_file():
        return user_file
    return None


def parse_config(data: Any, *, source: str = "<config>") -> SteerConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: config must be a JSON object")
    try:
        return SteerConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigError(f"{source}: {problems}") from exc


def load_config(path: str | Path | None = None, *, cwd: Path | None = None) -> SteerConfig:
    """Load configuration from `path` or the default lookup, falling back to defaults."""
    config_path = Path(path) if path is not None else find_config_path(cwd)
    if config_path is None:
        return SteerConfig()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to load config from {config_path.name}: {exc}") from exc
    return parse_config(data, source=config_path.name)


def load_environment() -> None:
    """Load `.env` from the user config dir and the working directory without overriding real env vars."""
    load_dotenv(config_dir() / ".env", override=False)
    load_dotenv(Path.cwd() / ".env", override=False)


def has_api_key() -> bool:
    return bool(os.getenv("ANTHROPIC_API_KEY"))


def default_config_text() -> str:
    payload = SteerConfig().model_dump(by_alias=True, exclude={"cwd", "system_prompt"})
    return json.dumps(payload, indent=2) + "\n"


def write_default_config(directory: Path | None = None) -> Path:
    """Write a default `steer.json`, refusing to replace an existing file."""
    target = (directory or Path.cwd()) / CONFIG_FILES[0]
    if target.exists():
        raise ConfigError(f"{target.name} already exists")
    target.write_text(default_config_text(), encoding="utf-8")
    return target
