"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from blueberry import constants
from blueberry.log import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = constants.CONFIG_DIR / "config.yaml"
DEFAULT_OPENAI_ENDPOINT = "http://127.0.0.1:11434/v1"


class ModelConfig(BaseModel):
    backend: Literal["openai", "anthropic"] = "openai"
    model: str = "gpt-oss:20b"
    # None: the backend default (local ollama for "openai", the SDK default for "anthropic")
    endpoint: Optional[str] = None
    api_key: str = "not used with ollama"
    max_tokens: int = 4096
    temperature: Optional[float] = None
    timeout: int = 120
    # The session loop owns rate-limit retries; SDK retries stay off by default.
    max_retries: int = 0
    pricing_tier: Literal["batch", "flex", "standard", "priority"] = "standard"
    max_context_tokens: Optional[int] = None


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=50, ge=1)
    initial_delay: float = Field(default=1.0, gt=0)
    max_delay: float = Field(default=60.0, gt=0)


class AppConfig(BaseModel):
    log_level: str = "WARNING"
    history_dir: str = str(constants.HISTORY_DIR)
    mcp_config_path: str = str(constants.MCP_CONFIG_FILE)
    command_history_file: str = constants.COMMAND_HISTORY_FILE
    system_prompt: str = constants.DEFAULT_SYSTEM_PROMPT
    system_prompt_file: Optional[str] = str(constants.SYSTEM_PROMPT_FILE)
    max_tool_rounds: int = Field(default=10, ge=1)
    model: ModelConfig = Field(default_factory=ModelConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    def resolve_system_prompt(self) -> str:
        """Return the system prompt file's contents if present, else the inline prompt."""
        if self.system_prompt_file:
            path = Path(self.system_prompt_file).expanduser()
            try:
                text = path.read_text(encoding="utf-8").strip()
            except FileNotFoundError:
                text = ""
            except OSError as e:
                logger.warning("system_prompt_read_error", path=str(path), error=str(e))
                text = ""
            if text:
                return text
        return self.system_prompt


class McpServerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    command: str
    arguments: list[str] = Field(default_factory=list, alias="args")
    env: Optional[dict[str, str]] = None


class McpConfig(BaseModel):
    mcp_servers: list[McpServerConfig] = Field(default_factory=list)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        value = os.environ.get(match.group(1))
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(
    config_path: str | Path | None = None,
    env_path: str | Path = ".env",
) -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation.

    Without an explicit path, a missing ``~/.bb/config.yaml`` is not an error
    and the defaults are returned. An explicit path must exist.
    """
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    if config_path is None:
        config_file = DEFAULT_CONFIG_PATH
        if not config_file.exists():
            return AppConfig()
    else:
        config_file = Path(config_path).expanduser()
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")
    data = yaml.safe_load(_interpolate_env_vars(raw_text)) or {}
    return AppConfig(**data)


def load_mcp_config(path: str | Path) -> Optional[McpConfig]:
    """Load the MCP provider list. Returns None if the file is absent or unreadable."""
    config_file = Path(path).expanduser()
    if not config_file.exists():
        return None

    try:
        raw = json.loads(_interpolate_env_vars(config_file.read_text(encoding="utf-8")))
        return McpConfig(**raw)
    except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
        logger.error("mcp_config_load_error", path=str(config_file), error=str(e))
        return None
