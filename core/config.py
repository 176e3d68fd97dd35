"""Configuration loader -- reads config.yaml + .env, validates with Pydantic.

Resolves ${ENV_VAR} references in YAML values from environment variables.
Every setting has a default, so a missing config.yaml is not an error. Failing
to create the state directories is: it raises FatalSetup.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from core.duration import parse_duration
from core.errors import FatalSetup
from core.models.tasks import DEFAULT_OLLAMA_HOST

logger = logging.getLogger(__name__)

# Default home directory for all state files
DEFAULT_HOME = Path.home() / ".web-observer"
HOME_ENV_VAR = "WEB_OBSERVER_HOME"

USERSCRIPTS_DIRNAME = "userscripts"
LOG_FILENAME = "web-observer.log"
DAEMON_LOG_FILENAME = "web-observer-daemon.log"
RESULT_LOG_FILENAME = "results.jsonl"
PID_FILENAME = "daemon.pid"


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} references in config values."""
    if isinstance(value, str):
        pattern = re.compile(r"\$\{(\w+)\}")
        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                logger.warning("Environment variable %s not set", var_name)
                return match.group(0)  # leave unresolved
            return env_value
        return pattern.sub(replacer, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _check_duration(value: str) -> str:
    parse_duration(value)
    return value


# ---------------------------------------------------------------------------
# Config models (Pydantic)
# ---------------------------------------------------------------------------

class SchedulerConfig(BaseModel):
    timezone: str = "UTC"
    heartbeat_interval: str = "5m"
    # Same-task overlap: when false, a fire is skipped while the previous
    # run of that task is still in flight.
    allow_overlap: bool = True
    # How long a stopping daemon waits for in-flight runs. Keep it inside the
    # supervisor's 5s stop window or `wo stop` escalates to SIGKILL.
    shutdown_timeout: str = "4s"

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value!r}")
        return value

    check_durations = field_validator(
        "heartbeat_interval", "shutdown_timeout"
    )(_check_duration)


class PipelineConfig(BaseModel):
    max_retries: int = Field(default=3, ge=1)
    retry_delay: str = "2s"
    navigation_timeout: str = "30s"
    inference_attempts: int = Field(default=1, ge=1)
    inference_timeout: str = "120s"

    check_durations = field_validator(
        "retry_delay", "navigation_timeout", "inference_timeout"
    )(_check_duration)


class ExtractionConfig(BaseModel):
    browser: Literal["chrome", "firefox"] = "chrome"
    headless: bool = True


class OllamaConfig(BaseModel):
    default_host: str = DEFAULT_OLLAMA_HOST


class ServerConfig(BaseModel):
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8765


class LoggingConfig(BaseModel):
    level: str = "INFO"


class AppConfig(BaseModel):
    """Top-level application configuration."""

    home_dir: str = str(DEFAULT_HOME)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def home_path(self) -> Path:
        """Resolved home directory as a Path."""
        return Path(self.home_dir).expanduser()

    @property
    def userscripts_path(self) -> Path:
        return self.home_path / USERSCRIPTS_DIRNAME

    @property
    def log_path(self) -> Path:
        return self.home_path / LOG_FILENAME

    @property
    def daemon_log_path(self) -> Path:
        return self.home_path / DAEMON_LOG_FILENAME

    @property
    def result_log_path(self) -> Path:
        return self.home_path / RESULT_LOG_FILENAME

    @property
    def pid_path(self) -> Path:
        return self.home_path / PID_FILENAME


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def resolve_home(home: str | Path | None = None) -> Path:
    """Pick the home directory: explicit arg, then $WEB_OBSERVER_HOME, then default."""
    if home is not None:
        return Path(home).expanduser()
    return Path(os.environ.get(HOME_ENV_VAR, str(DEFAULT_HOME))).expanduser()


def load_config(
    home: str | Path | None = None,
    config_path: str | Path | None = None,
    env_path: str | Path | None = None,
) -> AppConfig:
    """Load configuration from YAML + .env files.

    1. Load .env into environment variables
    2. Load config.yaml and resolve ${ENV_VAR} references
    3. Validate against Pydantic models
    4. Create home directory structure if needed
    """
    home_path = resolve_home(home)

    if env_path is None:
        env_path = home_path / ".env"
    if config_path is None:
        config_path = home_path / "config.yaml"

    env_path = Path(env_path)
    config_path = Path(config_path)

    # Load .env
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from %s", env_path)
    else:
        logger.debug("No .env file at %s", env_path)

    # Load config.yaml
    raw_config: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}
        logger.info("Loaded config from %s", config_path)
    else:
        logger.debug("No config file at %s, using defaults", config_path)

    resolved = _resolve_env_vars(raw_config)
    resolved["home_dir"] = str(home_path)

    try:
        config = AppConfig(**resolved)
    except ValidationError as exc:
        raise FatalSetup(f"Invalid configuration in {config_path}: {exc}") from exc
    ensure_directories(config)
    return config


def ensure_directories(config: AppConfig) -> None:
    """Create the state directory structure if it doesn't exist."""
    for d in (config.home_path, config.userscripts_path):
        try:
            d.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FatalSetup(f"Error creating directory {d}: {exc}") from exc
