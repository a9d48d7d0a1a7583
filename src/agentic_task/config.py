# config.py
# Runtime configuration. Settings come from the environment (and a .env
# file, if present); EngineConfig is the explicit value handed to each
# TaskEngine so concurrent engines never share mutable flags.

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-3.5-haiku"


class ConfigurationError(Exception):
    """Raised when required settings (API key, assistant id) are missing."""


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class EngineConfig(BaseModel):
    """Loop-level behaviour for one TaskEngine."""

    model_config = ConfigDict(frozen=True)

    max_iterations: int = Field(default=10, ge=1)
    safe_mode: bool = True
    verbose: bool = False
    tool_timeout: float | None = Field(default=60.0, gt=0)
    approval_timeout: float | None = Field(default=None, gt=0)
    working_dir: Path = Field(default_factory=Path.cwd)


class Settings(BaseModel):
    """Everything needed to wire a client and an engine."""

    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = Field(default=120.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    @classmethod
    def from_env(cls, dotenv_path: str | Path | None = None) -> "Settings":
        load_dotenv(dotenv_path)
        working_dir = os.getenv("AGENTIC_WORKING_DIR")
        return cls(
            api_key=os.getenv("AGENTIC_API_KEY") or os.getenv("OPENROUTER_API_KEY", ""),
            model=os.getenv("AGENTIC_MODEL", DEFAULT_MODEL),
            base_url=os.getenv("AGENTIC_BASE_URL", DEFAULT_BASE_URL),
            request_timeout=_env_float("AGENTIC_REQUEST_TIMEOUT", 120.0),
            max_attempts=int(os.getenv("AGENTIC_MAX_ATTEMPTS", "3")),
            backoff_seconds=_env_float("AGENTIC_BACKOFF_SECONDS", 1.0),
            engine=EngineConfig(
                max_iterations=int(os.getenv("AGENTIC_MAX_ITERATIONS", "10")),
                safe_mode=_env_bool("AGENTIC_SAFE_MODE", True),
                verbose=_env_bool("AGENTIC_VERBOSE", False),
                tool_timeout=_env_float("AGENTIC_TOOL_TIMEOUT", 60.0),
                approval_timeout=_env_float("AGENTIC_APPROVAL_TIMEOUT", None),
                working_dir=Path(working_dir) if working_dir else Path.cwd(),
            ),
        )

    def require_credentials(self) -> None:
        if not self.api_key:
            raise ConfigurationError(
                "API key not found. Set AGENTIC_API_KEY (or OPENROUTER_API_KEY) in your environment or .env file."
            )
        if not self.model:
            raise ConfigurationError("Assistant id not found. Set AGENTIC_MODEL in your environment or .env file.")
