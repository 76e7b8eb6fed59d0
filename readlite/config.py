"""Configuration and environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .context.store import ContextConfig

# Global config directory
CONFIG_DIR = Path.home() / ".readlite"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
LOCAL_CONFIG_NAME = ".readlite.yaml"

DEFAULT_ENDPOINT = "https://api.readlite.app/api/openrouter"
FALLBACK_MODEL_ID = "deepseek/deepseek-chat-v3-0324:free"

# Template for new config file
CONFIG_TEMPLATE = f"""# ReadLite Configuration

# OpenAI-compatible endpoint (base URL, without /chat/completions)
endpoint: "{DEFAULT_ENDPOINT}"
api_key: ""

# Model used when a request does not name one
model: "{FALLBACK_MODEL_ID}"
temperature: 0.7
max_tokens: 10000

# Context window budget for prompt assembly
context_max_tokens: 4000
reserve_buffer: 800

# Timeouts in seconds
stream_timeout: 30.0
request_timeout: 120.0
max_retries: 0
debug: false
"""


def ensure_config_dir() -> Path:
    """Create config directory if it doesn't exist."""
    if not CONFIG_DIR.exists():
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR


def ensure_config_file() -> Path:
    """Create template config file if it doesn't exist."""
    ensure_config_dir()
    if not CONFIG_FILE.exists():
        CONFIG_FILE.write_text(CONFIG_TEMPLATE)
    return CONFIG_FILE


@dataclass
class Config:
    """Application configuration."""

    api_key: str = ""
    base_url: str = DEFAULT_ENDPOINT
    model: str = FALLBACK_MODEL_ID

    # Completion settings
    temperature: float = 0.7
    max_tokens: int = 10000

    # Context budget
    context_max_tokens: int = 4000
    reserve_buffer: int = 800

    # Transport
    stream_timeout: float = 30.0
    request_timeout: float = 120.0
    max_retries: int = 0
    debug: bool = False

    load_errors: list[str] = field(default_factory=list)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from file and environment variables.

        Config priority (later overrides earlier):
        1. ~/.readlite/config.yaml (global)
        2. .readlite.yaml (local project)
        3. Environment variables
        """
        config_data = {}
        load_errors = []

        # Ensure global config exists (creates template on first run)
        ensure_config_file()

        config_paths = [
            str(CONFIG_FILE),
            os.path.join(os.getcwd(), LOCAL_CONFIG_NAME),
        ]

        for path in config_paths:
            if not os.path.exists(path):
                continue
            try:
                with open(path, "r") as f:
                    file_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                load_errors.append(f"Could not read {path}: {e}")
                continue

            if not isinstance(file_data, dict):
                load_errors.append(f"Ignoring {path}: expected a mapping at the top level")
                continue

            # Support both 'base_url' and 'endpoint'
            if "endpoint" in file_data and "base_url" not in file_data:
                file_data["base_url"] = file_data.pop("endpoint")

            config_data.update(file_data)

        valid_fields = {k: v for k, v in config_data.items()
                        if k in cls.__dataclass_fields__ and k != "load_errors"}
        config = cls(**valid_fields)
        config.load_errors = load_errors

        # Override with environment variables (highest priority)
        env_api_key = os.getenv("READLITE_API_KEY", os.getenv("OPENAI_API_KEY", ""))
        if env_api_key:
            config.api_key = env_api_key

        env_base_url = os.getenv("READLITE_ENDPOINT", os.getenv("READLITE_BASE_URL", ""))
        if env_base_url:
            config.base_url = env_base_url

        env_model = os.getenv("READLITE_MODEL", "")
        if env_model:
            config.model = env_model

        if os.getenv("READLITE_DEBUG"):
            config.debug = os.getenv("READLITE_DEBUG", "").lower() == "true"

        return config

    def context_config(self) -> ContextConfig:
        """Context budget for a ContextStore."""
        return ContextConfig(
            max_tokens=self.context_max_tokens,
            reserve_buffer=self.reserve_buffer,
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = list(self.load_errors)
        if self.reserve_buffer >= self.context_max_tokens:
            errors.append(
                f"reserve_buffer ({self.reserve_buffer}) must be smaller than "
                f"context_max_tokens ({self.context_max_tokens})"
            )
        if self.stream_timeout <= 0 or self.request_timeout <= 0:
            errors.append("Timeouts must be positive")
        return errors

    @staticmethod
    def get_config_path() -> Path:
        """Return path to global config file."""
        return CONFIG_FILE
