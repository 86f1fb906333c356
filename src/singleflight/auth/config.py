import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin

from singleflight.auth import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BASE_URL,
    DEFAULT_ENV_CONFIG_FILE_PATH,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REFRESH_ENDPOINT_RELPATH,
)

BASE_URL_ENV = "SINGLEFLIGHT_API_BASE_URL"
MAX_RETRIES_ENV = "SINGLEFLIGHT_MAX_RETRIES"
BACKOFF_BASE_ENV = "SINGLEFLIGHT_BACKOFF_BASE"


@dataclass(frozen=True)
class RefreshConfig:
    """Static settings for the refresh pipeline. Times are in seconds."""

    base_url: str = DEFAULT_BASE_URL
    refresh_endpoint: str = DEFAULT_REFRESH_ENDPOINT_RELPATH
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base: float = DEFAULT_BACKOFF_BASE
    expiry_margin: float = 0
    timeout: Optional[float] = 10.0

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.backoff_base < 0:
            raise ValueError(f"backoff_base must not be negative, got {self.backoff_base}")
        if self.expiry_margin < 0:
            raise ValueError(f"expiry_margin must not be negative, got {self.expiry_margin}")

    @property
    def refresh_url(self) -> str:
        base = self.base_url if self.base_url.endswith("/") else self.base_url + "/"
        return urljoin(base, self.refresh_endpoint)

    @classmethod
    def from_environ(cls, **overrides) -> "RefreshConfig":
        """Build a config from SINGLEFLIGHT_* environment variables. Explicit overrides win."""
        values = {}
        if os.getenv(BASE_URL_ENV):
            values["base_url"] = os.environ[BASE_URL_ENV]
        if os.getenv(MAX_RETRIES_ENV):
            values["max_retries"] = int(os.environ[MAX_RETRIES_ENV])
        if os.getenv(BACKOFF_BASE_ENV):
            values["backoff_base"] = float(os.environ[BACKOFF_BASE_ENV])
        values.update(overrides)
        return cls(**values)


@dataclass
class Environment:
    name: str
    base_url: str
    refresh_endpoint: str = DEFAULT_REFRESH_ENDPOINT_RELPATH
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base: float = DEFAULT_BACKOFF_BASE

    def to_refresh_config(self, **overrides) -> RefreshConfig:
        values = dict(
            base_url=self.base_url,
            refresh_endpoint=self.refresh_endpoint,
            max_retries=self.max_retries,
            backoff_base=self.backoff_base,
        )
        values.update(overrides)
        return RefreshConfig(**values)


@dataclass
class EnvConfig:
    environments: dict = field(default_factory=dict)
    default_environment: Optional[str] = None


def load_env_config(path=DEFAULT_ENV_CONFIG_FILE_PATH) -> EnvConfig:
    """Load config from JSON file. Returns empty config if file doesn't exist."""
    expanded = Path(path).expanduser()
    if not expanded.exists():
        return EnvConfig()

    data = json.loads(expanded.read_text())

    environments = {}
    for name, env_data in data.get("environments", {}).items():
        environments[name] = Environment(
            name=name,
            base_url=env_data["base_url"],
            refresh_endpoint=env_data.get("refresh_endpoint", DEFAULT_REFRESH_ENDPOINT_RELPATH),
            max_retries=int(env_data.get("max_retries", DEFAULT_MAX_RETRIES)),
            backoff_base=float(env_data.get("backoff_base", DEFAULT_BACKOFF_BASE)),
        )

    return EnvConfig(
        environments=environments,
        default_environment=data.get("default_environment"),
    )
