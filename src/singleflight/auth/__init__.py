import logging
import os
from logging import NullHandler
from pathlib import Path

from singleflight.auth.errors import RenewalError, RenewalExhausted, RenewalRejected, UpstreamAuthFailure

logging.getLogger(__name__).addHandler(NullHandler())

__all__ = ["RenewalError", "RenewalExhausted", "RenewalRejected", "UpstreamAuthFailure"]

try:
    from ._version import __version__
except ImportError:
    __version__ = "0.0.0"

DEFAULT_BASE_URL = "https://localhost:8000/"
DEFAULT_REFRESH_ENDPOINT_RELPATH = "token/refresh/"
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 0.1

DEFAULT_ENV_CONFIG_FILE_PATH = (
    Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "singleflight" / "environments.json"
)
