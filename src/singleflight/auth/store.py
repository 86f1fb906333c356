"""In-memory credential store."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

log = logging.getLogger(__name__)


class MemoryCredentialStore:
    """Thread-safe holder of the current bearer credential.

    Nothing is persisted; the credential lives as long as the store does.
    """

    def __init__(
        self,
        initial: Optional[str] = None,
        on_updated: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._credential = initial
        self._on_updated = on_updated
        self._lock = threading.Lock()

    def get(self) -> Optional[str]:
        with self._lock:
            return self._credential

    def set(self, credential: str) -> None:
        if not credential:
            raise ValueError("Refusing to store an empty credential")
        with self._lock:
            self._credential = credential
        log.debug("Stored new credential")
        if self._on_updated is not None:
            self._on_updated(credential)

    def clear(self) -> None:
        with self._lock:
            self._credential = None
        log.debug("Cleared stored credential")

    def __repr__(self) -> str:
        state = "set" if self.get() else "empty"
        return f"<{self.__class__.__name__} {state}>"
