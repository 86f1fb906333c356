"""Protocol definitions for the collaborators of the refresh pipeline."""

from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class CredentialStore(Protocol):
    """Holds the current bearer credential. May be shared between threads."""

    def get(self) -> Optional[str]:
        raise NotImplementedError

    def set(self, credential: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


@runtime_checkable
class Response(Protocol):
    """Protocol for HTTP response objects (requests.Response or httpx.Response)."""

    status_code: int
    headers: Mapping[str, str]
    text: str

    def json(self) -> Any:
        raise NotImplementedError
