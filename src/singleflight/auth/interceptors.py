"""Request/response pipeline decisions shared by the requests and httpx adapters."""

from enum import Enum
from typing import Mapping, Optional

from singleflight.auth.errors import UpstreamAuthFailure

AUTHORIZATION_HEADER = "Authorization"
AUTH_REJECTION_STATUSES = frozenset({401})


class AttemptState(Enum):
    FIRST_ATTEMPT = "first_attempt"
    RETRIED = "retried"


def is_auth_rejection(status_code: int) -> bool:
    return status_code in AUTH_REJECTION_STATUSES


def bearer_header(credential: str) -> str:
    return f"Bearer {credential}"


def with_credential(headers: Mapping[str, str], credential: str) -> dict:
    """Return a copy of ``headers`` carrying the bearer credential."""
    updated = {k: v for k, v in headers.items() if k.lower() != AUTHORIZATION_HEADER.lower()}
    updated[AUTHORIZATION_HEADER] = bearer_header(credential)
    return updated


def credential_from_header(value: Optional[str]) -> Optional[str]:
    """Recover the credential a request was sent with."""
    if value and value.startswith("Bearer "):
        return value[len("Bearer ") :]
    return None


def next_state(state: AttemptState, response) -> Optional[AttemptState]:
    """Decide what to do with a response.

    Returns RETRIED when the request should be replayed with a renewed credential,
    None when the response passes through unchanged.

    Raises:
        UpstreamAuthFailure: The already retried request was rejected again.
    """
    if not is_auth_rejection(response.status_code):
        return None
    if state is AttemptState.FIRST_ATTEMPT:
        return AttemptState.RETRIED
    raise UpstreamAuthFailure(response)
