"""Errors raised while renewing credentials or replaying rejected requests."""

from typing import Any, Optional


class RenewalError(Exception):
    """Base class for credential renewal failures.

    Transport errors are never wrapped in this type, so callers can tell a
    credential problem apart from a network problem.
    """


class RenewalExhausted(RenewalError):
    """Every renewal attempt failed."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(f"Credential renewal failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class RenewalRejected(RenewalError):
    """The renewal endpoint answered but refused to issue a new credential."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(f"Credential renewal rejected with status={status_code}: '{message}'")
        self.status_code = status_code


class UpstreamAuthFailure(Exception):
    """A request was rejected again after being retried with a renewed credential."""

    def __init__(self, response: Any):
        status = getattr(response, "status_code", None)
        super().__init__(f"Request rejected with status={status} after retrying with a renewed credential")
        self.response = response
