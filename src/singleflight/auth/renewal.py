"""Credential renewal with bounded retries and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import httpx
import requests

from singleflight.auth._http import error_detail
from singleflight.auth._protocols import CredentialStore, Response
from singleflight.auth.config import RefreshConfig
from singleflight.auth.errors import RenewalExhausted, RenewalRejected

log = logging.getLogger(__name__)

# The endpoint refused the refresh credential itself; retrying cannot help.
REJECTED_STATUSES = (400, 401, 403)

ACCESS_FIELD = "access"


def backoff_delay(attempt: int, backoff_base: float) -> float:
    """Delay after the given (1-based) failed attempt: base * 2 ** attempt."""
    return backoff_base * 2**attempt


def credential_from_response(resp: Response) -> str:
    """Extract the new access credential from a renewal response.

    Raises RenewalRejected for auth rejections, the transport's HTTP error for
    other non-2xx statuses and ValueError for an unusable body.
    """
    if resp.status_code in REJECTED_STATUSES:
        raise RenewalRejected(resp.status_code, error_detail(resp))
    resp.raise_for_status()
    body = resp.json()
    credential = body.get(ACCESS_FIELD) if isinstance(body, dict) else None
    if not credential or not isinstance(credential, str):
        raise ValueError(f"Renewal response did not contain an '{ACCESS_FIELD}' credential")
    return credential


class RenewalAttempt:
    """Attempt counter and backoff bookkeeping for a single renew() call."""

    def __init__(self, max_retries: int, backoff_base: float):
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.count = 0
        self.elapsed = 0.0
        self.last_error: Optional[BaseException] = None

    def failed(self, error: BaseException) -> Optional[float]:
        """Record a failed attempt. Returns the delay before the next one, or None when exhausted."""
        self.count += 1
        self.last_error = error
        log.warning(f"Credential renewal attempt {self.count}/{self.max_retries} failed: {error}")
        if self.count >= self.max_retries:
            log.error(f"Failed to renew credential after {self.max_retries} attempts")
            return None
        delay = backoff_delay(self.count, self.backoff_base)
        self.elapsed += delay
        log.warning(f"Retrying credential renewal in {delay:.3f}s (attempt {self.count})")
        return delay

    def exhausted(self) -> RenewalExhausted:
        return RenewalExhausted(self.count, self.last_error)


class RenewalExecutor:
    """Performs the renewal call over a requests Session.

    Calls are sequential; it is the coordinator's job to make sure only one runs at a time.
    """

    RETRYABLE = (requests.RequestException, ValueError)

    def __init__(
        self,
        store: CredentialStore,
        config: Optional[RefreshConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._config = config or RefreshConfig()
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._sleep = sleep

    def _attempt(self) -> str:
        resp = self._session.post(self._config.refresh_url, timeout=self._config.timeout)
        return credential_from_response(resp)

    def renew(self) -> str:
        attempt = RenewalAttempt(self._config.max_retries, self._config.backoff_base)
        while True:
            try:
                credential = self._attempt()
                break
            except self.RETRYABLE as e:
                delay = attempt.failed(e)
                if delay is None:
                    raise attempt.exhausted() from e
            self._sleep(delay)

        self._store.set(credential)
        log.info(f"Renewed credential on attempt {attempt.count + 1}")
        return credential

    def close(self) -> None:
        if self._owns_session:
            self._session.close()


class AsyncRenewalExecutor:
    """Performs the renewal call over an httpx AsyncClient."""

    RETRYABLE = (httpx.HTTPError, ValueError)

    def __init__(
        self,
        store: CredentialStore,
        config: Optional[RefreshConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._config = config or RefreshConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._config.timeout)
        self._sleep = sleep

    async def _attempt(self) -> str:
        resp = await self._client.post(self._config.refresh_url)
        return credential_from_response(resp)

    async def renew(self) -> str:
        attempt = RenewalAttempt(self._config.max_retries, self._config.backoff_base)
        while True:
            try:
                credential = await self._attempt()
                break
            except self.RETRYABLE as e:
                delay = attempt.failed(e)
                if delay is None:
                    raise attempt.exhausted() from e
            await self._sleep(delay)

        self._store.set(credential)
        log.info(f"Renewed credential on attempt {attempt.count + 1}")
        return credential

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
