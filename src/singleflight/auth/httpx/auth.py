"""httpx auth flows backed by a refresh coordinator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator, Generator

import httpx

from singleflight.auth.interceptors import AttemptState, is_auth_rejection, next_state, with_credential

if TYPE_CHECKING:
    from singleflight.auth.coordinator import AsyncRefreshCoordinator, RefreshCoordinator

log = logging.getLogger(__name__)


def _authorized(request: httpx.Request, credential: str) -> httpx.Request:
    """A new request equal to ``request`` but carrying ``credential``."""
    return httpx.Request(
        request.method,
        request.url,
        headers=with_credential(request.headers, credential),
        content=request.content,
        extensions=dict(request.extensions),
    )


class CoordinatedAuth(httpx.Auth):
    """Bearer auth for httpx.Client.

    Every attempt is sent as a fresh request derived from the original one. A 401
    forces a renewal and the request is replayed once; a second 401 raises
    UpstreamAuthFailure.
    """

    def __init__(self, coordinator: RefreshCoordinator) -> None:
        self._coordinator = coordinator

    def auth_flow(self, request: httpx.Request):
        raise RuntimeError("CoordinatedAuth only supports httpx.Client, use AsyncCoordinatedAuth with AsyncClient")

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.read()
        credential = self._coordinator.ensure_fresh(self._coordinator.store.get())
        response = yield _authorized(request, credential)
        if next_state(AttemptState.FIRST_ATTEMPT, response) is None:
            return

        log.debug(f"Got {response.status_code} from {request.method} {request.url}, renewing credential and retrying")
        credential = self._coordinator.ensure_fresh(credential, force=True)
        response = yield _authorized(request, credential)
        if is_auth_rejection(response.status_code):
            response.read()
        next_state(AttemptState.RETRIED, response)


class AsyncCoordinatedAuth(httpx.Auth):
    """Bearer auth for httpx.AsyncClient. See CoordinatedAuth."""

    def __init__(self, coordinator: AsyncRefreshCoordinator) -> None:
        self._coordinator = coordinator

    def auth_flow(self, request: httpx.Request):
        raise RuntimeError("AsyncCoordinatedAuth only supports httpx.AsyncClient, use CoordinatedAuth with Client")

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        await request.aread()
        credential = await self._coordinator.ensure_fresh(self._coordinator.store.get())
        response = yield _authorized(request, credential)
        if next_state(AttemptState.FIRST_ATTEMPT, response) is None:
            return

        log.debug(f"Got {response.status_code} from {request.method} {request.url}, renewing credential and retrying")
        credential = await self._coordinator.ensure_fresh(credential, force=True)
        response = yield _authorized(request, credential)
        if is_auth_rejection(response.status_code):
            await response.aread()
        next_state(AttemptState.RETRIED, response)
