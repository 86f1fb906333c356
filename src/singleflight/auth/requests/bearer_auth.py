"""Bearer token auth handler for requests."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests
from requests.auth import AuthBase

from singleflight.auth.interceptors import (
    AUTHORIZATION_HEADER,
    AttemptState,
    bearer_header,
    credential_from_header,
    next_state,
    with_credential,
)

if TYPE_CHECKING:
    from singleflight.auth.coordinator import RefreshCoordinator

log = logging.getLogger(__name__)


class CoordinatedBearerAuth(AuthBase):
    """Injects a Bearer token obtained through a RefreshCoordinator into each request.

    Handles 401 responses by forcing a renewal and replaying a copy of the request once.
    A second 401 raises UpstreamAuthFailure.
    """

    def __init__(self, coordinator: RefreshCoordinator) -> None:
        self._coordinator = coordinator

    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        credential = self._coordinator.ensure_fresh(self._coordinator.store.get())
        r.headers[AUTHORIZATION_HEADER] = bearer_header(credential)
        r.register_hook("response", self._handle_401)
        return r

    def _handle_401(self, r: requests.Response, **kwargs) -> requests.Response:
        if next_state(AttemptState.FIRST_ATTEMPT, r) is None:
            return r

        log.debug(f"Got {r.status_code} from {r.request.method} {r.url}, renewing credential and retrying")
        rejected = credential_from_header(r.request.headers.get(AUTHORIZATION_HEADER))
        credential = self._coordinator.ensure_fresh(rejected, force=True)

        _ = r.content  # drain socket so connection can be reused
        prep = r.request.copy()
        prep.prepare_headers(with_credential(r.request.headers, credential))
        _r = r.connection.send(prep, **kwargs)
        _r.history.append(r)

        next_state(AttemptState.RETRIED, _r)
        return _r
