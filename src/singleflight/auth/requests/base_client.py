"""Base API client using requests with coordinated credential renewal."""

from __future__ import annotations

import logging
import os
from threading import Lock
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from typing import Self

import requests
from requests import Session
from requests.adapters import HTTPAdapter, Retry

from singleflight.auth import DEFAULT_ENV_CONFIG_FILE_PATH
from singleflight.auth._http import DEFAULT_CONTENT_TYPE, TRANSIENT_STATUSES, error_detail, get_user_agent, resolve_url
from singleflight.auth._protocols import CredentialStore
from singleflight.auth.config import RefreshConfig, load_env_config
from singleflight.auth.coordinator import RefreshCoordinator, SessionInvalidatedHook, clear_store_on_failure
from singleflight.auth.inspector import TokenInspector
from singleflight.auth.renewal import RenewalExecutor
from singleflight.auth.requests.bearer_auth import CoordinatedBearerAuth
from singleflight.auth.store import MemoryCredentialStore

logger = logging.getLogger(__name__)


DEFAULT_RETRY = Retry(total=3, connect=3, read=3, backoff_factor=0.5, status_forcelist=list(TRANSIENT_STATUSES))


def _check_response(resp: requests.Response):
    """Raise for status with an enhanced error message."""
    try:
        resp.raise_for_status()
    except requests.HTTPError as e:
        raise requests.HTTPError(
            f"Got HttpError with status={resp.status_code} in call to {resp.url}.\n"
            f"Got error in response: '{error_detail(resp)}'",
            response=resp,
            request=resp.request,
        ) from e


def _monkey_patch_send(session: Session, base_url: str):
    """Resolve relative paths against the base url and always raise for status."""
    vanilla_prep = session.prepare_request

    def prepare_request(req, *args, **kwargs):
        req.url = resolve_url(base_url, req.url)
        return vanilla_prep(req, *args, **kwargs)

    session.prepare_request = prepare_request

    vanilla_send = session.send

    def send_request(req, *args, **kwargs):
        resp = vanilla_send(req, *args, **kwargs)
        _check_response(resp)
        return resp

    session.send = send_request


def create_coordinator(
    *,
    config: Optional[RefreshConfig] = None,
    store: Optional[CredentialStore] = None,
    on_session_invalidated: Optional[SessionInvalidatedHook] = None,
    renewal_session: Optional[Session] = None,
) -> RefreshCoordinator:
    """Wire a store, a renewal executor and a coordinator together.

    Args:
        config: Refresh settings. Defaults to RefreshConfig.from_environ().
        store: Credential store. Defaults to an empty MemoryCredentialStore.
        on_session_invalidated: Called once per failed renewal round. Defaults to clearing the store.
        renewal_session: Session used for the renewal call, e.g. one carrying the refresh cookie.
    """
    config = config or RefreshConfig.from_environ()
    store = store if store is not None else MemoryCredentialStore()
    return RefreshCoordinator(
        store,
        RenewalExecutor(store, config, session=renewal_session),
        inspector=TokenInspector(config.expiry_margin),
        on_session_invalidated=on_session_invalidated or clear_store_on_failure(store),
    )


def create_session(
    *,
    config: Optional[RefreshConfig] = None,
    store: Optional[CredentialStore] = None,
    client_name: Optional[str] = None,
    on_session_invalidated: Optional[SessionInvalidatedHook] = None,
    coordinator: Optional[RefreshCoordinator] = None,
) -> Session:
    """Create a requests session with enhancements.

    - Bearer credential attached to every request, renewed when expired
    - Concurrent renewals collapsed into one
    - A request rejected with 401 is replayed once with a renewed credential
    - Relative paths resolved against the base url
    - JSON Content-Type by default
    - Default retry logic for transient errors
    - Always call raise_for_status with enhanced error messages

    Args:
        config: Refresh settings, including the base url
        store: Credential store shared with the rest of the application
        client_name: Name added to User-Agent header
        on_session_invalidated: Called once per failed renewal round
        coordinator: Explicit coordinator. When given, store/on_session_invalidated are ignored.
            Multiple sessions sharing one coordinator share the same renewal rounds.

    Returns:
        Configured requests Session
    """
    config = config or RefreshConfig.from_environ()
    if coordinator is None:
        coordinator = create_coordinator(config=config, store=store, on_session_invalidated=on_session_invalidated)

    session = requests.Session()
    session.auth = CoordinatedBearerAuth(coordinator)
    session.headers["User-Agent"] = get_user_agent(f"requests/{requests.__version__}", client_name)
    session.headers["Content-Type"] = DEFAULT_CONTENT_TYPE
    _monkey_patch_send(session, config.base_url)
    session.mount("http://", HTTPAdapter(max_retries=DEFAULT_RETRY))
    session.mount("https://", HTTPAdapter(max_retries=DEFAULT_RETRY))
    return session


class BaseApiClient:
    """Base API client with coordinated bearer authentication using requests.

    Provides a requests Session with:
    - Bearer credential attached to every request and renewed at most once at a time
    - One replay of a request rejected with 401
    - Retry logic for transient errors (502, 503, 504)
    - Enhanced error messages

    Clients constructed with the same coordinator share renewal rounds, so only one
    renewal call occurs across all of them.

    Example:
        client = BaseApiClient(config=RefreshConfig(base_url="https://api.example.com/"))
        response = client.request("GET", "v1/resources")
        data = response.json()
    """

    def __init__(
        self,
        *,
        config: Optional[RefreshConfig] = None,
        store: Optional[CredentialStore] = None,
        client_name: Optional[str] = "auto",
        on_session_invalidated: Optional[SessionInvalidatedHook] = None,
        coordinator: Optional[RefreshCoordinator] = None,
    ):
        """Initialize the API client.

        Args:
            config: Refresh settings. Defaults to RefreshConfig.from_environ().
            store: Credential store. Ignored when coordinator is given.
            client_name: Name added to User-Agent. Use "auto" for class name, None for no name.
            on_session_invalidated: Called once per failed renewal round. Defaults to clearing the store.
            coordinator: Explicit coordinator to share across clients.
        """
        self._session: Optional[Session] = None
        self._config = config or RefreshConfig.from_environ()
        self._owns_coordinator = coordinator is None
        self._coordinator = coordinator or create_coordinator(
            config=self._config, store=store, on_session_invalidated=on_session_invalidated
        )
        self._lock = Lock()

        if client_name == "auto":
            client_name = self.__class__.__name__
        self._client_name = client_name

    @property
    def coordinator(self) -> RefreshCoordinator:
        return self._coordinator

    @property
    def session(self) -> Session:
        """Get the authenticated requests Session.

        Session is lazily initialized on first access.
        """
        if self._session is None:
            with self._lock:
                if self._session is None:
                    self._session = create_session(
                        config=self._config,
                        client_name=self._client_name,
                        coordinator=self._coordinator,
                    )
        return self._session

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request, behaving like Session.request with credential handling on top."""
        return self.session.request(method, url, **kwargs)

    def close(self) -> None:
        """Close the session and, unless the coordinator was shared in, its renewal session."""
        if self._session is not None:
            self._session.close()
        if self._owns_coordinator:
            self._coordinator.executor.close()

    @classmethod
    def from_env(
        cls,
        env: str,
        *,
        env_config_path: Union[str, os.PathLike] = "",
        **kwargs,
    ) -> Self:
        """Create a client from a named environment in the config file.

        Args:
            env: Environment name to look up in the config file.
            env_config_path: Path to config file. Defaults to ~/.config/singleflight/environments.json.
            **kwargs: Additional arguments passed to the constructor (e.g. client_name, store).

        Returns:
            Configured BaseApiClient instance.
        """
        config_file_path = env_config_path or DEFAULT_ENV_CONFIG_FILE_PATH
        cfg = load_env_config(config_file_path)
        if env not in cfg.environments:
            raise ValueError(f"Unknown environment: {env} not found in config at {config_file_path}")
        kwargs["config"] = cfg.environments[env].to_refresh_config()
        return cls(**kwargs)
