"""Base async API client using httpx with coordinated credential renewal."""

import asyncio
import logging
import os
from typing import Optional, Union

import httpx

from singleflight.auth import DEFAULT_ENV_CONFIG_FILE_PATH
from singleflight.auth._http import DEFAULT_CONTENT_TYPE, TRANSIENT_STATUSES, error_detail, get_user_agent, resolve_url
from singleflight.auth._protocols import CredentialStore
from singleflight.auth.config import RefreshConfig, load_env_config
from singleflight.auth.coordinator import AsyncRefreshCoordinator, SessionInvalidatedHook, clear_store_on_failure
from singleflight.auth.httpx.auth import AsyncCoordinatedAuth
from singleflight.auth.inspector import TokenInspector
from singleflight.auth.renewal import AsyncRenewalExecutor
from singleflight.auth.store import MemoryCredentialStore

logger = logging.getLogger(__name__)

TRANSIENT_RETRY_DELAY = 5


def _handle_http_error(resp: httpx.Response):
    """Try to get the error message from the response and raise with that message."""
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        full_msg = (
            f"Got HttpError with status={resp.status_code} in call to {resp.url}.\n"
            f"Got error in response: '{error_detail(resp)}'"
        )
        raise httpx.HTTPStatusError(full_msg, request=resp.request, response=resp) from e


def create_async_coordinator(
    *,
    config: Optional[RefreshConfig] = None,
    store: Optional[CredentialStore] = None,
    on_session_invalidated: Optional[SessionInvalidatedHook] = None,
    renewal_client: Optional[httpx.AsyncClient] = None,
) -> AsyncRefreshCoordinator:
    """Async counterpart of singleflight.auth.requests.base_client.create_coordinator."""
    config = config or RefreshConfig.from_environ()
    store = store if store is not None else MemoryCredentialStore()
    return AsyncRefreshCoordinator(
        store,
        AsyncRenewalExecutor(store, config, client=renewal_client),
        inspector=TokenInspector(config.expiry_margin),
        on_session_invalidated=on_session_invalidated or clear_store_on_failure(store),
    )


class BaseAsyncApiClient:
    """Base async API client with coordinated bearer authentication using httpx.

    - Bearer credential attached to every request, renewed at most once at a time
      no matter how many requests are in flight
    - One replay of a request rejected with 401
    - Retry logic for transient errors (502, 503, 504)
    - JSON Content-Type by default
    - Enhanced error messages

    Example:
        async with BaseAsyncApiClient(config=RefreshConfig(base_url="https://api.example.com/")) as client:
            response = await client.request("GET", "v1/resources")
            data = response.json()
    """

    def __init__(
        self,
        *,
        config: Optional[RefreshConfig] = None,
        store: Optional[CredentialStore] = None,
        client_name: Optional[str] = "auto",
        on_session_invalidated: Optional[SessionInvalidatedHook] = None,
        coordinator: Optional[AsyncRefreshCoordinator] = None,
        transient_retries: int = 3,
        **kwargs,
    ):
        """Initialize the async API client.

        Args:
            config: Refresh settings, including the base url. Defaults to RefreshConfig.from_environ().
            store: Credential store. Ignored when coordinator is given.
            client_name: Name added to User-Agent. Use "auto" for class name, None for no name.
            on_session_invalidated: Called once per failed renewal round. Defaults to clearing the store.
            coordinator: Explicit coordinator to share across clients.
            transient_retries: How many times a 502/503/504 response is retried.
            **kwargs: Additional arguments passed to the underlying httpx client (e.g. timeout, verify).
        """
        if client_name == "auto":
            client_name = self.__class__.__name__

        self._config = config or RefreshConfig.from_environ()
        self._owns_coordinator = coordinator is None
        self._coordinator = coordinator or create_async_coordinator(
            config=self._config, store=store, on_session_invalidated=on_session_invalidated
        )
        self._transient_retries = transient_retries

        # Use a custom transport to set the number of retries for connection errors
        kwargs.setdefault("transport", httpx.AsyncHTTPTransport(retries=3))

        headers = kwargs.pop("headers", {})
        headers.setdefault("User-Agent", get_user_agent(f"python-httpx/{httpx.__version__}", client_name))
        headers.setdefault("Content-Type", DEFAULT_CONTENT_TYPE)

        self._client = httpx.AsyncClient(auth=AsyncCoordinatedAuth(self._coordinator), headers=headers, **kwargs)

    @property
    def coordinator(self) -> AsyncRefreshCoordinator:
        return self._coordinator

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, behaving like AsyncClient.request with credential handling on top."""
        url = resolve_url(self._config.base_url, url)

        attempts = self._transient_retries
        resp = await self._client.request(method, url, **kwargs)
        while attempts > 0 and resp.status_code in TRANSIENT_STATUSES:
            logger.warning(
                f"Server {resp.status_code} error for request to url={url}\nRetrying in {TRANSIENT_RETRY_DELAY}s..."
            )
            await asyncio.sleep(TRANSIENT_RETRY_DELAY)
            attempts -= 1
            resp = await self._client.request(method, url, **kwargs)

        _handle_http_error(resp)
        return resp

    @classmethod
    def from_env(
        cls,
        env: str,
        *,
        env_config_path: Union[str, os.PathLike] = "",
        **kwargs,
    ) -> "BaseAsyncApiClient":
        """Create a client from a named environment in the config file.

        Args:
            env: Environment name to look up in the config file.
            env_config_path: Path to config file. Defaults to ~/.config/singleflight/environments.json.
            **kwargs: Additional arguments passed to the constructor (e.g. client_name, store).

        Returns:
            Configured BaseAsyncApiClient instance.
        """
        config_file_path = env_config_path or DEFAULT_ENV_CONFIG_FILE_PATH
        cfg = load_env_config(config_file_path)
        if env not in cfg.environments:
            raise ValueError(f"Unknown environment: {env} not found in config at {config_file_path}")
        kwargs["config"] = cfg.environments[env].to_refresh_config()
        return cls(**kwargs)

    async def close(self) -> None:
        await self._client.aclose()
        if self._owns_coordinator:
            await self._coordinator.executor.aclose()

    async def __aenter__(self) -> "BaseAsyncApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
