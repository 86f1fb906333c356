"""Single-flight coordination of credential renewal.

At most one renewal is outstanding per coordinator. Callers that need a fresh
credential while a renewal is running are queued, and every queued caller is
settled with the outcome of that renewal in the order it was queued.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import Awaitable, Callable, Deque, Optional, Protocol

from singleflight.auth._protocols import CredentialStore
from singleflight.auth.inspector import TokenInspector

log = logging.getLogger(__name__)

SessionInvalidatedHook = Callable[[BaseException], None]


class _Renewer(Protocol):
    def renew(self) -> str: ...


class _AsyncRenewer(Protocol):
    def renew(self) -> Awaitable[str]: ...


def clear_store_on_failure(store: CredentialStore) -> SessionInvalidatedHook:
    """Return a hook that logs the session out by clearing the store."""

    def hook(error: BaseException) -> None:
        log.warning(f"Credential renewal failed, clearing stored credential: {error}")
        store.clear()

    return hook


def _notify_invalidated(hook: Optional[SessionInvalidatedHook], error: BaseException) -> None:
    if hook is None:
        return
    try:
        hook(error)
    except Exception:
        log.warning("Session invalidation hook raised", exc_info=True)


class _CoordinatorBase:
    def __init__(
        self,
        store: CredentialStore,
        executor,
        inspector: Optional[TokenInspector] = None,
        on_session_invalidated: Optional[SessionInvalidatedHook] = None,
    ):
        self._store = store
        self._executor = executor
        self._inspector = inspector or TokenInspector()
        self._on_session_invalidated = on_session_invalidated
        self._in_flight = False
        self._waiters: Deque = deque()

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def executor(self):
        return self._executor

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def pending(self) -> int:
        return len(self._waiters)

    def is_valid(self, credential: Optional[str]) -> bool:
        return self._inspector.is_valid(credential)

    def _settled_credential(self, current: Optional[str]) -> Optional[str]:
        """A valid stored credential other than the one the caller already holds."""
        stored = self._store.get()
        if stored and stored != current and self.is_valid(stored):
            return stored
        return None


class RefreshCoordinator(_CoordinatorBase):
    """Thread-safe single-flight guard around a RenewalExecutor.

    The thread that starts a round runs the renewal itself; other threads block
    on a future until the round settles. The invalidation hook runs on that
    thread before the waiters are released, so it must not call ensure_fresh.

    Example:
        store = MemoryCredentialStore()
        coordinator = RefreshCoordinator(store, RenewalExecutor(store, config))
        credential = coordinator.ensure_fresh(store.get())
    """

    def __init__(
        self,
        store: CredentialStore,
        executor: _Renewer,
        inspector: Optional[TokenInspector] = None,
        on_session_invalidated: Optional[SessionInvalidatedHook] = None,
    ):
        super().__init__(store, executor, inspector, on_session_invalidated)
        self._lock = threading.Lock()

    def ensure_fresh(self, current: Optional[str] = None, force: bool = False) -> str:
        """Return a valid credential, renewing it if needed.

        Args:
            current: The credential the caller holds, if any.
            force: Treat ``current`` as invalid even if it has not expired, e.g. after
                the server rejected it.

        Raises:
            RenewalError: The renewal round this caller took part in failed.
        """
        if not force and self.is_valid(current):
            return current

        with self._lock:
            if self._in_flight:
                waiter: Optional[Future] = Future()
                self._waiters.append(waiter)
            else:
                settled = self._settled_credential(current)
                if settled is not None:
                    return settled
                self._in_flight = True
                waiter = None

        if waiter is not None:
            log.debug("Renewal in flight, waiting for it to settle")
            return waiter.result()
        return self._run_round()

    def _run_round(self) -> str:
        log.debug("Starting credential renewal round")
        credential: Optional[str] = None
        error: Optional[BaseException] = None
        try:
            credential = self._executor.renew()
            return credential
        except BaseException as e:
            error = e
            raise
        finally:
            self._settle(credential, error)

    def _settle(self, credential: Optional[str], error: Optional[BaseException]) -> None:
        # No new round may start until the hook has returned.
        if error is not None:
            _notify_invalidated(self._on_session_invalidated, error)
        with self._lock:
            waiters = list(self._waiters)
            self._waiters.clear()
            self._in_flight = False
            for waiter in waiters:
                if error is None:
                    waiter.set_result(credential)
                else:
                    waiter.set_exception(error)
        log.debug(f"Renewal round settled for {len(waiters)} waiting caller(s), success={error is None}")


class AsyncRefreshCoordinator(_CoordinatorBase):
    """Single-flight guard for asyncio callers sharing one event loop.

    The check-and-enqueue has no await in between, so it is atomic with respect to
    other tasks. The renewal runs in its own task: cancelling the caller that
    started a round does not cancel the round. Cancelled callers stay queued and
    are skipped when the round settles.
    """

    def __init__(
        self,
        store: CredentialStore,
        executor: _AsyncRenewer,
        inspector: Optional[TokenInspector] = None,
        on_session_invalidated: Optional[SessionInvalidatedHook] = None,
    ):
        super().__init__(store, executor, inspector, on_session_invalidated)
        self._round: Optional[asyncio.Task] = None

    async def ensure_fresh(self, current: Optional[str] = None, force: bool = False) -> str:
        """Return a valid credential, renewing it if needed. See RefreshCoordinator.ensure_fresh."""
        if not force and self.is_valid(current):
            return current

        if not self._in_flight:
            settled = self._settled_credential(current)
            if settled is not None:
                return settled

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        if not self._in_flight:
            self._in_flight = True
            self._round = asyncio.ensure_future(self._run_round())
        else:
            log.debug("Renewal in flight, waiting for it to settle")
        return await waiter

    async def _run_round(self) -> None:
        log.debug("Starting credential renewal round")
        try:
            credential = await self._executor.renew()
        except BaseException as e:
            self._settle(None, e)
            # Ordinary errors reach the callers through their futures.
            if not isinstance(e, Exception):
                raise
        else:
            self._settle(credential, None)

    def _settle(self, credential: Optional[str], error: Optional[BaseException]) -> None:
        if error is not None and not isinstance(error, asyncio.CancelledError):
            _notify_invalidated(self._on_session_invalidated, error)
        waiters = list(self._waiters)
        self._waiters.clear()
        self._in_flight = False
        self._round = None
        for waiter in waiters:
            if waiter.done():
                continue
            if error is None:
                waiter.set_result(credential)
            elif isinstance(error, asyncio.CancelledError):
                waiter.cancel()
            else:
                waiter.set_exception(error)
        log.debug(f"Renewal round settled for {len(waiters)} waiting caller(s), success={error is None}")
