import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import requests

from .. import config
from ..errors import TransientError
from ..models.onboarding_models import IdentityState, QueryState

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Listener = Callable[[IdentityState], Any]

# Failures worth another attempt; anything else settles the query in its error state.
RETRYABLE_ERRORS = (TransientError, requests.exceptions.ConnectionError, requests.exceptions.Timeout)


class IdentityQuery:
    """
    One reactive identity read (``{data, is_loading, error}``).

    ``refresh`` retries transient failures with exponential backoff capped at
    ``max_delay``. Every refresh is tagged with a generation; ``cancel`` and
    ``reset`` bump it so a result arriving afterwards is dropped unseen.
    """

    def __init__(
        self,
        name: str,
        fetcher: Optional[Fetcher],
        on_change: Callable[[], None],
        retry_attempts: int = config.IDENTITY_RETRY_ATTEMPTS,
        base_delay: float = config.IDENTITY_RETRY_BASE_DELAY_SECONDS,
        max_delay: float = config.IDENTITY_RETRY_MAX_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self.fetcher = fetcher
        self.retry_attempts = retry_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._on_change = on_change
        self._sleep = sleep
        self._state = QueryState()
        self._generation = 0

    @property
    def state(self) -> QueryState:
        return self._state

    def retry_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def _set(self, state: QueryState) -> None:
        self._state = state
        self._on_change()

    async def refresh(self) -> QueryState:
        if self.fetcher is None:
            return self._state

        self._generation += 1
        generation = self._generation
        self._set(QueryState(data=self._state.data, is_loading=True, is_fetched=self._state.is_fetched))

        attempt = 0
        while True:
            try:
                data = await self.fetcher()
            except RETRYABLE_ERRORS as e:
                if attempt >= self.retry_attempts:
                    logger.warning(f"{self.name} query failed after {attempt + 1} attempts: {e}")
                    result = QueryState(error=e)
                    break
                delay = self.retry_delay(attempt)
                attempt += 1
                logger.info(f"{self.name} query failed ({type(e).__name__}); retry {attempt} in {delay:.1f}s")
                await self._sleep(delay)
                if generation != self._generation:
                    logger.debug(f"{self.name} query cancelled during backoff.")
                    return self._state
                continue
            except Exception as e:
                logger.warning(f"{self.name} query failed: {type(e).__name__}: {e}")
                result = QueryState(error=e)
                break
            else:
                result = QueryState(data=data, is_fetched=True)
                break

        if generation != self._generation:
            logger.debug(f"Discarding late {self.name} query result.")
            return self._state
        self._set(result)
        return result

    def cancel(self) -> None:
        """Drops any outstanding read. Does not notify."""
        self._generation += 1
        if self._state.is_loading:
            self._state = QueryState(
                data=self._state.data, error=self._state.error, is_fetched=self._state.is_fetched
            )

    def reset(self) -> None:
        self._generation += 1
        self._set(QueryState())


def _is_authenticated(payload: Any) -> bool:
    # Payload shape of GET /auth/user: {"ok": true, "user": {"isAuthenticated": ...}}
    if not isinstance(payload, dict) or not payload.get("ok"):
        return False
    user = payload.get("user") or {}
    return bool(user.get("isAuthenticated"))


class IdentityStateSource:
    """
    Wallet status plus the authenticated-session and session-key queries,
    folded into one IdentityState and pushed to subscribers on every change.

    Wallet status is reported by the external wallet transport through
    ``set_wallet``. Must be driven from the event loop thread.
    """

    def __init__(
        self,
        auth_fetcher: Optional[Fetcher] = None,
        session_key_fetcher: Optional[Fetcher] = None,
        **query_options,
    ):
        self.auth = IdentityQuery("auth", auth_fetcher, self._notify, **query_options)
        self.session_key = IdentityQuery("session_key", session_key_fetcher, self._notify, **query_options)
        self.address: Optional[str] = None
        self._wallet_connected = False
        self._wallet_connecting = False
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()

    def snapshot(self) -> IdentityState:
        auth = self.auth.state
        session_key = self.session_key.state
        return IdentityState(
            wallet_connected=self._wallet_connected,
            wallet_connecting=self._wallet_connecting,
            authenticated=_is_authenticated(auth.data),
            has_session_key=bool(session_key.data),
            auth_query=auth,
            session_key_query=session_key,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Identity state listener failed: {e}", exc_info=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def set_wallet(self, connected: bool, connecting: bool = False, address: Optional[str] = None) -> None:
        was_connected = self._wallet_connected
        previous_address = self.address
        self._wallet_connected = connected
        self._wallet_connecting = connecting and not connected
        self.address = address if connected else None

        if connected and not was_connected:
            logger.info(f"Wallet connected: {address}")
            self.refresh()
        elif connected and address != previous_address:
            # The session and key reads belong to the previous account.
            logger.info(f"Wallet account changed: {previous_address} -> {address}")
            self.auth.reset()
            self.session_key.reset()
            self.refresh()
        elif was_connected and not connected:
            logger.info("Wallet disconnected; clearing identity queries.")
            self.auth.reset()
            self.session_key.reset()
        self._notify()

    def refresh(self) -> list[asyncio.Task]:
        """Re-reads both queries. Reads only run while a wallet is connected."""
        if not self._wallet_connected:
            return []
        return [self._spawn(self.auth.refresh()), self._spawn(self.session_key.refresh())]

    def invalidate_auth(self) -> Optional[asyncio.Task]:
        """Re-reads the auth query, e.g. after sign-in or sign-out."""
        if not self._wallet_connected:
            return None
        return self._spawn(self.auth.refresh())

    def invalidate_session_key(self) -> Optional[asyncio.Task]:
        if not self._wallet_connected:
            return None
        return self._spawn(self.session_key.refresh())

    async def close(self) -> None:
        self.auth.cancel()
        self.session_key.cancel()
        self._listeners.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
