"""
Remote Service Client lifecycle.

States: no client, or a client built for the current identity. Logging in
or out swaps the client and clears the cache so nothing cached for one
principal is served to the next. While a swap is in flight `ready` is
False and the query layer reports "not ready".
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional

from backend.client import BackendClient, IdentityProvider
from backend.errors import NotReadyError
from backend.models import ANONYMOUS, Identity
from store.cache import QueryCache
from utils.logger import get_logger

_logger = get_logger(__name__)

Connector = Callable[[Identity], BackendClient]


class LoginStatus(str, Enum):
    IDLE = "idle"
    LOGGING_IN = "logging-in"
    SUCCESS = "success"
    ERROR = "error"


class Session:
    def __init__(
        self,
        cache: QueryCache,
        identity_provider: IdentityProvider,
        connector: Connector,
        allow_anonymous: bool = True,
    ):
        self.cache = cache
        self.identity_provider = identity_provider
        self.allow_anonymous = allow_anonymous

        self.client: Optional[BackendClient] = None
        self.identity: Identity = ANONYMOUS
        self.status = LoginStatus.IDLE
        self.login_error: Optional[BaseException] = None
        self.transitioning = False

        self._connector = connector
        self._listeners: List[Callable[[LoginStatus], None]] = []

    @property
    def ready(self) -> bool:
        return self.client is not None and not self.transitioning

    @property
    def is_logged_in(self) -> bool:
        return self.status == LoginStatus.SUCCESS and not self.identity.is_anonymous

    def subscribe(self, listener: Callable[[LoginStatus], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _set_status(self, status: LoginStatus) -> None:
        self.status = status
        _logger.debug(f"session status -> {status.value}")
        for listener in list(self._listeners):
            listener(status)

    def _anonymous_client(self) -> Optional[BackendClient]:
        return self._connector(ANONYMOUS) if self.allow_anonymous else None

    @staticmethod
    async def _close(client: Optional[BackendClient]) -> None:
        if client is not None:
            await client.close()

    def _begin_transition(self) -> Optional[BackendClient]:
        if self.transitioning:
            raise NotReadyError("A login or logout is already in progress.")
        self.transitioning = True
        self.cache.clear()
        old, self.client = self.client, None
        return old

    async def start(self) -> None:
        """Build the read-only anonymous client, if anonymous browsing is allowed."""
        if self.client is None and not self.transitioning:
            self.client = self._anonymous_client()
            if self.client is not None:
                _logger.info("Anonymous browsing enabled")
                self._set_status(LoginStatus.IDLE)

    async def login(self, username: str, password: str) -> Identity:
        old = self._begin_transition()
        self._set_status(LoginStatus.LOGGING_IN)
        try:
            identity = await self.identity_provider.authenticate(username, password)
        except Exception as e:
            _logger.warning(f"Login failed for {username!r}: {e}")
            await self._close(old)
            self.login_error = e
            self.identity = ANONYMOUS
            self.client = self._anonymous_client()
            self.transitioning = False
            self._set_status(LoginStatus.ERROR)
            raise

        await self._close(old)
        self.login_error = None
        self.identity = identity
        self.client = self._connector(identity)
        self.transitioning = False
        _logger.info(f"Logged in as {identity.principal}")
        self._set_status(LoginStatus.SUCCESS)
        return identity

    async def logout(self) -> None:
        previous = self.identity
        old = self._begin_transition()
        try:
            if not previous.is_anonymous:
                await self.identity_provider.revoke(previous)
        finally:
            await self._close(old)
            self.identity = ANONYMOUS
            self.login_error = None
            self.client = self._anonymous_client()
            self.transitioning = False
            _logger.info(f"Logged out {previous.principal}")
            self._set_status(LoginStatus.IDLE)

    async def register(self, username: str, password: str, display_name: str) -> Identity:
        """Create an account. Does not log in."""
        identity = await self.identity_provider.register(username, password, display_name)
        _logger.info(f"Registered {identity.principal}")
        return identity

    async def close(self) -> None:
        client, self.client = self.client, None
        await self._close(client)
