"""
Authenticated session binding.

The auth session provider supplies the current owner id and transition events;
NotificationSessionBinder turns those transitions into facade start/stop calls
so the notification session follows login and logout directly.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Optional

import structlog

if TYPE_CHECKING:
    from notifyhub.notifications.facade import NotificationsFacade

logger = structlog.get_logger(__name__)

AuthListener = Callable[[Optional[str]], Awaitable[None]]


class AuthSessionProvider(ABC):
    """Source of the authenticated owner id and its transitions."""

    @property
    @abstractmethod
    def current_owner_id(self) -> Optional[str]:
        """Authenticated owner id, or None when signed out."""

    @abstractmethod
    def add_listener(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a transition listener.

        The listener is awaited with the new owner id (None on logout).

        Returns:
            Function removing the listener
        """


class AuthSession(AuthSessionProvider):
    """In-process auth session; listeners are awaited in registration order."""

    def __init__(self, owner_id: Optional[str] = None):
        self._owner_id = owner_id
        self._listeners: list[AuthListener] = []

    @property
    def current_owner_id(self) -> Optional[str]:
        return self._owner_id

    def add_listener(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def login(self, owner_id: str) -> None:
        if not owner_id:
            raise ValueError("owner_id is required")
        if owner_id == self._owner_id:
            return
        self._owner_id = owner_id
        logger.info("auth_session_login", owner_id=owner_id)
        await self._notify()

    async def logout(self) -> None:
        if self._owner_id is None:
            return
        logger.info("auth_session_logout", owner_id=self._owner_id)
        self._owner_id = None
        await self._notify()

    async def _notify(self) -> None:
        owner_id = self._owner_id
        for listener in list(self._listeners):
            await listener(owner_id)


class NotificationSessionBinder:
    """
    Drives a NotificationsFacade from an auth session provider.

    Example:
        >>> binder = NotificationSessionBinder(auth, facade)
        >>> await binder.attach()  # starts the facade if already logged in
        >>> await auth.logout()  # facade stops
    """

    def __init__(self, auth: AuthSessionProvider, facade: "NotificationsFacade"):
        self.auth = auth
        self.facade = facade
        self._remove_listener: Optional[Callable[[], None]] = None

    @property
    def attached(self) -> bool:
        return self._remove_listener is not None

    async def attach(self) -> None:
        """Apply the current auth state and follow its transitions."""
        if self.attached:
            return
        self._remove_listener = self.auth.add_listener(self._on_transition)
        await self._on_transition(self.auth.current_owner_id)

    async def detach(self) -> None:
        """Stop following auth transitions and stop the facade."""
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        await self.facade.stop()

    async def _on_transition(self, owner_id: Optional[str]) -> None:
        if owner_id is None:
            await self.facade.stop()
        else:
            await self.facade.start(owner_id)
