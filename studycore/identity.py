"""
Identity - the signed-in learner, as seen by the scheduler.

Authentication itself happens elsewhere; the scheduler only needs to know
whether there is an identity, what its id is, and when it changes.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[str]], None]


class IdentityProvider(Protocol):
    """Anything that can report the current identity and announce changes."""

    def current_identity(self) -> Optional[str]:
        ...

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        ...


class SessionIdentity:
    """
    In-process identity holder.

    Listeners are called with the new identity (None after sign-out) on every
    transition; repeated sign-ins with the same id are not transitions.
    """

    def __init__(self, identity: Optional[str] = None):
        self._identity = self._validate(identity) if identity is not None else None
        self._listeners: list[IdentityListener] = []

    @staticmethod
    def _validate(identity: str) -> str:
        identity = identity.strip()
        if not identity:
            raise ValueError("Identity must be a non-empty string")
        return identity

    def current_identity(self) -> Optional[str]:
        return self._identity

    @property
    def signed_in(self) -> bool:
        return self._identity is not None

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register a transition listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, identity: str) -> None:
        identity = self._validate(identity)
        if identity == self._identity:
            return
        self._identity = identity
        logger.info("Identity signed in: %s", identity)
        self._notify()

    def sign_out(self) -> None:
        if self._identity is None:
            return
        logger.info("Identity signed out: %s", self._identity)
        self._identity = None
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._identity)
