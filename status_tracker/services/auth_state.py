"""
Observable holder for "who is signed in" within one user's chat sessions.

Subscribers are called immediately with the current value and again on
every change. The latest value always wins; there is no queueing of
intermediate transitions.
"""
import itertools
import logging
from typing import Callable, Dict, Optional

from status_tracker.models import User

logger = logging.getLogger(__name__)

AuthCallback = Callable[[Optional[User]], None]


class AuthState:
    def __init__(self, user: Optional[User] = None) -> None:
        self._user = user
        self._subscribers: Dict[int, AuthCallback] = {}
        self._tokens = itertools.count(1)

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    def subscribe(self, callback: AuthCallback) -> Callable[[], None]:
        """Register callback and return a function that removes it."""
        token = next(self._tokens)
        self._subscribers[token] = callback
        callback(self._user)

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    def set_user(self, user: Optional[User]) -> None:
        previous = self._user
        self._user = user
        if _user_key(previous) != _user_key(user):
            logger.info(
                "Auth state changed",
                extra={"user_id": _user_key(user) or _user_key(previous), "status": "signed_in" if user else "signed_out"},
            )
        # Copy so callbacks may unsubscribe while we iterate
        for callback in list(self._subscribers.values()):
            callback(user)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


def _user_key(user: Optional[User]) -> Optional[str]:
    return str(user.id) if user is not None else None
