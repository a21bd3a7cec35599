"""Observer used by the auth layer to tell the rest of the application
about session changes, e.g. a UI shell redirecting to the login page on
`AUTH_ERROR`.
"""
from collections import defaultdict
from typing import Any, Callable, Dict, List

import logfire

AUTH_ERROR = "auth_error"
TOKENS_REFRESHED = "tokens_refreshed"
LOGGED_OUT = "logged_out"

Listener = Callable[[Any], None]


class AuthEvents:
    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register `listener` for `event`.

        Returns:
            Callable[[], None]: Call it to unsubscribe.
        """
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    def publish(self, event: str, payload: Any = None) -> int:
        """Deliver `payload` to every listener of `event`.

        A failing listener is logged and skipped.

        Returns:
            int: Number of listeners that ran without raising.
        """
        delivered = 0
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
                delivered += 1
            except Exception:
                logfire.exception(f"Listener for {event} raised")
        return delivered
