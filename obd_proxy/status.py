"""
Status notifications for the proxy server.

Observers are called with (running, client_address) whenever the server
starts, stops, accepts a client or loses it. They are meant for display
only, so an observer that raises is logged and otherwise ignored.
"""

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

StatusCallback = Callable[[bool, Optional[str]], None]


class StatusNotifier:
    """List of status observers."""

    def __init__(self) -> None:
        self._callbacks: list[StatusCallback] = []

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """
        Register an observer.

        Args:
            callback: Called as callback(running, client_address)

        Returns:
            A function that removes the observer again.
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, running: bool, client_address: Optional[str]) -> None:
        for callback in list(self._callbacks):
            try:
                callback(running, client_address)
            except Exception:
                logger.exception("Status observer %r failed", callback)
