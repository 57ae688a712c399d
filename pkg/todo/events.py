"""
Session-change subscriptions.

Auth providers own one SessionEvents and call emit() when a user signs in or
out. Subscribers (the board) receive the new User, or None on sign-out.
"""
import logging
from typing import List, Optional

from .backend import SessionCallback, Unsubscribe
from .schema import User

logger = logging.getLogger(__name__)


class SessionEvents:
    """Routes session start/end notifications to registered callbacks."""

    def __init__(self):
        self.subscribers: List[SessionCallback] = []

    def subscribe(self, callback: SessionCallback) -> Unsubscribe:
        """Register a callback; returns a function that removes it again."""
        self.subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self.subscribers:
                self.subscribers.remove(callback)

        return unsubscribe

    def emit(self, user: Optional[User]) -> None:
        """Notify every subscriber. A failing callback doesn't stop the rest."""
        for callback in list(self.subscribers):
            try:
                callback(user)
            except Exception as e:
                logger.error(f"Error in session callback {callback!r}: {e}")
