"""
Sign-in / sign-up flow.

Credential checks belong to the auth provider; the only local check is that
both fields were filled in. Provider errors reach the user verbatim.
"""
import logging

from .backend import AuthError, AuthProvider
from .navigation import Navigator, Notifier, Screen

logger = logging.getLogger(__name__)

MISSING_FIELDS = "Email and password are required."


class SessionFlow:
    """Drives the sign-in and sign-up screens."""

    def __init__(self, auth: AuthProvider, navigator: Navigator, notifier: Notifier):
        self.auth = auth
        self.navigator = navigator
        self.notifier = notifier

    def _fields_present(self, email: str, password: str) -> bool:
        if email and email.strip() and password:
            return True
        self.notifier.notify(MISSING_FIELDS, "error")
        return False

    async def sign_in(self, email: str, password: str) -> bool:
        """Sign in and open the list view. Returns False on any failure."""
        if not self._fields_present(email, password):
            return False
        try:
            user = await self.auth.sign_in(email, password)
        except AuthError as e:
            logger.warning(f"Sign-in failed for {email}: {e.code}")
            self.notifier.notify(e.message, "error")
            return False

        logger.info(f"Signed in: {user.email} ({user.uid})")
        self.notifier.notify("Login successful!")
        self.navigator.go(Screen.TODOLIST)
        return True

    async def sign_up(self, email: str, password: str) -> bool:
        """Create an account and send the user to sign-in (no auto sign-in)."""
        if not self._fields_present(email, password):
            return False
        try:
            user = await self.auth.sign_up(email, password)
        except AuthError as e:
            logger.error(f"Error signing up {email}: {e.code}")
            self.notifier.notify(e.message, "error")
            return False

        logger.info(f"Signed up: {user.email}")
        self.notifier.notify("User signed up")
        self.navigator.go(Screen.LOGIN)
        return True
