"""
Composition root: one TodoApp per signed-in browser/client.

The auth provider and document store are handed in; TodoApp wires them into
the session flow and the board and owns the board's session subscription.
"""
from typing import Any, Dict, Optional

from .backend import AuthProvider, DocumentStore
from .board import TodoBoard
from .navigation import Navigator, Notifier, Screen
from .schema import User
from .session import SessionFlow


class TodoApp:
    """Session screens → list view → logout, over explicit collaborators."""

    def __init__(self, auth: AuthProvider, store: DocumentStore, start: Screen = Screen.SIGNUP):
        self.auth = auth
        self.store = store
        self.navigator = Navigator(start)
        self.notifier = Notifier()
        self.session = SessionFlow(auth, self.navigator, self.notifier)
        self.board = TodoBoard(auth, store, self.navigator)
        self.board.mount()

    @property
    def user(self) -> Optional[User]:
        return self.auth.current_user

    @property
    def screen(self) -> Screen:
        return self.navigator.current

    def show(self, screen: Screen) -> bool:
        """Switch between session screens; the list view needs a signed-in user."""
        if screen == Screen.TODOLIST and self.user is None:
            return False
        self.navigator.go(screen)
        return True

    def state(self) -> Dict[str, Any]:
        user = self.user
        return {
            "screen": self.screen.value,
            "route": self.screen.route,
            "user": {"uid": user.uid, "email": user.email} if user else None,
            "notices": [n.to_dict() for n in self.notifier.drain()],
        }

    def close(self) -> None:
        self.board.unmount()
