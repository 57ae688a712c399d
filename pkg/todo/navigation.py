"""
Screens, navigation and user-facing notices.

Screen routes mirror the web client: "/" sign-up, "/login", "/todolist".
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List

logger = logging.getLogger(__name__)


class Screen(Enum):
    SIGNUP = "signup"
    LOGIN = "login"
    TODOLIST = "todolist"

    @property
    def route(self) -> str:
        return ROUTES[self]


ROUTES = {
    Screen.SIGNUP: "/",
    Screen.LOGIN: "/login",
    Screen.TODOLIST: "/todolist",
}


class Navigator:
    """Tracks which screen is showing."""

    def __init__(self, start: Screen = Screen.SIGNUP):
        self.current = start

    def go(self, screen: Screen) -> None:
        if screen != self.current:
            logger.debug(f"Navigate {self.current.route} → {screen.route}")
        self.current = screen


@dataclass
class Notice:
    """A blocking message for the user (success or error)."""
    message: str
    level: str = "info"

    def to_dict(self):
        return {"message": self.message, "level": self.level}


class Notifier:
    """Queues notices until the surface shows them."""

    def __init__(self):
        self.notices: List[Notice] = []

    def notify(self, message: str, level: str = "info") -> None:
        self.notices.append(Notice(message, level))

    def drain(self) -> List[Notice]:
        """Return queued notices and forget them."""
        notices, self.notices = self.notices, []
        return notices
