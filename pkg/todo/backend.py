"""
Collaborator contracts: the auth provider and the document store.

Everything the application persists or authenticates goes through these two
interfaces. Implementations live in firebase.py (production) and local.py
(SQLite, offline). Both are passed in explicitly; nothing reaches for a
process-wide handle.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from .schema import User


class TodoError(Exception):
    """Base class for collaborator failures."""

    def __init__(self, code: str, message: str = ""):
        self.code = code
        self.message = message or code
        super().__init__(self.message)


class AuthError(TodoError):
    """Sign-in, sign-up or sign-out rejected by the auth provider."""
    pass


class StoreError(TodoError):
    """Read or write rejected by the document store."""
    pass


# Identity Toolkit error codes → text shown to the user
AUTH_MESSAGES = {
    "EMAIL_EXISTS": "The email address is already in use by another account.",
    "INVALID_EMAIL": "The email address is badly formatted.",
    "WEAK_PASSWORD": "Password should be at least 6 characters.",
    "MISSING_PASSWORD": "A password is required.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "EMAIL_NOT_FOUND": "There is no user record corresponding to this email.",
    "INVALID_PASSWORD": "The password is invalid.",
    "USER_DISABLED": "The user account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Try again later.",
    "NETWORK_ERROR": "A network error has occurred.",
}


def auth_error(raw: str) -> AuthError:
    """Build an AuthError from a provider message such as
    'WEAK_PASSWORD : Password should be at least 6 characters'."""
    code, _, detail = raw.partition(" : ")
    code = code.strip()
    return AuthError(code, AUTH_MESSAGES.get(code) or detail.strip() or raw)


@dataclass
class Document:
    """One stored document: its id (last path segment) and field values."""
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)


SessionCallback = Callable[[Optional[User]], None]
Unsubscribe = Callable[[], None]


class AuthProvider(Protocol):
    current_user: Optional[User]

    async def sign_in(self, email: str, password: str) -> User: ...

    async def sign_up(self, email: str, password: str) -> User: ...

    async def sign_out(self) -> None: ...

    def on_session_change(self, callback: SessionCallback) -> Unsubscribe: ...


class DocumentStore(Protocol):
    async def list_documents(self, collection_path: str) -> List[Document]: ...

    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str: ...

    async def update(self, doc_path: str, fields: Dict[str, Any]) -> None: ...

    async def delete(self, doc_path: str) -> None: ...


# ── Per-user addressing ──────────────────────────────────────────────────────

def lists_path(uid: str) -> str:
    return f"users/{uid}/todoLists"


def tasks_path(uid: str, list_id: str) -> str:
    return f"{lists_path(uid)}/{list_id}/tasks"


def task_doc_path(uid: str, list_id: str, task_id: str) -> str:
    return f"{tasks_path(uid, list_id)}/{task_id}"


def split_doc_path(doc_path: str):
    """Split 'a/b/c/d' into ('a/b/c', 'd')."""
    collection, _, doc_id = doc_path.strip("/").rpartition("/")
    if not collection or not doc_id:
        raise StoreError("INVALID_ARGUMENT", f"Not a document path: {doc_path}")
    return collection, doc_id
