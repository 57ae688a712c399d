"""
SQLite collaborators for offline use and tests.

LocalAuth keeps accounts in a `users` table; SQLiteDocumentStore keeps
documents addressed by collection path in a `documents` table. Both speak the
same contract and error codes as the Firebase collaborators, so the board
can't tell them apart.
"""
import asyncio
import hashlib
import hmac
import json
import logging
import re
import sqlite3
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .backend import (
    AuthError,
    Document,
    SessionCallback,
    StoreError,
    Unsubscribe,
    auth_error,
    split_doc_path,
)
from .events import SessionEvents
from .schema import User

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
PBKDF2_ROUNDS = 100_000


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def _init_schema(db_path: str) -> None:
    """Create tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with _connect(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                uid TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                salt TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                fields TEXT NOT NULL,  -- JSON object
                created_at TEXT NOT NULL,
                UNIQUE (collection, doc_id)
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)"
        )
        conn.commit()


def _hash_password(password: str, salt: str) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode(), bytes.fromhex(salt), PBKDF2_ROUNDS
    ).hex()


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Cannot store value of type {type(value).__name__}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# LocalAuth
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class LocalAuth:
    """
    Email/password accounts stored in SQLite.

    One instance holds one session (current_user). Sign-up creates the account
    without signing in; sign-in and sign-out notify session subscribers.
    Database work runs on a worker thread; subscribers are notified on the
    caller's event loop.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.current_user: Optional[User] = None
        self.events = SessionEvents()
        _init_schema(db_path)

    def on_session_change(self, callback: SessionCallback) -> Unsubscribe:
        return self.events.subscribe(callback)

    @staticmethod
    def _check_credentials(email: str, password: str) -> str:
        email = (email or "").strip().lower()
        if not EMAIL_RE.match(email):
            raise auth_error("INVALID_EMAIL")
        if not password:
            raise auth_error("MISSING_PASSWORD")
        return email

    def _create_account(self, email: str, password: str) -> User:
        email = self._check_credentials(email, password)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise auth_error("WEAK_PASSWORD")

        uid = uuid.uuid4().hex[:28]
        salt = uuid.uuid4().hex
        try:
            with _connect(self.db_path) as conn:
                conn.execute(
                    "INSERT INTO users (uid, email, password_hash, salt, created_at) VALUES (?, ?, ?, ?, ?)",
                    (uid, email, _hash_password(password, salt), salt,
                     datetime.now(timezone.utc).isoformat()),
                )
                conn.commit()
        except sqlite3.IntegrityError:
            raise auth_error("EMAIL_EXISTS")
        except sqlite3.Error as e:
            raise AuthError("INTERNAL_ERROR", str(e))

        logger.info(f"Account created: {email} ({uid})")
        return User(uid=uid, email=email)

    def _verify_account(self, email: str, password: str) -> User:
        email = self._check_credentials(email, password)
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT uid, email, password_hash, salt FROM users WHERE email = ?",
                    (email,),
                ).fetchone()
        except sqlite3.Error as e:
            raise AuthError("INTERNAL_ERROR", str(e))

        if not row or not hmac.compare_digest(
            _hash_password(password, row["salt"]), row["password_hash"]
        ):
            raise auth_error("INVALID_LOGIN_CREDENTIALS")
        return User(uid=row["uid"], email=row["email"], id_token=uuid.uuid4().hex)

    async def sign_up(self, email: str, password: str) -> User:
        return await asyncio.to_thread(self._create_account, email, password)

    async def sign_in(self, email: str, password: str) -> User:
        user = await asyncio.to_thread(self._verify_account, email, password)
        self.current_user = user
        self.events.emit(user)
        return user

    async def sign_out(self) -> None:
        self.current_user = None
        self.events.emit(None)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SQLiteDocumentStore
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class SQLiteDocumentStore:
    """
    Documents addressed by collection path, stored as JSON rows.

    When given an auth provider, only paths under the signed-in user's
    namespace (users/{uid}/...) are readable or writable. Queries run on a
    worker thread, one connection per call.
    """

    def __init__(self, db_path: str, auth: Optional[LocalAuth] = None):
        self.db_path = db_path
        self.auth = auth
        _init_schema(db_path)

    def _check_access(self, path: str) -> None:
        if self.auth is None:
            return
        user = self.auth.current_user
        if user is None or not path.strip("/").startswith(f"users/{user.uid}/"):
            raise StoreError("PERMISSION_DENIED", "Missing or insufficient permissions.")

    def _list_sync(self, collection: str) -> List[Document]:
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT doc_id, fields FROM documents WHERE collection = ? ORDER BY seq ASC",
                    (collection,),
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError("UNAVAILABLE", str(e))
        return [Document(id=row["doc_id"], fields=json.loads(row["fields"])) for row in rows]

    def _create_sync(self, collection: str, fields: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        try:
            encoded = json.dumps(fields, default=_json_default)
        except TypeError as e:
            raise StoreError("INVALID_ARGUMENT", str(e))
        try:
            with _connect(self.db_path) as conn:
                conn.execute(
                    "INSERT INTO documents (collection, doc_id, fields, created_at) VALUES (?, ?, ?, ?)",
                    (collection, doc_id, encoded, datetime.now(timezone.utc).isoformat()),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError("UNAVAILABLE", str(e))
        return doc_id

    def _update_sync(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT fields FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                ).fetchone()
                if not row:
                    raise StoreError("NOT_FOUND", f"No document to update: {collection}/{doc_id}")
                merged = {**json.loads(row["fields"]), **fields}
                conn.execute(
                    "UPDATE documents SET fields = ? WHERE collection = ? AND doc_id = ?",
                    (json.dumps(merged, default=_json_default), collection, doc_id),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError("UNAVAILABLE", str(e))

    def _delete_sync(self, collection: str, doc_id: str) -> None:
        try:
            with _connect(self.db_path) as conn:
                conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError("UNAVAILABLE", str(e))

    async def list_documents(self, collection_path: str) -> List[Document]:
        collection = collection_path.strip("/")
        self._check_access(collection)
        return await asyncio.to_thread(self._list_sync, collection)

    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str:
        collection = collection_path.strip("/")
        self._check_access(collection)
        return await asyncio.to_thread(self._create_sync, collection, dict(fields))

    async def update(self, doc_path: str, fields: Dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        collection, doc_id = split_doc_path(doc_path)
        self._check_access(collection)
        await asyncio.to_thread(self._update_sync, collection, doc_id, dict(fields))

    async def delete(self, doc_path: str) -> None:
        """Delete a document; deleting a missing document is not an error."""
        collection, doc_id = split_doc_path(doc_path)
        self._check_access(collection)
        await asyncio.to_thread(self._delete_sync, collection, doc_id)
