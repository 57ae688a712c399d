"""
Firebase collaborators over REST.

FirebaseAuth talks to the Identity Toolkit API (email/password accounts);
FirestoreStore talks to the Firestore REST API with the signed-in user's ID
token. Calls are blocking `requests` calls pushed onto a worker thread so the
board's event loop never blocks on the network.

Endpoints:
    POST identitytoolkit.googleapis.com/v1/accounts:signInWithPassword
    POST identitytoolkit.googleapis.com/v1/accounts:signUp
    GET/POST/PATCH/DELETE firestore.googleapis.com/v1/projects/{p}/databases/(default)/documents/{path}
"""
import asyncio
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .backend import (
    AuthError,
    Document,
    SessionCallback,
    StoreError,
    Unsubscribe,
    auth_error,
)
from .events import SessionEvents
from .schema import User

logger = logging.getLogger(__name__)

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1"
FIRESTORE_URL = "https://firestore.googleapis.com/v1"
PAGE_SIZE = 300

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


# ── Firestore value encoding ─────────────────────────────────────────────────

def encode_value(value: Any) -> Dict[str, Any]:
    """Wrap a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        stamp = value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return {"timestampValue": stamp}
    if isinstance(value, date):
        return {"stringValue": value.isoformat()}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise StoreError("INVALID_ARGUMENT", f"Unsupported field type: {type(value).__name__}")


def encode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {name: encode_value(value) for name, value in fields.items()}


def parse_timestamp(stamp: str) -> datetime:
    """Firestore timestamps carry up to nanoseconds; keep microseconds."""
    stamp = _FRACTION_RE.sub(r".\1", stamp.replace("Z", "+00:00"))
    return datetime.fromisoformat(stamp)


def decode_value(value: Dict[str, Any]) -> Any:
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    return None


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in fields.items()}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FirebaseAuth
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class FirebaseAuth:
    """Email/password auth against the Identity Toolkit REST API."""

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        self.http = session or requests.Session()
        self.timeout = timeout
        self.current_user: Optional[User] = None
        self.events = SessionEvents()

    def on_session_change(self, callback: SessionCallback) -> Unsubscribe:
        return self.events.subscribe(callback)

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = self.http.post(
                f"{IDENTITY_URL}/accounts:{endpoint}",
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"accounts:{endpoint} failed: {e}")
            raise auth_error("NETWORK_ERROR")
        try:
            data = r.json()
        except ValueError:
            raise AuthError("INTERNAL_ERROR", r.text or f"HTTP {r.status_code}")
        if not r.ok:
            raise auth_error(data.get("error", {}).get("message", f"HTTP {r.status_code}"))
        return data

    def _credentials(self, email: str, password: str) -> Dict[str, Any]:
        return {"email": email, "password": password, "returnSecureToken": True}

    async def sign_in(self, email: str, password: str) -> User:
        data = await asyncio.to_thread(
            self._post, "signInWithPassword", self._credentials(email, password)
        )
        user = User(
            uid=data["localId"],
            email=data.get("email", email),
            id_token=data.get("idToken", ""),
        )
        self.current_user = user
        self.events.emit(user)
        return user

    async def sign_up(self, email: str, password: str) -> User:
        """Create the account. The new user still has to sign in."""
        data = await asyncio.to_thread(
            self._post, "signUp", self._credentials(email, password)
        )
        return User(uid=data["localId"], email=data.get("email", email))

    async def sign_out(self) -> None:
        # Tokens are bearer tokens held only here; dropping them ends the session.
        self.current_user = None
        self.events.emit(None)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FirestoreStore
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class FirestoreStore:
    """Document CRUD against the Firestore REST API."""

    def __init__(
        self,
        project_id: str,
        auth: FirebaseAuth,
        database: str = "(default)",
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = f"{FIRESTORE_URL}/projects/{project_id}/databases/{database}/documents"
        self.auth = auth
        self.http = session or auth.http
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        headers = {}
        user = self.auth.current_user
        if user and user.id_token:
            headers["Authorization"] = f"Bearer {user.id_token}"
        url = f"{self.base_url}/{path.strip('/')}"
        try:
            r = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StoreError("UNAVAILABLE", str(e))
        if not r.ok:
            try:
                err = r.json().get("error", {})
            except ValueError:
                err = {}
            raise StoreError(
                err.get("status") or f"HTTP_{r.status_code}",
                err.get("message") or r.text or f"HTTP {r.status_code}",
            )
        if not r.content:
            return {}
        try:
            return r.json()
        except ValueError:
            return {}

    @staticmethod
    def _to_document(raw: Dict[str, Any]) -> Document:
        return Document(
            id=raw["name"].rsplit("/", 1)[-1],
            fields=decode_fields(raw.get("fields", {})),
        )

    def _list_sync(self, collection_path: str) -> List[Document]:
        docs: List[Document] = []
        params: Dict[str, Any] = {"pageSize": PAGE_SIZE}
        while True:
            data = self._request("GET", collection_path, params=params)
            docs.extend(self._to_document(raw) for raw in data.get("documents", []))
            token = data.get("nextPageToken")
            if not token:
                return docs
            params = {"pageSize": PAGE_SIZE, "pageToken": token}

    async def list_documents(self, collection_path: str) -> List[Document]:
        return await asyncio.to_thread(self._list_sync, collection_path)

    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str:
        body = {"fields": encode_fields(fields)}
        data = await asyncio.to_thread(self._request, "POST", collection_path, json=body)
        return self._to_document(data).id

    async def update(self, doc_path: str, fields: Dict[str, Any]) -> None:
        """Patch only the given fields; fails with NOT_FOUND if the document is gone."""
        params = {
            "updateMask.fieldPaths": list(fields),
            "currentDocument.exists": "true",
        }
        body = {"fields": encode_fields(fields)}
        await asyncio.to_thread(self._request, "PATCH", doc_path, params=params, json=body)

    async def delete(self, doc_path: str) -> None:
        await asyncio.to_thread(self._request, "DELETE", doc_path)
