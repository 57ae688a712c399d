"""
Tests for the Firebase REST collaborators.

Covers:
    - Firestore typed values    — encode / decode
    - FirebaseAuth              — with a mocked requests session
    - FirestoreStore            — paging, update masks, error mapping
"""
import asyncio
from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from pkg.todo.backend import AuthError, StoreError
from pkg.todo.firebase import (
    FirebaseAuth,
    FirestoreStore,
    decode_fields,
    encode_fields,
    encode_value,
    parse_timestamp,
)
from pkg.todo.schema import User


def response(status=200, payload=None):
    r = MagicMock()
    r.ok = status < 400
    r.status_code = status
    r.json.return_value = payload if payload is not None else {}
    r.content = b"{...}" if payload is not None else b""
    r.text = ""
    return r


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Value encoding
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_encode_task_fields():
    created = datetime(2024, 4, 30, 10, 0, tzinfo=timezone.utc)
    encoded = encode_fields({
        "title": "Milk",
        "dueDate": date(2024, 5, 1),
        "priority": "low",
        "createdAt": created,
    })
    assert encoded == {
        "title": {"stringValue": "Milk"},
        "dueDate": {"stringValue": "2024-05-01"},
        "priority": {"stringValue": "low"},
        "createdAt": {"timestampValue": "2024-04-30T10:00:00Z"},
    }


def test_encode_scalars():
    assert encode_value(None) == {"nullValue": None}
    assert encode_value(True) == {"booleanValue": True}
    assert encode_value(3) == {"integerValue": "3"}
    assert encode_value(1.5) == {"doubleValue": 1.5}


def test_encode_rejects_unknown_type():
    with pytest.raises(StoreError) as exc:
        encode_value(object())
    assert exc.value.code == "INVALID_ARGUMENT"


def test_decode_document_fields():
    fields = decode_fields({
        "name": {"stringValue": "Groceries"},
        "createdAt": {"timestampValue": "2024-04-30T10:00:00.123456789Z"},
        "count": {"integerValue": "2"},
        "tags": {"arrayValue": {"values": [{"stringValue": "a"}]}},
        "meta": {"mapValue": {"fields": {"x": {"booleanValue": False}}}},
        "gone": {"nullValue": None},
    })
    assert fields["name"] == "Groceries"
    assert fields["createdAt"] == datetime(2024, 4, 30, 10, 0, 0, 123456, tzinfo=timezone.utc)
    assert fields["count"] == 2
    assert fields["tags"] == ["a"]
    assert fields["meta"] == {"x": False}
    assert fields["gone"] is None


def test_parse_timestamp_without_fraction():
    assert parse_timestamp("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FirebaseAuth
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestFirebaseAuth:

    def test_sign_in_sets_user_and_notifies(self):
        http = MagicMock()
        http.post.return_value = response(200, {
            "localId": "uid-1", "email": "ann@example.com", "idToken": "tok",
        })
        auth = FirebaseAuth("key-123", session=http)
        seen = []
        auth.on_session_change(seen.append)

        user = asyncio.run(auth.sign_in("ann@example.com", "secret1"))

        assert user == User(uid="uid-1", email="ann@example.com")
        assert user.id_token == "tok"
        assert auth.current_user is user
        assert seen == [user]
        url = http.post.call_args[0][0]
        kwargs = http.post.call_args[1]
        assert url.endswith("/accounts:signInWithPassword")
        assert kwargs["params"] == {"key": "key-123"}
        assert kwargs["json"]["returnSecureToken"] is True

    def test_sign_up_does_not_sign_in(self):
        http = MagicMock()
        http.post.return_value = response(200, {"localId": "uid-1", "email": "ann@example.com"})
        auth = FirebaseAuth("key", session=http)

        user = asyncio.run(auth.sign_up("ann@example.com", "secret1"))

        assert user.uid == "uid-1"
        assert auth.current_user is None
        assert http.post.call_args[0][0].endswith("/accounts:signUp")

    def test_provider_error_mapped_to_message(self):
        http = MagicMock()
        http.post.return_value = response(400, {"error": {"code": 400, "message": "EMAIL_EXISTS"}})
        auth = FirebaseAuth("key", session=http)

        with pytest.raises(AuthError) as exc:
            asyncio.run(auth.sign_up("ann@example.com", "secret1"))
        assert exc.value.code == "EMAIL_EXISTS"
        assert exc.value.message == "The email address is already in use by another account."

    def test_error_detail_kept_for_unknown_code(self):
        http = MagicMock()
        http.post.return_value = response(400, {
            "error": {"message": "SOMETHING_NEW : Details from the provider"},
        })
        with pytest.raises(AuthError) as exc:
            asyncio.run(FirebaseAuth("key", session=http).sign_in("a@b.co", "secret1"))
        assert exc.value.code == "SOMETHING_NEW"
        assert exc.value.message == "Details from the provider"

    def test_network_failure(self):
        http = MagicMock()
        http.post.side_effect = requests.ConnectionError("offline")
        auth = FirebaseAuth("key", session=http)

        with pytest.raises(AuthError) as exc:
            asyncio.run(auth.sign_in("ann@example.com", "secret1"))
        assert exc.value.code == "NETWORK_ERROR"
        assert auth.current_user is None

    def test_sign_out_notifies_none(self):
        auth = FirebaseAuth("key", session=MagicMock())
        auth.current_user = User(uid="u", email="ann@example.com", id_token="tok")
        seen = []
        auth.on_session_change(seen.append)

        asyncio.run(auth.sign_out())

        assert auth.current_user is None
        assert seen == [None]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FirestoreStore
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def make_store(http):
    auth = FirebaseAuth("key", session=http)
    auth.current_user = User(uid="uid-1", email="ann@example.com", id_token="tok")
    return FirestoreStore("demo-project", auth)


def doc(doc_id, **fields):
    return {
        "name": f"projects/demo-project/databases/(default)/documents/x/{doc_id}",
        "fields": encode_fields(fields),
    }


class TestFirestoreStore:

    def test_list_follows_page_tokens(self):
        http = MagicMock()
        http.request.side_effect = [
            response(200, {"documents": [doc("a", name="A")], "nextPageToken": "p2"}),
            response(200, {"documents": [doc("b", name="B")]}),
        ]
        store = make_store(http)

        docs = asyncio.run(store.list_documents("users/uid-1/todoLists"))

        assert [(d.id, d.fields["name"]) for d in docs] == [("a", "A"), ("b", "B")]
        first, second = http.request.call_args_list
        assert first[0][0] == "GET"
        assert first[0][1].endswith(
            "/projects/demo-project/databases/(default)/documents/users/uid-1/todoLists"
        )
        assert first[1]["headers"] == {"Authorization": "Bearer tok"}
        assert second[1]["params"]["pageToken"] == "p2"

    def test_list_empty_collection(self):
        http = MagicMock()
        http.request.return_value = response(200, {})
        assert asyncio.run(make_store(http).list_documents("users/uid-1/todoLists")) == []

    def test_create_returns_generated_id(self):
        http = MagicMock()
        http.request.return_value = response(200, doc("new-id", title="Milk"))

        new_id = asyncio.run(make_store(http).create(
            "users/uid-1/todoLists/l1/tasks", {"title": "Milk"}
        ))

        assert new_id == "new-id"
        args, kwargs = http.request.call_args
        assert args[0] == "POST"
        assert kwargs["json"] == {"fields": {"title": {"stringValue": "Milk"}}}

    def test_update_masks_given_fields_only(self):
        http = MagicMock()
        http.request.return_value = response(200, doc("t1", priority="high"))

        asyncio.run(make_store(http).update(
            "users/uid-1/todoLists/l1/tasks/t1", {"priority": "high"}
        ))

        args, kwargs = http.request.call_args
        assert args[0] == "PATCH"
        assert args[1].endswith("/users/uid-1/todoLists/l1/tasks/t1")
        assert kwargs["params"] == {
            "updateMask.fieldPaths": ["priority"],
            "currentDocument.exists": "true",
        }
        assert kwargs["json"] == {"fields": {"priority": {"stringValue": "high"}}}

    def test_delete(self):
        http = MagicMock()
        http.request.return_value = response(200)

        asyncio.run(make_store(http).delete("users/uid-1/todoLists/l1/tasks/t1"))

        args, _ = http.request.call_args
        assert args[0] == "DELETE"

    def test_error_status_becomes_store_error(self):
        http = MagicMock()
        http.request.return_value = response(404, {
            "error": {"code": 404, "status": "NOT_FOUND", "message": "No document to update"},
        })

        with pytest.raises(StoreError) as exc:
            asyncio.run(make_store(http).update("users/uid-1/todoLists/l1/tasks/t1", {"priority": "low"}))
        assert exc.value.code == "NOT_FOUND"
        assert exc.value.message == "No document to update"

    def test_network_failure_is_unavailable(self):
        http = MagicMock()
        http.request.side_effect = requests.Timeout("slow")

        with pytest.raises(StoreError) as exc:
            asyncio.run(make_store(http).list_documents("users/uid-1/todoLists"))
        assert exc.value.code == "UNAVAILABLE"

    def test_no_token_when_signed_out(self):
        http = MagicMock()
        http.request.return_value = response(200, {})
        store = make_store(http)
        store.auth.current_user = None

        asyncio.run(store.list_documents("users/uid-1/todoLists"))

        assert http.request.call_args[1]["headers"] == {}
