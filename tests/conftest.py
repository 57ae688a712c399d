"""Shared fixtures for todolanes tests."""

import asyncio
import sys
from pathlib import Path

import pytest

# Ensure the project root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from pkg.todo.backend import StoreError
from pkg.todo.local import LocalAuth, SQLiteDocumentStore


class RecordingStore:
    """
    Wraps a real store, recording every call.

    fail_on: operation names ("list", "create", "update", "delete") that raise
             StoreError instead of reaching the wrapped store.
    gated:   when True, list calls wait until release() is called.
    """

    def __init__(self, inner):
        self.inner = inner
        self.calls = []
        self.fail_on = set()
        self.gated = False
        self._gate = None

    @property
    def writes(self):
        return [c for c in self.calls if c[0] != "list"]

    def _record(self, op, *args):
        self.calls.append((op,) + args)
        if op in self.fail_on:
            raise StoreError("UNAVAILABLE", f"{op} failed")

    def release(self):
        self.gated = False
        if self._gate is not None:
            self._gate.set()

    async def list_documents(self, collection_path):
        self._record("list", collection_path)
        if self.gated:
            if self._gate is None:
                self._gate = asyncio.Event()
            await self._gate.wait()
        return await self.inner.list_documents(collection_path)

    async def create(self, collection_path, fields):
        self._record("create", collection_path)
        return await self.inner.create(collection_path, fields)

    async def update(self, doc_path, fields):
        self._record("update", doc_path, dict(fields))
        await self.inner.update(doc_path, fields)

    async def delete(self, doc_path):
        self._record("delete", doc_path)
        await self.inner.delete(doc_path)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "todolanes.db")


@pytest.fixture
def local_backend(db_path):
    auth = LocalAuth(db_path)
    return auth, SQLiteDocumentStore(db_path, auth=auth)


@pytest.fixture
def recording_backend(local_backend):
    auth, store = local_backend
    return auth, RecordingStore(store)
