import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Ensure repo root is on sys.path so `import mongo_toolz...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep the app's default work dir out of the repo
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="mongo-toolz-tests-"))

from mongo_toolz.channel.hub import ProgressChannel  # noqa: E402
from mongo_toolz.cleanup.registry import CleanupRegistry  # noqa: E402
from mongo_toolz.core.store import StoreRef  # noqa: E402


class FakeCursor:
    """Async cursor over a list; can be told to fail after N records like a dropped connection."""

    def __init__(self, docs: List[Dict[str, Any]], fail_after: Optional[int] = None):
        self.docs = docs
        self.fail_after = fail_after
        self.advanced = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.fail_after is not None and self.advanced >= self.fail_after:
            raise ConnectionError("connection closed by server")
        if self.advanced >= len(self.docs):
            raise StopAsyncIteration
        doc = self.docs[self.advanced]
        self.advanced += 1
        return doc


class FakeServer:
    """In-memory stand-in for one or more MongoDB databases, keyed by (uri, db_name)."""

    def __init__(self):
        self.databases: Dict[tuple, Dict[str, List[Dict[str, Any]]]] = {}
        self.count_errors: set = set()
        self.fail_find_after: Dict[str, int] = {}
        self.refuse: set = set()
        self.stores: List["FakeStore"] = []

    def db(self, uri: str, db_name: str) -> Dict[str, List[Dict[str, Any]]]:
        return self.databases.setdefault((uri, db_name), {})

    def factory(self, ref: StoreRef) -> "FakeStore":
        store = FakeStore(self, ref)
        self.stores.append(store)
        return store


class FakeStore:
    """Implements the DocumentStore interface on top of FakeServer."""

    def __init__(self, server: FakeServer, ref: StoreRef):
        self.server = server
        self.ref = ref
        self.connected = False
        self.closed = False

    @property
    def collections(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.server.db(self.ref.uri, self.ref.db_name)

    async def connect(self) -> None:
        if self.ref.uri in self.server.refuse:
            raise ConnectionError(f"cannot reach {self.ref.uri}")
        self.connected = True

    async def list_collections(self) -> List[str]:
        return list(self.collections)

    async def count(self, name: str) -> int:
        if name in self.server.count_errors:
            raise RuntimeError("count not permitted")
        return len(self.collections.get(name, []))

    def find(self, name: str, batch_size: int) -> FakeCursor:
        return FakeCursor(list(self.collections.get(name, [])), self.server.fail_find_after.get(name))

    async def insert_many(self, name: str, docs: List[Dict[str, Any]]) -> int:
        if not docs:
            raise ValueError("documents must be a non-empty list")
        self.collections.setdefault(name, []).extend(dict(d) for d in docs)
        return len(docs)

    async def delete_many(self, name: str) -> int:
        removed = len(self.collections.get(name, []))
        self.collections[name] = []
        return removed

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self):
        try:
            await self.connect()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def drain(mailbox) -> List[Dict[str, Any]]:
    """Pop every queued event from a mailbox as {"event", "data"} dicts."""
    events = []
    while not mailbox.queue.empty():
        events.append(mailbox.queue.get_nowait())
    return events


def names_of(events) -> List[str]:
    return [e["event"] for e in events]


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def channel() -> ProgressChannel:
    return ProgressChannel()


@pytest.fixture
def cleanup() -> CleanupRegistry:
    return CleanupRegistry(default_ttl=3600)


@pytest.fixture
def work_dir(tmp_path) -> str:
    path = tmp_path / "work"
    path.mkdir()
    return str(path)
