"""MongoDB access for transfer jobs (Motor async client). Every method is a suspension point."""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from mongo_toolz.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreRef:
    """Connection string plus database name for one side of a job."""

    uri: str
    db_name: str


class DocumentStore:
    """One job-scoped connection to a single database: connect, list collections, count, find, insert_many, delete_many, close.
    Why available: The orchestrator only talks to this interface, so tests can swap in an in-memory store with the same awaitable methods."""

    def __init__(self, ref: StoreRef, timeout_ms: Optional[int] = None):
        self.ref = ref
        self.timeout_ms = timeout_ms or settings.mongo_timeout_ms
        self._client: Optional[AsyncIOMotorClient] = None
        self._db = None

    async def connect(self) -> None:
        """Open the client and ping the server so connectivity errors surface before any event is emitted."""
        self._client = AsyncIOMotorClient(self.ref.uri, serverSelectionTimeoutMS=self.timeout_ms)
        await self._client.admin.command("ping")
        self._db = self._client[self.ref.db_name]
        logger.debug("connected to %s", self.ref.db_name)

    async def list_collections(self) -> List[str]:
        return await self._db.list_collection_names()

    async def count(self, name: str) -> int:
        return await self._db[name].count_documents({})

    def find(self, name: str, batch_size: int):
        """Return a server-side cursor over the whole collection; the driver fetches at most batch_size per round trip."""
        return self._db[name].find({}, batch_size=batch_size)

    async def insert_many(self, name: str, docs: List[Dict[str, Any]]) -> int:
        result = await self._db[name].insert_many(docs, ordered=True)
        return len(result.inserted_ids)

    async def delete_many(self, name: str) -> int:
        result = await self._db[name].delete_many({})
        return result.deleted_count

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None

    async def __aenter__(self) -> "DocumentStore":
        try:
            await self.connect()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


StoreFactory = Callable[[StoreRef], DocumentStore]


def get_store_factory() -> StoreFactory:
    """Return the factory used to build job-scoped stores (FastAPI dependency; overridden in tests)."""
    return DocumentStore
