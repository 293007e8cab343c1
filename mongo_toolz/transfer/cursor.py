from typing import Any, AsyncIterator, Dict, List


class BatchCursorReader:
    """Async iterator of record batches pulled from a server-side cursor, at most batch_size records each.
    The cursor is advanced once per record and never read ahead of the current batch; cursor errors propagate unchanged.
    Why available: Export and copy both consume collections batch by batch with memory bounded by batch_size."""

    def __init__(self, cursor, batch_size: int):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.cursor = cursor
        self.batch_size = batch_size
        self._batches = self._read()

    async def _read(self) -> AsyncIterator[List[Dict[str, Any]]]:
        batch: List[Dict[str, Any]] = []
        async for doc in self.cursor:
            batch.append(doc)
            if len(batch) >= self.batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def __aiter__(self):
        return self

    async def __anext__(self) -> List[Dict[str, Any]]:
        return await self._batches.__anext__()
