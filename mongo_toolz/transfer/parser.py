"""
Incremental NDJSON (one Extended JSON document per line) parsing for imports.
Memory stays bounded by one batch plus one partial line, whatever the file size.
"""
import codecs
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import aiofiles
from bson import json_util
from bson.errors import BSONError

from mongo_toolz.core.config import settings

logger = logging.getLogger(__name__)

LINE_TERMINATOR = "\n"


class LineRecordParser:
    """Turns arbitrary chunks of a line-delimited stream into batches of decoded documents.
    Lines that fail to decode (or decode to something other than an object) are skipped and counted in `skipped`.
    A trailing partial line without a terminator is never parsed."""

    def __init__(self, batch_size: int):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.skipped = 0
        self._pending = ""
        self._batch: List[Dict[str, Any]] = []
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pending(self) -> str:
        """Text received after the last line terminator."""
        return self._pending

    def feed(self, chunk: Union[str, bytes]) -> List[List[Dict[str, Any]]]:
        """Consume one chunk and return every batch that reached batch_size while doing so (usually zero or one)."""
        ready: List[List[Dict[str, Any]]] = []
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        complete, sep, rest = (self._pending + chunk).rpartition(LINE_TERMINATOR)
        self._pending = rest
        if not sep:
            return ready

        for raw in complete.split(LINE_TERMINATOR):
            line = raw.strip()
            if not line:
                continue
            doc = self._decode(line)
            if doc is None:
                continue
            self._batch.append(doc)
            if len(self._batch) >= self.batch_size:
                ready.append(self._batch)
                self._batch = []
        return ready

    def flush(self) -> List[Dict[str, Any]]:
        """Hand off whatever is accumulated below batch_size. Pending partial text is left unparsed."""
        batch, self._batch = self._batch, []
        return batch

    def _decode(self, line: str) -> Optional[Dict[str, Any]]:
        try:
            doc = json_util.loads(line)
        except (ValueError, TypeError, BSONError) as e:
            self.skipped += 1
            logger.debug("skipping undecodable line: %s", e)
            return None
        if not isinstance(doc, dict):
            self.skipped += 1
            logger.debug("skipping non-object line of type %s", type(doc).__name__)
            return None
        return doc


async def count_lines(path: str, chunk_size: Optional[int] = None) -> int:
    """Count newline bytes in a file by streaming it in chunks (never loads the whole file).
    Why available: Import uses it as the totalDocs estimate before parsing."""
    chunk_size = chunk_size or settings.read_chunk_bytes
    count = 0
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            count += chunk.count(b"\n")
    return count


async def iter_record_batches(
    path: str,
    batch_size: int,
    chunk_size: Optional[int] = None,
    parser: Optional[LineRecordParser] = None,
) -> AsyncIterator[List[Dict[str, Any]]]:
    """Stream a record file and yield full batches as they fill; the trailing short batch is yielded once, after the file is closed."""
    chunk_size = chunk_size or settings.read_chunk_bytes
    parser = parser or LineRecordParser(batch_size)

    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            for batch in parser.feed(chunk):
                yield batch

    if parser.pending.strip():
        logger.warning("%s: final line has no terminator and was not imported", path)
    if parser.skipped:
        logger.info("%s: skipped %d malformed line(s)", path, parser.skipped)

    tail = parser.flush()
    if tail:
        yield tail
