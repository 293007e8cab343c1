"""
Drives export ("backup"), copy ("transfer") and import ("upload") jobs.

Every mode runs the same per-collection loop: collection-start event, then
pull batch -> apply batch -> progress event until the source is exhausted,
then collection-done. Collections run strictly one after another; the first
store or filesystem error aborts the whole job with a single *-error event.
"""
import logging
import os
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import aiofiles
from bson import json_util

from mongo_toolz.channel.hub import ProgressChannel
from mongo_toolz.cleanup.registry import CleanupRegistry
from mongo_toolz.core.config import settings
from mongo_toolz.core.store import DocumentStore, StoreFactory
from mongo_toolz.guardrails.errors import TransferFailed
from mongo_toolz.transfer.archive import EXPORT_EXTENSION, build_archive, collection_name_for, list_record_files
from mongo_toolz.transfer.cursor import BatchCursorReader
from mongo_toolz.transfer.jobs import CollectionTask, JobMode, TransferJob
from mongo_toolz.transfer.parser import count_lines, iter_record_batches
from mongo_toolz.transfer.progress import compute_progress

logger = logging.getLogger(__name__)

Batch = List[Dict[str, Any]]

DOWNLOAD_PREFIX = "/download/"

# Name of the running count in progress payloads, per mode
COUNT_KEYS = {
    JobMode.EXPORT: "docsDone",
    JobMode.COPY: "transferred",
    JobMode.IMPORT: "importedCount",
}


class _Run:
    """Mutable bookkeeping for one job run: which collection (if any) is in flight."""

    def __init__(self, job: TransferJob):
        self.job = job
        self.collection: Optional[str] = None


class TransferOrchestrator:
    """Runs TransferJobs against job-scoped stores and reports through a ProgressChannel.
    Why available: Single engine behind /api/backup, /api/transfer and /api/upload so all three share batching, progress and failure semantics."""

    def __init__(
        self,
        channel: ProgressChannel,
        cleanup: CleanupRegistry,
        store_factory: StoreFactory = DocumentStore,
        work_dir: Optional[str] = None,
        read_chunk_size: Optional[int] = None,
    ):
        self.channel = channel
        self.cleanup = cleanup
        self.store_factory = store_factory
        self.work_dir = work_dir or settings.upload_dir
        self.read_chunk_size = read_chunk_size or settings.read_chunk_bytes

    async def run(self, job: TransferJob) -> Dict[str, Any]:
        """Run a job to completion and return its summary; raises TransferFailed after emitting *-error."""
        body = {
            JobMode.EXPORT: self._export,
            JobMode.COPY: self._copy,
            JobMode.IMPORT: self._import,
        }[job.mode]
        run = _Run(job)
        logger.info("%s job started (batch size %d)", job.mode.value, job.batch_size)
        try:
            summary = await body(run)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.exception("%s job failed in collection %s", job.mode.value, run.collection)
            payload: Dict[str, Any] = {"message": message}
            if run.collection is not None:
                payload["collection"] = run.collection
            self._emit(job, "error", payload)
            raise TransferFailed(message, run.collection) from e
        logger.info("%s job finished: %s", job.mode.value, summary)
        return summary

    def _emit(self, job: TransferJob, suffix: str, payload: Dict[str, Any]) -> None:
        self.channel.send(job.recipient_id, f"{job.mode.event_prefix}-{suffix}", payload)

    async def _count(self, store: DocumentStore, name: str) -> int:
        """Best-effort document count; 0 means unknown."""
        try:
            return await store.count(name)
        except Exception as e:
            logger.warning("count failed for %s, reporting unknown total: %s", name, e)
            return 0

    async def _run_collection(
        self,
        run: _Run,
        task: CollectionTask,
        batches: AsyncIterator[Batch],
        apply: Callable[[Batch], Awaitable[Any]],
    ) -> int:
        job = run.job
        count_key = COUNT_KEYS[job.mode]
        run.collection = task.name
        self._emit(job, "collection-start", {
            "collection": task.name,
            "index": task.index,
            "totalDocs": task.total_docs,
        })

        async for batch in batches:
            if not batch:
                continue
            await apply(batch)
            task.docs_done += len(batch)
            progress = compute_progress(task.docs_done, task.total_docs, task.elapsed())
            self._emit(job, "progress", {
                "collection": task.name,
                count_key: task.docs_done,
                "totalDocs": task.total_docs,
                **progress.as_payload(),
            })

        # collection-start carries the 0-based index, collection-done the 1-based count finished so far
        self._emit(job, "collection-done", {
            "collection": task.name,
            "index": task.index + 1,
            count_key: task.docs_done,
        })
        run.collection = None
        logger.info("%s: %d document(s) in %.1fs", task.name, task.docs_done, task.elapsed())
        return task.docs_done

    # -------------------------
    # Export
    # -------------------------

    async def _export(self, run: _Run) -> Dict[str, Any]:
        job = run.job
        base_name = f"{job.source.db_name}-{int(time.time() * 1000)}"
        out_dir = os.path.join(self.work_dir, base_name)
        os.makedirs(out_dir, exist_ok=True)
        self.cleanup.schedule(out_dir)

        async with self.store_factory(job.source) as store:
            names = await store.list_collections()
            self._emit(job, "start", {
                "totalCollections": len(names),
                "collections": names,
                "batchSize": job.batch_size,
            })
            for index, name in enumerate(names):
                run.collection = name
                total = await self._count(store, name)
                out_file = os.path.join(out_dir, name + EXPORT_EXTENSION)
                async with aiofiles.open(out_file, "w", encoding="utf-8") as out:

                    async def write(batch: Batch) -> None:
                        await out.write("".join(json_util.dumps(doc) + "\n" for doc in batch))

                    task = CollectionTask(name=name, index=index, total_docs=total)
                    reader = BatchCursorReader(store.find(name, job.batch_size), job.batch_size)
                    await self._run_collection(run, task, reader, write)

        zip_path = os.path.join(self.work_dir, base_name + ".zip")
        await build_archive(out_dir, zip_path)
        self.cleanup.schedule(zip_path)

        download = DOWNLOAD_PREFIX + os.path.basename(zip_path)
        self._emit(job, "done", {"zip": download})
        return {"zip": download}

    # -------------------------
    # Copy
    # -------------------------

    async def _copy(self, run: _Run) -> Dict[str, Any]:
        job = run.job
        migrated = 0
        async with self.store_factory(job.source) as src, self.store_factory(job.destination) as dst:
            names = await src.list_collections()
            self._emit(job, "start", {
                "totalCollections": len(names),
                "collections": names,
                "batchSize": job.batch_size,
            })
            for index, name in enumerate(names):
                run.collection = name
                total = await self._count(src, name)
                await dst.delete_many(name)

                async def insert(batch: Batch, name: str = name) -> None:
                    await dst.insert_many(name, batch)

                task = CollectionTask(name=name, index=index, total_docs=total)
                reader = BatchCursorReader(src.find(name, job.batch_size), job.batch_size)
                await self._run_collection(run, task, reader, insert)
                migrated += 1

        self._emit(job, "done", {"migratedCollections": migrated})
        return {"migratedCollections": migrated}

    # -------------------------
    # Import
    # -------------------------

    async def _import(self, run: _Run) -> Dict[str, Any]:
        job = run.job
        imported = 0
        files = list_record_files(job.source_dir)
        async with self.store_factory(job.destination) as store:
            self._emit(job, "start", {
                "totalFiles": len(files),
                "collections": [collection_name_for(f) for f in files],
                "batchSize": job.batch_size,
            })
            for index, fname in enumerate(files):
                name = collection_name_for(fname)
                path = os.path.join(job.source_dir, fname)
                run.collection = name
                await store.delete_many(name)

                try:
                    total: Optional[int] = await count_lines(path, self.read_chunk_size)
                except OSError as e:
                    logger.warning("line count failed for %s: %s", path, e)
                    total = None

                async def insert(batch: Batch, name: str = name) -> None:
                    await store.insert_many(name, batch)

                task = CollectionTask(name=name, index=index, total_docs=total)
                batches = iter_record_batches(path, job.batch_size, self.read_chunk_size)
                await self._run_collection(run, task, batches, insert)
                imported += 1

        self._emit(job, "done", {"importedCollections": imported})
        return {"importedCollections": imported}
