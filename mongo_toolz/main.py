import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

import aiofiles
from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    WebSocket,
)
from fastapi.responses import FileResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mongo_toolz.channel.hub import ProgressChannel, serve_websocket
from mongo_toolz.cleanup.registry import CleanupRegistry, remove_path
from mongo_toolz.core.config import settings
from mongo_toolz.core.store import StoreFactory, StoreRef, get_store_factory
from mongo_toolz.guardrails.errors import (
    TransferFailed,
    ValidationFailed,
    http_error_handler,
    transfer_failed_handler,
    unhandled_error_handler,
    validation_failed_handler,
)
from mongo_toolz.guardrails.rate_limit import SimpleRateLimiter
from mongo_toolz.models.schemas import (
    BackupRequest,
    BackupResponse,
    ErrorResponse,
    LimitsResponse,
    TransferRequest,
    TransferResponse,
    UploadResponse,
)
from mongo_toolz.observability.middleware import RequestTimingMiddleware, get_request_id
from mongo_toolz.transfer.archive import EXTRACT_ERRORS, extract_archive, is_archive
from mongo_toolz.transfer.jobs import JobMode, TransferJob
from mongo_toolz.transfer.orchestrator import TransferOrchestrator

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# -------------------------
# App setup
# -------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the process-wide push channel and cleanup registry; pending cleanups are cancelled on shutdown."""
    os.makedirs(settings.upload_dir, exist_ok=True)
    app.state.channel = ProgressChannel()
    app.state.cleanup = CleanupRegistry()
    logger.info("Mongo Toolz ready, work dir %s", settings.upload_dir)
    yield
    await app.state.cleanup.shutdown()


app = FastAPI(title="Mongo Toolz", lifespan=lifespan)
app.add_middleware(RequestTimingMiddleware)
app.add_exception_handler(ValidationFailed, validation_failed_handler)
app.add_exception_handler(TransferFailed, transfer_failed_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

rate_limiter = SimpleRateLimiter(
    max_requests=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window_seconds,
)

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def get_work_dir() -> str:
    """Directory holding exports, archives and extracted uploads (dependency; overridden in tests)."""
    return settings.upload_dir


def get_orchestrator(
    request: Request,
    store_factory: StoreFactory = Depends(get_store_factory),
    work_dir: str = Depends(get_work_dir),
) -> TransferOrchestrator:
    return TransferOrchestrator(
        channel=request.app.state.channel,
        cleanup=request.app.state.cleanup,
        store_factory=store_factory,
        work_dir=work_dir,
    )


def parse_batch_size(raw: Any) -> int:
    """Lenient batch size: missing, boolean, non-numeric or < 1 falls back to the default; large values are capped."""
    if isinstance(raw, bool):
        return settings.default_batch_size
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return settings.default_batch_size
    if value < 1:
        return settings.default_batch_size
    return min(value, settings.max_batch_size)


async def _save_upload(upload: UploadFile, dest: str) -> int:
    """Stream an uploaded file to disk in chunks. Returns bytes written."""
    written = 0
    async with aiofiles.open(dest, "wb") as out:
        while True:
            chunk = await upload.read(settings.read_chunk_bytes)
            if not chunk:
                break
            await out.write(chunk)
            written += len(chunk)
    return written


# -------------------------
# Root
# -------------------------

@app.get("/")
def root():
    """Returns a minimal welcome payload with app name and docs URL."""
    return {"app": "Mongo Toolz", "docs": "/docs"}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/limits", response_model=LimitsResponse)
def limits(request: Request):
    """Returns batch size bounds, archive cleanup TTL and rate limit window.
    Why available: Lets the UI and clients prefill the batch size and tell users how long downloads stay available."""
    rate_limiter.check(request)
    return LimitsResponse(
        default_batch_size=settings.default_batch_size,
        max_batch_size=settings.max_batch_size,
        cleanup_ttl_min=settings.cleanup_ttl_min,
        rate_limit_requests=settings.rate_limit_requests,
        rate_limit_window_seconds=settings.rate_limit_window_seconds,
    )


# -------------------------
# Push channel
# -------------------------

@app.websocket("/ws")
async def progress_socket(websocket: WebSocket):
    """Push connection: first frame is welcome {socketId}; pass that id as socketId in job requests to receive progress."""
    await serve_websocket(websocket.app.state.channel, websocket)


# -------------------------
# Backup (export)
# -------------------------

@app.post("/api/backup", response_model=BackupResponse, responses=ERROR_RESPONSES)
async def backup(
    req: BackupRequest,
    request: Request,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Streams every collection of a database to NDJSON files, zips them, and returns the archive's download path.
    Why available: Export mode; progress is pushed as backup-* events to socketId while the request runs."""
    rate_limiter.check(request)
    if not req.uri or not req.db_name:
        raise ValidationFailed("Missing uri or dbName")

    job = TransferJob(
        mode=JobMode.EXPORT,
        source=StoreRef(uri=req.uri, db_name=req.db_name),
        batch_size=parse_batch_size(req.batch_size),
        recipient_id=req.socket_id,
    )
    logger.info("backup of %s requested (request %s)", req.db_name, get_request_id(request))
    summary = await orchestrator.run(job)
    return BackupResponse(zip=summary["zip"])


@app.get("/download/{name}")
def download(name: str, work_dir: str = Depends(get_work_dir)):
    """Streams a previously produced archive from the work directory."""
    if not name or name != os.path.basename(name) or name.startswith("."):
        raise HTTPException(status_code=404, detail="File not found")
    path = os.path.join(work_dir, name)
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, filename=name, media_type="application/zip")


# -------------------------
# Transfer (copy)
# -------------------------

@app.post("/api/transfer", response_model=TransferResponse, responses=ERROR_RESPONSES)
async def transfer(
    req: TransferRequest,
    request: Request,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Copies every collection from the source database to the destination, replacing destination contents collection by collection."""
    rate_limiter.check(request)
    if not req.src_uri or not req.src_db or not req.dst_uri or not req.dst_db:
        raise ValidationFailed("Missing params")

    job = TransferJob(
        mode=JobMode.COPY,
        source=StoreRef(uri=req.src_uri, db_name=req.src_db),
        destination=StoreRef(uri=req.dst_uri, db_name=req.dst_db),
        batch_size=parse_batch_size(req.batch_size),
        recipient_id=req.socket_id,
    )
    logger.info("transfer %s -> %s requested (request %s)", req.src_db, req.dst_db, get_request_id(request))
    summary = await orchestrator.run(job)
    return TransferResponse(migratedCollections=summary["migratedCollections"])


# -------------------------
# Upload (import)
# -------------------------

@app.post("/api/upload", response_model=UploadResponse, responses=ERROR_RESPONSES)
async def upload(
    request: Request,
    file: Optional[UploadFile] = File(None),
    uri: Optional[str] = Form(None),
    db_name: Optional[str] = Form(None, alias="dbName"),
    socket_id: Optional[str] = Form(None, alias="socketId"),
    batch_size: Optional[str] = Form(None, alias="batchSize"),
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Imports a zip produced by /api/backup: each NDJSON file inside replaces the collection of the same name.
    Why available: Import mode; the upload is always deleted afterwards and the extracted copy is kept until cleanup fires."""
    rate_limiter.check(request)
    if file is None:
        raise ValidationFailed("Missing file")
    if not uri or not db_name:
        raise ValidationFailed("Missing uri or dbName")

    work_dir = orchestrator.work_dir
    os.makedirs(work_dir, exist_ok=True)
    upload_path = os.path.join(work_dir, f"upload-{uuid.uuid4().hex}")
    extract_dir = os.path.join(work_dir, f"extract-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}")

    try:
        await _save_upload(file, upload_path)
        if not is_archive(upload_path):
            raise ValidationFailed("Uploaded file is not a zip archive")

        try:
            await extract_archive(upload_path, extract_dir)
        except EXTRACT_ERRORS as e:
            message = str(e) or type(e).__name__
            logger.warning("extracting upload %s failed: %s", upload_path, message)
            orchestrator.channel.send(socket_id, "upload-error", {"message": message})
            raise TransferFailed(message) from e

        job = TransferJob(
            mode=JobMode.IMPORT,
            destination=StoreRef(uri=uri, db_name=db_name),
            source_dir=extract_dir,
            batch_size=parse_batch_size(batch_size),
            recipient_id=socket_id,
        )
        logger.info("upload into %s requested (request %s)", db_name, get_request_id(request))
        summary = await orchestrator.run(job)
    finally:
        if os.path.exists(extract_dir):
            orchestrator.cleanup.schedule(extract_dir)
        try:
            remove_path(upload_path)
        except OSError as e:
            logger.warning("could not remove upload %s: %s", upload_path, e)

    return UploadResponse(importedCollections=summary["importedCollections"])


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("mongo_toolz.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
