from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional


class BackupRequest(BaseModel):
    """Request body for /api/backup. Fields are optional here so missing ones produce the tool's own 400 message rather than a schema error."""

    model_config = ConfigDict(populate_by_name=True)

    uri: Optional[str] = Field(None, description="Source MongoDB connection string")
    db_name: Optional[str] = Field(None, alias="dbName")
    socket_id: Optional[str] = Field(None, alias="socketId", description="Push recipient id from the welcome event")
    batch_size: Any = Field(None, alias="batchSize", description="Documents per batch; parsed leniently")


class BackupResponse(BaseModel):
    ok: bool = True
    zip: str = Field(..., description="Download path of the produced archive, e.g. /download/mydb-1700000000000.zip")


class TransferRequest(BaseModel):
    """Request body for /api/transfer. Why available: Carries both source and destination so one request copies a whole database."""

    model_config = ConfigDict(populate_by_name=True)

    src_uri: Optional[str] = Field(None, alias="srcUri")
    src_db: Optional[str] = Field(None, alias="srcDb")
    dst_uri: Optional[str] = Field(None, alias="dstUri")
    dst_db: Optional[str] = Field(None, alias="dstDb")
    socket_id: Optional[str] = Field(None, alias="socketId")
    batch_size: Any = Field(None, alias="batchSize")


class TransferResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    migrated_collections: int = Field(..., ge=0, alias="migratedCollections")


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    imported_collections: int = Field(..., ge=0, alias="importedCollections")


class ErrorResponse(BaseModel):
    error: str


class LimitsResponse(BaseModel):
    """Current limits for clients. Why available: Lets a UI prefill batch size and explain how long archives stay downloadable."""

    default_batch_size: int
    max_batch_size: int
    cleanup_ttl_min: int
    rate_limit_requests: int
    rate_limit_window_seconds: int
