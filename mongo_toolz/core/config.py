import os
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment: upload/work directory, batch sizes, cleanup TTL, Mongo timeout, rate limit and server bind.
    Why available: Single source of configuration so routes, orchestrator and cleanup all use consistent limits."""
    upload_dir: str = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
    default_batch_size: int = int(os.getenv("DEFAULT_BATCH_SIZE", "1000"))
    max_batch_size: int = int(os.getenv("MAX_BATCH_SIZE", "100000"))
    cleanup_ttl_min: int = int(os.getenv("CLEANUP_TTL_MIN", "60"))
    read_chunk_kb: int = int(os.getenv("READ_CHUNK_KB", "64"))
    mongo_timeout_ms: int = int(os.getenv("MONGO_TIMEOUT_MS", "10000"))
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "20"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "4040"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "default_batch_size",
        "max_batch_size",
        "cleanup_ttl_min",
        "read_chunk_kb",
        "mongo_timeout_ms",
        "rate_limit_requests",
        "rate_limit_window_seconds",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure numeric limits are positive integers. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @property
    def cleanup_ttl_seconds(self) -> float:
        return self.cleanup_ttl_min * 60.0

    @property
    def read_chunk_bytes(self) -> int:
        return self.read_chunk_kb * 1024


settings = Settings()
