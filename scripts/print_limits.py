#!/usr/bin/env python3
"""Print batch, cleanup and API limits (from config and main app). Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from mongo_toolz.core.config import settings


def main():
    """Print DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE, CLEANUP_TTL_MIN, READ_CHUNK_KB, MONGO_TIMEOUT_MS and the rate limit."""
    print("Transfer & API limits")
    print("---------------------")
    print(f"  DEFAULT_BATCH_SIZE    = {settings.default_batch_size} (documents per batch when none is given)")
    print(f"  MAX_BATCH_SIZE        = {settings.max_batch_size} (larger requested sizes are capped)")
    print(f"  CLEANUP_TTL_MIN       = {settings.cleanup_ttl_min} min (exports, archives and extracted uploads)")
    print(f"  READ_CHUNK_KB         = {settings.read_chunk_kb} KB (upload and import read size)")
    print(f"  MONGO_TIMEOUT_MS      = {settings.mongo_timeout_ms} ms (server selection timeout)")
    print(f"  Rate limit            = {settings.rate_limit_requests} requests / {settings.rate_limit_window_seconds} s (per client IP)")
    print(f"  Work dir              = {settings.upload_dir}")
    print("")
    print("Env: UPLOAD_DIR, DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE, CLEANUP_TTL_MIN, READ_CHUNK_KB, MONGO_TIMEOUT_MS, RATE_LIMIT_*")


if __name__ == "__main__":
    main()
