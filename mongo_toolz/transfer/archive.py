"""Zip packaging for exports and extraction for uploaded archives."""
import asyncio
import os
import zipfile
from typing import List

RECORD_EXTENSIONS = (".ndjson", ".json")
EXPORT_EXTENSION = ".ndjson"

# What zipfile raises for corrupt, encrypted, oversized or unsupported entries during extraction
EXTRACT_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, RuntimeError, NotImplementedError, EOFError, OSError)


def _zip_directory(src_dir: str, zip_path: str) -> None:
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for root, _dirs, files in os.walk(src_dir):
            for fname in sorted(files):
                full = os.path.join(root, fname)
                zf.write(full, arcname=os.path.relpath(full, src_dir))


def _extract(zip_path: str, dest_dir: str) -> None:
    # ZipFile.extractall strips absolute paths and ".." components
    with zipfile.ZipFile(zip_path) as zf:
        zf.extractall(dest_dir)


async def build_archive(src_dir: str, zip_path: str) -> str:
    """Zip the contents of src_dir (entries relative to it) into zip_path without blocking the event loop. Returns zip_path."""
    await asyncio.to_thread(_zip_directory, src_dir, zip_path)
    return zip_path


async def extract_archive(zip_path: str, dest_dir: str) -> str:
    """Extract an uploaded zip into dest_dir. Raises one of EXTRACT_ERRORS when the archive cannot be unpacked."""
    os.makedirs(dest_dir, exist_ok=True)
    await asyncio.to_thread(_extract, zip_path, dest_dir)
    return dest_dir


def is_archive(path: str) -> bool:
    return zipfile.is_zipfile(path)


def collection_name_for(fname: str) -> str:
    for ext in RECORD_EXTENSIONS:
        if fname.endswith(ext):
            return fname[: -len(ext)]
    return fname


def list_record_files(directory: str) -> List[str]:
    """Top-level *.ndjson / *.json files of an extracted upload, sorted by name.
    Why available: Import walks these in order; each one becomes the collection named after the file."""
    return sorted(
        fname
        for fname in os.listdir(directory)
        if fname.endswith(RECORD_EXTENSIONS) and os.path.isfile(os.path.join(directory, fname))
    )
