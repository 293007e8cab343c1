"""Unit tests for deferred artifact cleanup."""
import asyncio
import logging

import pytest

from mongo_toolz.cleanup import registry as registry_module
from mongo_toolz.cleanup.registry import CleanupRegistry


async def _settle(seconds: float = 0.2):
    await asyncio.sleep(seconds)


@pytest.mark.asyncio
async def test_deletes_file_and_directory_after_ttl(tmp_path):
    f = tmp_path / "a.zip"
    f.write_bytes(b"zip")
    d = tmp_path / "export"
    (d / "nested").mkdir(parents=True)
    (d / "nested" / "users.ndjson").write_text("{}\n")

    reg = CleanupRegistry(default_ttl=0.01)
    assert reg.schedule(str(f))
    assert reg.schedule(str(d))
    assert f.exists() and d.exists()

    await _settle()
    assert not f.exists()
    assert not d.exists()
    assert len(reg) == 0


@pytest.mark.asyncio
async def test_duplicate_schedule_is_noop_and_fires_once(tmp_path, monkeypatch):
    target = tmp_path / "dup"
    target.mkdir()
    calls = []
    real_remove = registry_module.remove_path

    def counting_remove(path):
        calls.append(path)
        real_remove(path)

    monkeypatch.setattr(registry_module, "remove_path", counting_remove)

    reg = CleanupRegistry()
    assert reg.schedule(str(target), ttl=0.05) is True
    assert reg.schedule(str(target), ttl=0.01) is False
    assert len(reg) == 1

    await _settle()
    assert calls == [str(target)]
    assert not reg.pending(str(target))


@pytest.mark.asyncio
async def test_reschedule_allowed_after_fire(tmp_path):
    target = tmp_path / "again.txt"
    target.write_text("x")
    reg = CleanupRegistry(default_ttl=0.01)
    reg.schedule(str(target))
    await _settle()
    assert not target.exists()

    target.write_text("y")
    assert reg.schedule(str(target)) is True
    await _settle()
    assert not target.exists()


@pytest.mark.asyncio
async def test_failed_delete_is_logged_not_raised(tmp_path, monkeypatch, caplog):
    def broken_remove(path):
        raise PermissionError("read-only")

    monkeypatch.setattr(registry_module, "remove_path", broken_remove)
    reg = CleanupRegistry(default_ttl=0.01)
    reg.schedule(str(tmp_path / "locked"))

    with caplog.at_level(logging.WARNING, logger="mongo_toolz.cleanup.registry"):
        await _settle()
    assert "cleanup remove failed" in caplog.text
    assert len(reg) == 0


@pytest.mark.asyncio
async def test_missing_path_is_fine(tmp_path):
    reg = CleanupRegistry(default_ttl=0.01)
    reg.schedule(str(tmp_path / "never-existed"))
    await _settle()
    assert len(reg) == 0


@pytest.mark.asyncio
async def test_cancel_and_shutdown(tmp_path):
    keep = tmp_path / "keep.txt"
    keep.write_text("x")
    other = tmp_path / "other.txt"
    other.write_text("x")

    reg = CleanupRegistry(default_ttl=0.05)
    reg.schedule(str(keep))
    reg.schedule(str(other))
    assert reg.cancel(str(keep)) is True
    assert reg.cancel(str(keep)) is False

    await reg.shutdown()
    await _settle()
    assert keep.exists()
    assert other.exists()
    assert len(reg) == 0
