"""Deferred, deduplicated deletion of job artifacts (export dirs, archives, extracted uploads)."""
import asyncio
import logging
import os
import shutil
from typing import Dict, Optional, Set

from mongo_toolz.core.config import settings

logger = logging.getLogger(__name__)


def remove_path(path: str) -> None:
    """Delete a file or a directory tree; a path that is already gone is fine."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.remove(path)


class CleanupRegistry:
    """One-shot delete timers keyed by absolute path. Scheduling a path that is already pending is a no-op.
    Failures are logged as warnings and never retried; the key is released after firing either way.
    Why available: Produced archives must outlive the request long enough to be downloaded, then disappear."""

    def __init__(self, default_ttl: Optional[float] = None):
        self.default_ttl = settings.cleanup_ttl_seconds if default_ttl is None else default_ttl
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._running: Set[asyncio.Task] = set()
        self._firing: Set[str] = set()

    def schedule(self, path: str, ttl: Optional[float] = None) -> bool:
        """Register deletion of `path` after `ttl` seconds. Returns False when the path was already pending."""
        key = os.path.abspath(path)
        if key in self._timers:
            return False
        delay = self.default_ttl if ttl is None else ttl
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay, self._fire, key)
        logger.debug("cleanup scheduled for %s in %.0fs", key, delay)
        return True

    def cancel(self, path: str) -> bool:
        """Drop a pending deletion. Returns False if nothing was pending (or it is already running)."""
        key = os.path.abspath(path)
        handle = self._timers.get(key)
        if handle is None or key in self._firing:
            return False
        handle.cancel()
        del self._timers[key]
        return True

    def pending(self, path: str) -> bool:
        return os.path.abspath(path) in self._timers

    def __len__(self) -> int:
        return len(self._timers)

    def _fire(self, key: str) -> None:
        self._firing.add(key)
        task = asyncio.get_running_loop().create_task(self._remove(key))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(remove_path, key)
            logger.info("cleanup removed %s", key)
        except OSError as e:
            logger.warning("cleanup remove failed %s: %s", key, e)
        finally:
            self._timers.pop(key, None)
            self._firing.discard(key)

    async def shutdown(self) -> None:
        """Cancel every pending timer and wait for deletions already in progress."""
        for handle in list(self._timers.values()):
            handle.cancel()
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)
        self._timers.clear()
