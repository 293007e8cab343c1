"""Job and per-collection state for transfers."""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from mongo_toolz.core.store import StoreRef


class JobMode(str, Enum):
    EXPORT = "export"
    COPY = "copy"
    IMPORT = "import"

    @property
    def event_prefix(self) -> str:
        """Event family name seen by push clients."""
        return _EVENT_PREFIXES[self]


_EVENT_PREFIXES = {
    JobMode.EXPORT: "backup",
    JobMode.COPY: "transfer",
    JobMode.IMPORT: "upload",
}


@dataclass
class TransferJob:
    """A single export / copy / import request: mode, source, optional destination, batch size and the push recipient to report to.
    Why available: Passed to the orchestrator so one object carries everything a run needs; nothing about it is persisted."""

    mode: JobMode
    batch_size: int
    source: Optional[StoreRef] = None
    destination: Optional[StoreRef] = None
    source_dir: Optional[str] = None  # extracted upload, import only
    recipient_id: Optional[str] = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.mode in (JobMode.EXPORT, JobMode.COPY) and self.source is None:
            raise ValueError(f"{self.mode.value} jobs need a source store")
        if self.mode in (JobMode.COPY, JobMode.IMPORT) and self.destination is None:
            raise ValueError(f"{self.mode.value} jobs need a destination store")
        if self.mode is JobMode.IMPORT and not self.source_dir:
            raise ValueError("import jobs need an extracted source directory")


@dataclass
class CollectionTask:
    name: str
    index: int
    total_docs: Optional[int]  # None or 0 = unknown
    docs_done: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at
