"""Progress metrics for one collection: percent complete, throughput and ETA."""
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional


def round_half_up(value: float) -> int:
    """Round .5 upwards for non-negative values (Python's round() is banker's rounding)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ProgressSnapshot:
    percent: Optional[int]
    speed: int
    eta_sec: Optional[int]

    def as_payload(self) -> Dict[str, Any]:
        return {"percent": self.percent, "speed": self.speed, "etaSec": self.eta_sec}


def compute_progress(done: int, total: Optional[int], elapsed_seconds: float) -> ProgressSnapshot:
    """Compute percent, docs/sec and ETA seconds for `done` of `total` records after `elapsed_seconds`.
    A total of 0 or None means unknown: percent and ETA are then None. Elapsed time is floored to one second.
    Why available: Shared by export, copy and import so all three report identical numbers."""
    elapsed = max(1.0, elapsed_seconds)
    speed = max(0, round_half_up(done / elapsed))

    percent = None
    if total:
        percent = min(100, round_half_up(done / total * 100))

    eta_sec = None
    if total and speed:
        eta_sec = max(0, round_half_up((total - done) / speed))

    return ProgressSnapshot(percent=percent, speed=speed, eta_sec=eta_sec)
