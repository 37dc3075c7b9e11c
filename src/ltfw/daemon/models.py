"""Reconciliation loop state and per-cycle reports."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field

from ltfw.firewall.sync import SyncResult


class LoopState(enum.Enum):
    """Lifecycle state of the reconciliation loop."""

    IDLE = "idle"
    RECONCILING = "reconciling"
    STOPPED = "stopped"


@dataclass
class CycleReport:
    """Outcome of one reconciliation cycle."""

    listeners: int = 0
    snapshot_failures: list[str] = field(default_factory=list)
    sync: SyncResult = field(default_factory=SyncResult)
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None

    @property
    def duration(self) -> float:
        """Seconds the cycle took; 0.0 while it is still running."""
        if self.end_time is None:
            return 0.0
        return self.end_time - self.start_time

    @property
    def failures(self) -> list[str]:
        return self.snapshot_failures + self.sync.failures

    @property
    def partial(self) -> bool:
        """True if any table, family or rule could not be processed."""
        return bool(self.failures)
