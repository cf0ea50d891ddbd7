"""Background sweeps (auto-finalize, pairing code purge)."""

from relay.services.gc.base import GCResult, GCTask
from relay.services.gc.scheduler import SweepScheduler

__all__ = ["GCResult", "GCTask", "SweepScheduler"]
