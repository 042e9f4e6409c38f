"""Background workers for the court booking service."""

from .followup_worker import FollowUpWorker
from .hold_sweep_worker import HoldSweepWorker
from .manager import WorkerManager

__all__ = ["FollowUpWorker", "HoldSweepWorker", "WorkerManager"]
