"""
Generation progress.

The scheduler reports per-generation progress two ways:
- a tqdm bar on the console (fraction of dispatches complete, elapsed, ETA)
- a SchedulerProgress snapshot polled by the monitoring API
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from tqdm import tqdm


class SchedulerProgress(BaseModel):
    """Point-in-time view of a running scheduler."""

    model_config = ConfigDict(extra="forbid")

    running: bool = False
    paused: bool = False
    generation: int = 0
    dispatched: int = 0
    completed: int = 0
    in_working_set: int = 0
    started_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def percent(self) -> float:
        if self.dispatched == 0:
            return 0.0
        return 100.0 * self.completed / self.dispatched


class ProgressReporter:
    """Console progress for one generation."""

    def __init__(self, generation: int, total: int, enabled: bool = True):
        self._bar = tqdm(
            total=total,
            desc=f"Generation {generation}",
            unit="files",
            disable=not enabled,
            leave=False,
        )

    def advance(self, count: int = 1) -> None:
        self._bar.update(count)

    def close(self) -> None:
        self._bar.close()

    def __enter__(self) -> "ProgressReporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
