"""
Conversion result models.

Structured representation of hop outcomes, generations and whole runs.
Results are machine-readable and human-readable.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HopStatus(str, Enum):
    """
    Outcome of one hop for one file.

    SUCCESS: Output produced and verified by re-identification
    FAILED: All attempts failed (tool error, timeout or verification)
    ABANDONED: The scheduler stopped waiting for the dispatch
    """

    SUCCESS = "success"
    FAILED = "failed"
    ABANDONED = "abandoned"


class HopOutcome(BaseModel):
    """Result of converting one file by one hop."""

    model_config = ConfigDict(extra="forbid")

    file_id: str
    converter: str
    source_path: str
    source_format: str
    target_format: str

    status: HopStatus
    output_paths: List[str] = Field(default_factory=list)
    output_format: Optional[str] = None
    attempts: int = 0

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    failure_reason: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> str:
        """Human-readable one-liner."""
        duration = self.duration_seconds()
        duration_str = f" ({duration:.1f}s)" if duration is not None else ""
        hop = f"{self.source_format} → {self.target_format}"

        if self.status == HopStatus.SUCCESS:
            outputs = ", ".join(self.output_paths)
            return f"SUCCESS{duration_str} [{self.converter}] {hop}: {self.source_path} → {outputs}"
        return (
            f"{self.status.value.upper()}{duration_str} [{self.converter}] {hop}: "
            f"{self.source_path} - {self.failure_reason} (attempts: {self.attempts})"
        )


class GenerationReport(BaseModel):
    """What one generation of the scheduler did."""

    model_config = ConfigDict(extra="forbid")

    number: int
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    removed: int = 0
    remaining: int = 0
    duration_seconds: float = 0.0


class RunSummary(BaseModel):
    """Outcome of a complete conversion run."""

    model_config = ConfigDict(extra="forbid")

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    generations: List[GenerationReport] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)
    converters: List[str] = Field(default_factory=list)

    documentation_path: Optional[str] = None
    run_log_path: Optional[str] = None
    errors_happened: bool = False
    aborted_reason: Optional[str] = None

    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> str:
        """Final console message."""
        if self.aborted_reason:
            return f"Run aborted: {self.aborted_reason}"
        converted = self.counts.get("converted", 0)
        total = self.counts.get("total", 0)
        head = f"{converted}/{total} files converted in {len(self.generations)} generation(s)"
        if self.errors_happened:
            return (
                f"{head}. One or more errors happened during runtime, "
                f"please check the log file for more information."
            )
        return f"{head}. No errors happened during runtime. See {self.documentation_path or 'documentation.json'}."
