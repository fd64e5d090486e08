from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

"""Processing result models for the household import pipeline.

ReconciliationTally is the mutable per-run accumulator owned by the
reconciliation engine; ImportResult is the frozen summary handed back to the
caller (CLI / surrounding application) once the run completes.
"""

__all__ = [
    "ReconciliationTally",
    "ImportResult",
]


@dataclass
class ReconciliationTally:
    """Per-run success/failure counters plus itemized failures.

    Counts are per household, not per row. ``skipped_rows`` and ``warnings``
    record data dropped or defaulted during normalization/grouping; they
    are informational and never count as failures.
    """
    succeeded: int = 0
    failed: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)  # (household_number, message)
    skipped_rows: int = 0
    warnings: list[str] = field(default_factory=list)

    def record_success(self) -> None:
        self.succeeded += 1

    def record_failure(self, household_number: str, message: str) -> None:
        self.failed += 1
        self.errors.append((household_number, message))

    def record_skip(self, message: str) -> None:
        self.skipped_rows += 1
        self.warnings.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed


@dataclass(frozen=True)
class ImportResult:
    """Aggregated outcome of one import run."""
    source_file: str
    total_rows: int  # ヘッダ以降の非空行数
    total_households: int
    tally: ReconciliationTally
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    dry_run: bool = False

    @property
    def succeeded(self) -> int:
        return self.tally.succeeded

    @property
    def failed(self) -> int:
        return self.tally.failed
