"""
Import report aggregation.
"""
import os
import time
from typing import Any, Dict, Optional

import psutil

from ..schemas import BatchOutcome, ImportResult, ImportState, ImportStats, RejectedRow


class ImportReportAggregator:
    """
    Accumulates counters of one import and builds its result. Makes no
    decisions beyond deriving the success flag.
    """

    def __init__(self, initial_batch_size: int = 100, state: Optional[ImportState] = None):
        self.state = state or ImportState(batch_size=initial_batch_size)
        self._process = psutil.Process(os.getpid())

    @property
    def fatal_error(self) -> Optional[str]:
        return self.state.error

    def record_valid(self) -> None:
        self.state.total_rows += 1
        self.state.valid_rows += 1

    def record_invalid(self) -> None:
        self.state.total_rows += 1
        self.state.invalid_rows += 1

    def keep_rejection(self, rejection: Optional[RejectedRow]) -> None:
        if rejection is not None:
            self.state.rejections.append(rejection)

    def next_batch_id(self) -> int:
        self.state.current_batch += 1
        return self.state.current_batch

    def record_committed(self, outcome: BatchOutcome) -> None:
        self.state.committed_batches += 1
        self.state.persisted_rows += outcome.persisted
        self.state.unpersisted_rows += outcome.rejected

    def record_failed(self, batch_id: int, rows: int, error: Optional[str] = None,
                      fatal: bool = False) -> None:
        """Record a batch as permanently failed; a fatal failure also stops the import."""
        if batch_id not in self.state.failed_batches:
            self.state.failed_batches.append(batch_id)
        self.state.unpersisted_rows += rows
        if fatal:
            self.set_fatal(error or f"Batch {batch_id} failed")

    def set_fatal(self, message: str) -> None:
        # First fatal error wins
        if self.state.error is None:
            self.state.error = message

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.state.started_at) * 1000)

    def rows_per_second(self) -> int:
        elapsed = time.monotonic() - self.state.started_at
        return int(self.state.total_rows / elapsed) if elapsed > 0 else 0

    def snapshot(self) -> Dict[str, Any]:
        state = self.state
        return {
            "total": state.total_rows,
            "valid": state.valid_rows,
            "invalid": state.invalid_rows,
            "persisted": state.persisted_rows,
            "unpersisted": state.unpersisted_rows,
            "current_batch": state.current_batch,
            "batch_size": state.batch_size,
            "failed_batches": list(state.failed_batches),
            "elapsed_ms": self.elapsed_ms(),
            "memory_rss_mb": round(self._process.memory_info().rss / (1024 * 1024), 1),
        }

    def result(self) -> ImportResult:
        state = self.state
        error = state.error
        if error is None and state.valid_rows == 0:
            error = "No valid records found"
        elif error is None and state.committed_batches == 0:
            error = "No batch could be persisted"

        return ImportResult(
            success=error is None,
            error=error,
            stats=ImportStats(
                total=state.total_rows,
                valid=state.valid_rows,
                invalid=state.invalid_rows,
                persisted=state.persisted_rows,
                unpersisted=state.unpersisted_rows,
                processing_time_ms=self.elapsed_ms(),
            ),
            failed_batches=list(state.failed_batches),
            rejections=list(state.rejections),
        )
