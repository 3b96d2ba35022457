"""
Retry coordination for batch writes.

Per batch: Attempting(n) -> Committed | Retrying(n+1) | Exhausted.
Transient failures are retried with bounded exponential backoff while
n < max_retries; a fatal failure stops the whole import.
"""
import asyncio
import random
from typing import Awaitable, Callable, List

import asyncpg

from ...setup.logging import logger
from ..exceptions import BatchWriteError
from ..schemas import BatchOutcome, BatchStatus, Contact, FailureKind
from ..interfaces import BatchWriter
from .controller import AdaptiveBatchController
from .report import ImportReportAggregator

# SQLSTATE classes worth retrying: connection exception, transaction rollback
# (serialization failure, deadlock), insufficient resources, operator intervention
# (statement timeout, admin shutdown)
TRANSIENT_SQLSTATE_CLASSES = ("08", "40", "53", "57")
TRANSIENT_MESSAGE_MARKERS = ("timeout", "timed out", "network", "connection reset", "connection refused")


def classify_error(exc: BaseException) -> FailureKind:
    """Decide whether a storage error is worth retrying."""
    if isinstance(exc, BatchWriteError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError, OSError)):
        return FailureKind.TRANSIENT

    sqlstate = getattr(exc, "sqlstate", None)
    if isinstance(exc, asyncpg.PostgresError) and sqlstate:
        return FailureKind.TRANSIENT if sqlstate[:2] in TRANSIENT_SQLSTATE_CLASSES else FailureKind.FATAL

    message = str(exc).lower()
    if isinstance(exc, asyncpg.InterfaceError) and ("connection" in message or "closed" in message):
        return FailureKind.TRANSIENT
    if any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS):
        return FailureKind.TRANSIENT
    return FailureKind.FATAL


def describe_error(exc: BaseException) -> str:
    """Short, caller-safe description of a failure."""
    text = str(exc).strip().splitlines()[0] if str(exc).strip() else ""
    name = type(exc).__name__
    return f"{name}: {text[:200]}" if text else name


def backoff_delay(attempt: int, base: float, cap: float, jitter: float = 0.0) -> float:
    """Delay before retry number `attempt + 1`: base * 2^attempt, capped, plus jitter."""
    delay = min(cap, base * (2 ** attempt))
    if jitter > 0:
        delay += random.uniform(0, jitter)
    return delay


class RetryCoordinator:
    """
    Wraps a BatchWriter with a bounded retry loop.

    Every transient failure shrinks the adaptive threshold; a commit is
    reported to the controller so sustained success can grow it back.
    """

    def __init__(self, writer: BatchWriter, controller: AdaptiveBatchController,
                 report: ImportReportAggregator, max_retries: int = 3,
                 backoff_base: float = 0.5, backoff_cap: float = 10.0, backoff_jitter: float = 0.0,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.writer = writer
        self.controller = controller
        self.report = report
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.backoff_jitter = backoff_jitter
        self._sleep = sleep

    async def _attempt(self, batch_id: int, records: List[Contact], attempt: int) -> BatchOutcome:
        try:
            return await self.writer.write_batch(records, attempt=attempt, batch_id=batch_id)
        except Exception as e:
            # Writers should settle their own failures; classify anything that escapes
            logger.error(f"[Retry] Batch {batch_id} writer raised: {e}")
            return BatchOutcome(
                status=BatchStatus.FAILED, attempt=attempt, batch_id=batch_id,
                kind=classify_error(e), error=describe_error(e),
            )

    async def run(self, batch_id: int, records: List[Contact]) -> BatchOutcome:
        attempt = 0
        while True:
            outcome = await self._attempt(batch_id, records, attempt)

            if outcome.committed:
                self.controller.on_commit()
                self.report.record_committed(outcome)
                if attempt:
                    logger.info(f"[Retry] Batch {batch_id} committed after {attempt} retries")
                return outcome

            if outcome.kind == FailureKind.TRANSIENT:
                self.controller.on_failure()
                if attempt < self.max_retries:
                    delay = backoff_delay(attempt, self.backoff_base, self.backoff_cap, self.backoff_jitter)
                    logger.warning(
                        f"[Retry] Batch {batch_id} attempt {attempt + 1} failed ({outcome.error}), "
                        f"retrying in {delay:.2f}s"
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue

                logger.error(
                    f"[Retry] Batch {batch_id} exhausted after {attempt + 1} attempts: {outcome.error}"
                )
                self.report.record_failed(batch_id, len(records), outcome.error, fatal=False)
                return outcome

            logger.error(f"[Retry] Batch {batch_id} failed with non-transient error: {outcome.error}")
            self.report.record_failed(
                batch_id, len(records), f"Batch {batch_id} failed: {outcome.error}", fatal=True
            )
            return outcome
