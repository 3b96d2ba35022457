"""
Bulk upsert executor.

One batch -> one pooled session -> one transaction spanning every chunk.
Chunks are sized to half the storage engine's bind-parameter ceiling and
halved again on every retry attempt.
"""
import asyncio
import re
import time
from typing import Any, List, Optional, Sequence, Tuple

from ...setup.logging import logger
from ..exceptions import BatchWriteError
from ..interfaces import ContactPersistence, StoragePool, StorageSession
from ..schemas import BatchOutcome, BatchStatus, Contact, FailureKind, RecordOutcome
from .retry import classify_error, describe_error

CONTACT_COLUMNS = ("email", "first_name", "last_name")
CONTACT_KEY = "email"
IDENTIFIER_REGEX = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def quote_ident(ident: str) -> str:
    if not IDENTIFIER_REGEX.match(ident):
        raise ValueError(f"Invalid identifier: {ident!r}")
    return f'"{ident}"'


def chunk_capacity(max_bind_parameters: int, params_per_record: int, attempt: int = 0) -> int:
    """Records per statement: half the parameter ceiling, halved per retry attempt."""
    safe_parameters = max_bind_parameters // 2
    capacity = max(1, safe_parameters // params_per_record)
    return max(1, capacity >> attempt)


def split_into_chunks(records: Sequence[Contact], size: int) -> List[List[Contact]]:
    return [list(records[i:i + size]) for i in range(0, len(records), size)]


def dedupe_last_wins(chunk: Sequence[Contact]) -> List[Contact]:
    """
    Collapse repeated keys to their final occurrence.

    A single INSERT ... ON CONFLICT DO UPDATE cannot touch the same row twice.
    """
    latest = {}
    for record in chunk:
        latest[record.email] = record
    return list(latest.values())


def build_upsert_sql(table: str, rows: int, columns: Sequence[str] = CONTACT_COLUMNS,
                     key: str = CONTACT_KEY) -> str:
    """INSERT of `rows` tuples with $n placeholders, overwriting non-key columns on conflict."""
    width = len(columns)
    collist = ", ".join(quote_ident(c) for c in columns)
    values = ", ".join(
        "(" + ", ".join(f"${row * width + col + 1}" for col in range(width)) + ")"
        for row in range(rows)
    )
    updates = ", ".join(f"{quote_ident(c)} = EXCLUDED.{quote_ident(c)}" for c in columns if c != key)
    return (
        f"INSERT INTO {quote_ident(table)} ({collist}) VALUES {values} "
        f"ON CONFLICT ({quote_ident(key)}) DO UPDATE SET {updates}"
    )


def flatten_params(chunk: Sequence[Contact]) -> List[Any]:
    params: List[Any] = []
    for record in chunk:
        params.extend(record.as_params())
    return params


class BulkUpsertExecutor:
    """
    Converts one batch into conflict-resolving multi-row writes.

    Modes:
        statement: one multi-row upsert per chunk; any error fails the batch.
        per_record: one upsert per record, run with bounded concurrency and
            settled individually; a chunk with more than `failure_ratio` of its
            records rejected fails (and rolls back) the whole batch.

    Never raises for storage errors; failures come back classified in the
    BatchOutcome for the RetryCoordinator.
    """

    def __init__(self, storage: StoragePool, table: str = "contacts", mode: str = "statement",
                 max_bind_parameters: int = 65535, params_per_record: int = len(CONTACT_COLUMNS),
                 concurrency: int = 8, failure_ratio: float = 0.5):
        if mode not in ("statement", "per_record"):
            raise ValueError(f"Unknown write mode: {mode}")
        self.storage = storage
        self.table = table
        self.mode = mode
        self.max_bind_parameters = max_bind_parameters
        self.params_per_record = params_per_record
        self.concurrency = concurrency
        self.failure_ratio = failure_ratio
        self._single_sql = build_upsert_sql(table, 1)

    async def write_batch(self, records: List[Contact], attempt: int = 0,
                          batch_id: Optional[int] = None) -> BatchOutcome:
        started = time.perf_counter()
        size = chunk_capacity(self.max_bind_parameters, self.params_per_record, attempt)
        chunks = split_into_chunks(records, size)
        outcomes: List[RecordOutcome] = []
        session: Optional[StorageSession] = None

        try:
            session = await self.storage.acquire()
            await session.begin()
            for index, chunk in enumerate(chunks):
                if self.mode == "statement":
                    outcomes.extend(await self._execute_statement(session, chunk))
                else:
                    outcomes.extend(await self._execute_per_record(session, chunk, index))
            await session.commit()
        except Exception as e:
            kind = classify_error(e)
            logger.warning(f"[Executor] Batch {batch_id} attempt {attempt} rolled back ({kind.value}): {e}")
            await self._rollback(session)
            return BatchOutcome(
                status=BatchStatus.FAILED, attempt=attempt, batch_id=batch_id, kind=kind,
                error=describe_error(e), records=outcomes, chunks=len(chunks),
                elapsed_seconds=time.perf_counter() - started,
            )
        finally:
            if session is not None:
                await self.storage.release(session)

        elapsed = time.perf_counter() - started
        logger.debug(
            f"[Executor] Batch {batch_id} committed: {len(records)} records in {len(chunks)} chunks "
            f"of <= {size} ({elapsed:.3f}s)"
        )
        return BatchOutcome(
            status=BatchStatus.COMMITTED, attempt=attempt, batch_id=batch_id,
            records=outcomes, chunks=len(chunks), elapsed_seconds=elapsed,
        )

    async def _execute_statement(self, session: StorageSession, chunk: List[Contact]) -> List[RecordOutcome]:
        rows = dedupe_last_wins(chunk)
        await session.execute(build_upsert_sql(self.table, len(rows)), flatten_params(rows))
        return [RecordOutcome(email=record.email, ok=True) for record in chunk]

    async def _execute_per_record(self, session: StorageSession, chunk: List[Contact],
                                  index: int) -> List[RecordOutcome]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def upsert_one(record: Contact) -> int:
            async with semaphore:
                return await session.execute_isolated(self._single_sql, record.as_params())

        settled = await asyncio.gather(*(upsert_one(r) for r in chunk), return_exceptions=True)

        outcomes = []
        errors: List[Tuple[Contact, BaseException]] = []
        for record, result in zip(chunk, settled):
            if isinstance(result, BaseException):
                errors.append((record, result))
                outcomes.append(RecordOutcome(email=record.email, ok=False, error=describe_error(result)))
            else:
                outcomes.append(RecordOutcome(email=record.email, ok=True))

        if errors and len(errors) > len(chunk) * self.failure_ratio:
            kinds = {classify_error(error) for _, error in errors}
            kind = FailureKind.TRANSIENT if kinds == {FailureKind.TRANSIENT} else FailureKind.FATAL
            raise BatchWriteError(
                f"{len(errors)} of {len(chunk)} records rejected in chunk {index} "
                f"(first: {describe_error(errors[0][1])})",
                kind,
            )
        if errors:
            logger.warning(f"[Executor] Chunk {index}: {len(errors)} of {len(chunk)} records rejected")
        return outcomes

    async def _rollback(self, session: Optional[StorageSession]) -> None:
        if session is None:
            return
        try:
            await session.rollback()
        except Exception as e:
            logger.warning(f"[Executor] Rollback failed: {e}")


class RepositoryBatchWriter:
    """
    Adapts a throwing persistence service (`save_contacts`) to the
    BatchWriter contract by classifying what it raises.
    """

    def __init__(self, service: ContactPersistence):
        self.service = service

    async def write_batch(self, records: List[Contact], attempt: int = 0,
                          batch_id: Optional[int] = None) -> BatchOutcome:
        started = time.perf_counter()
        try:
            await self.service.save_contacts(records)
        except Exception as e:
            return BatchOutcome(
                status=BatchStatus.FAILED, attempt=attempt, batch_id=batch_id,
                kind=classify_error(e), error=describe_error(e),
                elapsed_seconds=time.perf_counter() - started,
            )
        return BatchOutcome(
            status=BatchStatus.COMMITTED, attempt=attempt, batch_id=batch_id,
            records=[RecordOutcome(email=r.email, ok=True) for r in records],
            elapsed_seconds=time.perf_counter() - started,
        )
