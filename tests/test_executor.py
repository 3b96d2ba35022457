"""
Unit tests for the bulk upsert executor.
"""
import asyncio

import pytest

from contact_loader.core.exceptions import BatchWriteError
from contact_loader.core.importing.executor import (
    BulkUpsertExecutor,
    RepositoryBatchWriter,
    build_upsert_sql,
    chunk_capacity,
    dedupe_last_wins,
    flatten_params,
    quote_ident,
    split_into_chunks,
)
from contact_loader.core.schemas import BatchStatus, Contact, FailureKind

from conftest import ConstraintViolation


def contacts(n, start=0):
    return [Contact(email=f"u{i}@example.com", first_name=f"F{i}", last_name=f"L{i}") for i in range(start, start + n)]


class TestSqlHelpers:

    def test_build_upsert_sql(self):
        assert build_upsert_sql("contacts", 2) == (
            'INSERT INTO "contacts" ("email", "first_name", "last_name") VALUES ($1, $2, $3), ($4, $5, $6) '
            'ON CONFLICT ("email") DO UPDATE SET "first_name" = EXCLUDED."first_name", '
            '"last_name" = EXCLUDED."last_name"'
        )

    def test_quote_ident_rejects_unsafe_names(self):
        assert quote_ident("contacts_2024") == '"contacts_2024"'
        with pytest.raises(ValueError):
            quote_ident('contacts"; DROP TABLE x; --')

    def test_chunk_capacity(self):
        assert chunk_capacity(65535, 3) == 10922
        assert chunk_capacity(65535, 3, attempt=1) == 5461
        assert chunk_capacity(65535, 3, attempt=2) == 2730
        assert chunk_capacity(24, 3) == 4
        assert chunk_capacity(24, 3, attempt=10) == 1
        assert chunk_capacity(3, 3) == 1

    def test_chunk_stays_under_half_the_ceiling(self):
        for ceiling in (3, 7, 100, 999, 65535):
            for attempt in range(4):
                size = chunk_capacity(ceiling, 3, attempt)
                assert size >= 1
                assert size * 3 <= max(3, ceiling // 2)

    def test_split_into_chunks(self):
        chunks = split_into_chunks(contacts(10), 4)
        assert [len(c) for c in chunks] == [4, 4, 2]

    def test_dedupe_keeps_last_occurrence(self):
        rows = [
            Contact(email="a@example.com", first_name="First"),
            Contact(email="b@example.com", first_name="Bob"),
            Contact(email="a@example.com", first_name="Second"),
        ]
        deduped = dedupe_last_wins(rows)
        assert [(r.email, r.first_name) for r in deduped] == [("a@example.com", "Second"), ("b@example.com", "Bob")]

    def test_flatten_params(self):
        assert flatten_params(contacts(2)) == ["u0@example.com", "F0", "L0", "u1@example.com", "F1", "L1"]


class TestBulkUpsertExecutorStatementMode:

    @pytest.mark.asyncio
    async def test_commits_batch_in_one_transaction(self, storage):
        executor = BulkUpsertExecutor(storage)
        outcome = await executor.write_batch(contacts(5), batch_id=1)

        assert outcome.status == BatchStatus.COMMITTED
        assert outcome.persisted == 5
        assert outcome.chunks == 1
        assert storage.committed_batches == [5]
        assert len(storage.rows) == 5
        assert storage.acquired == storage.released == 1

    @pytest.mark.asyncio
    async def test_chunks_follow_parameter_ceiling(self, storage):
        executor = BulkUpsertExecutor(storage, max_bind_parameters=24)
        outcome = await executor.write_batch(contacts(10))
        assert outcome.chunks == 3
        assert [params for _, params in storage.statements] == [12, 12, 6]
        assert storage.committed_batches == [10]

    @pytest.mark.asyncio
    async def test_chunks_halve_on_retry_attempts(self, storage):
        executor = BulkUpsertExecutor(storage, max_bind_parameters=24)
        outcome = await executor.write_batch(contacts(10), attempt=1)
        assert outcome.chunks == 5
        assert all(params == 6 for _, params in storage.statements)

    @pytest.mark.asyncio
    async def test_duplicate_keys_collapse_to_last(self, storage):
        records = [
            Contact(email="a@example.com", first_name="Old"),
            Contact(email="a@example.com", first_name="New", last_name="Lee"),
        ]
        outcome = await BulkUpsertExecutor(storage).write_batch(records)
        assert outcome.committed
        assert storage.statements[0][1] == 3
        assert storage.rows == {"a@example.com": ("New", "Lee")}

    @pytest.mark.asyncio
    async def test_transient_failure_rolls_back_everything(self, storage):
        executor = BulkUpsertExecutor(storage, max_bind_parameters=24)
        storage.failures = [None, asyncio.TimeoutError()]

        outcome = await executor.write_batch(contacts(10), batch_id=4)

        assert outcome.status == BatchStatus.FAILED
        assert outcome.kind == FailureKind.TRANSIENT
        assert outcome.persisted == 0
        assert storage.rows == {}
        assert storage.rollbacks == 1
        assert storage.acquired == storage.released == 1

    @pytest.mark.asyncio
    async def test_fatal_failure_is_classified(self, storage):
        storage.fail_next(ConstraintViolation("value violates check constraint"))
        outcome = await BulkUpsertExecutor(storage).write_batch(contacts(2))
        assert outcome.kind == FailureKind.FATAL
        assert outcome.error.startswith("ConstraintViolation")

    @pytest.mark.asyncio
    async def test_acquire_failure_is_transient_and_releases_nothing(self, storage):
        storage.acquire_error = ConnectionRefusedError("connection refused")
        outcome = await BulkUpsertExecutor(storage).write_batch(contacts(2))
        assert outcome.kind == FailureKind.TRANSIENT
        assert storage.released == 0
        assert storage.rollbacks == 0

    def test_unknown_mode(self, storage):
        with pytest.raises(ValueError):
            BulkUpsertExecutor(storage, mode="copy")


class TestBulkUpsertExecutorPerRecordMode:

    @pytest.mark.asyncio
    async def test_minority_rejections_keep_the_batch(self, storage):
        storage.rejected_emails = {"u1@example.com"}
        executor = BulkUpsertExecutor(storage, mode="per_record", concurrency=2)

        outcome = await executor.write_batch(contacts(4))

        assert outcome.committed
        assert outcome.persisted == 3
        assert outcome.rejected == 1
        rejected = [r for r in outcome.records if not r.ok]
        assert rejected[0].email == "u1@example.com"
        assert "ConstraintViolation" in rejected[0].error
        assert set(storage.rows) == {"u0@example.com", "u2@example.com", "u3@example.com"}

    @pytest.mark.asyncio
    async def test_majority_rejections_fail_the_batch(self, storage):
        storage.rejected_emails = {"u0@example.com", "u1@example.com", "u2@example.com"}
        outcome = await BulkUpsertExecutor(storage, mode="per_record").write_batch(contacts(4))

        assert outcome.status == BatchStatus.FAILED
        assert outcome.kind == FailureKind.FATAL
        assert "3 of 4 records rejected" in outcome.error
        assert storage.rows == {}
        assert storage.rollbacks == 1

    @pytest.mark.asyncio
    async def test_exactly_half_is_tolerated(self, storage):
        storage.rejected_emails = {"u0@example.com", "u1@example.com"}
        outcome = await BulkUpsertExecutor(storage, mode="per_record").write_batch(contacts(4))
        assert outcome.committed
        assert outcome.persisted == 2

    @pytest.mark.asyncio
    async def test_all_transient_rejections_make_a_transient_failure(self, storage):
        storage.fail_next(asyncio.TimeoutError(), times=4)
        outcome = await BulkUpsertExecutor(storage, mode="per_record").write_batch(contacts(4))
        assert outcome.kind == FailureKind.TRANSIENT


class TestRepositoryBatchWriter:

    @pytest.mark.asyncio
    async def test_success(self):
        class Service:
            def __init__(self):
                self.saved = []

            async def save_contacts(self, records):
                self.saved.extend(records)

        service = Service()
        outcome = await RepositoryBatchWriter(service).write_batch(contacts(3), attempt=1, batch_id=9)
        assert outcome.committed
        assert outcome.persisted == 3
        assert outcome.attempt == 1
        assert outcome.batch_id == 9
        assert len(service.saved) == 3

    @pytest.mark.asyncio
    async def test_classifies_raised_errors(self):
        class Service:
            async def save_contacts(self, records):
                raise BatchWriteError("pool exhausted", FailureKind.TRANSIENT)

        outcome = await RepositoryBatchWriter(Service()).write_batch(contacts(1))
        assert outcome.kind == FailureKind.TRANSIENT
        assert outcome.error == "BatchWriteError: pool exhausted"
