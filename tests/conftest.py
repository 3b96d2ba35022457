"""
Shared fixtures: CSV builders and an in-memory storage collaborator
implementing acquire/begin/execute/commit/rollback/release with fault injection.
"""
import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")

import asyncio
import csv
import io
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from contact_loader.core.importing import BulkUpsertExecutor, ContactImportPipeline
from contact_loader.setup.config import ImportConfig


class ConstraintViolation(Exception):
    """Stands in for a storage-side constraint error."""


# Column widths of the contacts table
EMAIL_WIDTH = 254
NAME_WIDTH = 255


class FakeSession:
    def __init__(self, storage: "InMemoryStorage"):
        self.storage = storage
        self.pending: Optional[Dict[str, Tuple[str, Optional[str]]]] = None
        self.staged = 0

    async def begin(self):
        self.pending = {}
        self.staged = 0

    async def execute(self, statement: str, params: Sequence) -> int:
        await asyncio.sleep(0)
        self.storage.statements.append((statement, len(params)))
        if self.storage.failures:
            failure = self.storage.failures.pop(0)
            if failure is not None:
                raise failure
        for i in range(0, len(params), 3):
            email, first_name, last_name = params[i:i + 3]
            if len(email) > EMAIL_WIDTH or len(first_name) > NAME_WIDTH or len(last_name or "") > NAME_WIDTH:
                raise ConstraintViolation("value too long for type character varying")
            self.pending[email] = (first_name, last_name)
            self.staged += 1
        return len(params) // 3

    async def execute_isolated(self, statement: str, params: Sequence) -> int:
        if params[0] in self.storage.rejected_emails:
            await asyncio.sleep(0)
            raise ConstraintViolation(f"check constraint rejected {params[0]}")
        return await self.execute(statement, params)

    async def commit(self):
        self.storage.rows.update(self.pending)
        self.storage.committed_batches.append(self.staged)
        self.pending = None

    async def rollback(self):
        self.pending = None
        self.storage.rollbacks += 1


class InMemoryStorage:
    """
    Dict-backed storage keyed by email.

    `failures` is consumed one entry per execute call: None lets the call
    through, an exception instance is raised.
    """

    def __init__(self):
        self.rows: Dict[str, Tuple[str, Optional[str]]] = {}
        self.statements: List[Tuple[str, int]] = []
        self.committed_batches: List[int] = []
        self.failures: List[Optional[BaseException]] = []
        self.rejected_emails = set()
        self.acquire_error: Optional[BaseException] = None
        self.acquired = 0
        self.released = 0
        self.rollbacks = 0

    def fail_next(self, exc: BaseException, times: int = 1):
        self.failures.extend([exc] * times)

    async def acquire(self) -> FakeSession:
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        return FakeSession(self)

    async def release(self, session: FakeSession):
        self.released += 1


def csv_text(headers: List[str], rows: List[List[str]], delimiter: str = ",") -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def contact_rows(count: int, start: int = 0) -> List[List[str]]:
    return [[f"user{i}@example.com", f"First{i}", f"Last{i}"] for i in range(start, start + count)]


HEADERS = ["email", "first_name", "last_name"]

FAST_IMPORT = dict(
    backoff_base_seconds=0.0,
    backoff_cap_seconds=0.0,
    backoff_jitter_seconds=0.0,
    stall_notice_seconds=0.0,
)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def make_config():
    def _make(**overrides) -> ImportConfig:
        return ImportConfig(**{**FAST_IMPORT, **overrides})
    return _make


@pytest.fixture
def make_pipeline(storage, make_config):
    def _make(**overrides) -> ContactImportPipeline:
        config = make_config(**overrides)
        executor = BulkUpsertExecutor(
            storage,
            table=config.table_name,
            mode=config.write_mode,
            max_bind_parameters=config.max_bind_parameters,
            concurrency=config.record_concurrency,
            failure_ratio=config.chunk_failure_ratio,
        )
        return ContactImportPipeline(executor, config)
    return _make


@pytest.fixture
def csv_file_factory(tmp_path):
    """Write CSV files into a temporary directory."""
    def _create(headers: List[str], rows: List[List[str]], name: str = "contacts.csv") -> str:
        path = tmp_path / name
        path.write_text(csv_text(headers, rows), encoding="utf-8")
        return str(path)
    return _create
