"""
Contact repository and persistence service.
"""
from typing import List, Optional

from ..core.exceptions import BatchWriteError
from ..core.importing.executor import CONTACT_COLUMNS, BulkUpsertExecutor, quote_ident
from ..core.schemas import Contact, FailureKind
from ..setup.logging import logger
from .storage import AsyncpgStorage


class ContactRepository:
    """Keyed contact persistence on top of the asyncpg storage collaborator."""

    def __init__(self, storage: AsyncpgStorage, executor: BulkUpsertExecutor):
        self.storage = storage
        self.executor = executor
        self.table = executor.table

    async def save_many(self, contacts: List[Contact]) -> None:
        """
        Upsert contacts in one transaction.

        Raises:
            BatchWriteError: classified as transient or fatal.
        """
        if not contacts:
            logger.debug("[Repository] No contacts to save, skipping")
            return
        outcome = await self.executor.write_batch(contacts)
        if not outcome.committed:
            raise BatchWriteError(outcome.error or "Batch write failed", outcome.kind or FailureKind.FATAL)

    async def find_by_email(self, email: str) -> Optional[Contact]:
        columns = ", ".join(quote_ident(c) for c in CONTACT_COLUMNS)
        statement = f"SELECT {columns} FROM {quote_ident(self.table)} WHERE {quote_ident('email')} = $1"
        session = await self.storage.acquire()
        try:
            row = await session.fetch_one(statement, (email.strip().lower(),))
        finally:
            await self.storage.release(session)
        if row is None:
            return None
        return Contact(email=row["email"], first_name=row["first_name"], last_name=row["last_name"])

    async def count(self) -> int:
        session = await self.storage.acquire()
        try:
            row = await session.fetch_one(f"SELECT COUNT(*) AS total FROM {quote_ident(self.table)}", ())
        finally:
            await self.storage.release(session)
        return int(row["total"]) if row is not None else 0


class ContactService:
    """Persistence service the import pipeline can write through."""

    def __init__(self, repository: ContactRepository):
        self.repository = repository

    async def save_contacts(self, contacts: List[Contact]) -> None:
        logger.debug(f"[ContactService] Saving {len(contacts)} contacts")
        await self.repository.save_many(contacts)

    async def get_contact(self, email: str) -> Optional[Contact]:
        return await self.repository.find_by_email(email)
