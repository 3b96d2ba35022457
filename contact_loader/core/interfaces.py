from typing import Any, List, Optional, Protocol, Sequence

from .schemas import BatchOutcome, Contact


class StorageSession(Protocol):
    """One pooled connection, used for a single batch transaction."""

    async def begin(self) -> None:
        ...

    async def execute(self, statement: str, params: Sequence[Any]) -> int:
        """Run a statement and return the number of affected rows."""
        ...

    async def execute_isolated(self, statement: str, params: Sequence[Any]) -> int:
        """Run a statement whose failure must not abort the enclosing transaction."""
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


class StoragePool(Protocol):
    """Storage collaborator: hands out sessions and takes them back."""

    async def acquire(self) -> StorageSession:
        ...

    async def release(self, session: StorageSession) -> None:
        ...


class BatchWriter(Protocol):
    """Persists one batch and reports a settled, classified outcome."""

    async def write_batch(self, records: List[Contact], attempt: int = 0,
                          batch_id: Optional[int] = None) -> BatchOutcome:
        ...


class ContactPersistence(Protocol):
    """Downstream persistence service; raises on failure."""

    async def save_contacts(self, contacts: List[Contact]) -> None:
        ...
