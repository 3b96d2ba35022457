from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
import time

from pydantic import BaseModel, Field

# Column widths of the contacts table; 254 is the longest deliverable address
EMAIL_MAX_LENGTH = 254
NAME_MAX_LENGTH = 255


@dataclass(frozen=True)
class Contact:
    """Canonical imported record, keyed by its normalized email."""
    email: str
    first_name: str
    last_name: Optional[str] = None

    def as_params(self) -> Tuple[str, str, Optional[str]]:
        """Bound parameters in column order."""
        return (self.email, self.first_name, self.last_name)


@dataclass(frozen=True)
class ColumnMapping:
    """Logical roles resolved to header names and positions, once per import."""
    email: str
    first_name: str
    last_name: Optional[str]
    positions: Dict[str, int]
    width: int

    def position(self, role: str) -> Optional[int]:
        return self.positions.get(role)


class FailureKind(str, Enum):
    """Classification of a batch write failure."""
    TRANSIENT = "transient"
    FATAL = "fatal"


class BatchStatus(str, Enum):
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class RecordOutcome:
    """Settled result of one record inside a batch write."""
    email: str
    ok: bool
    error: Optional[str] = None


@dataclass
class BatchOutcome:
    """Per-record outcomes plus the rollup of one batch write attempt."""
    status: BatchStatus
    attempt: int = 0
    batch_id: Optional[int] = None
    kind: Optional[FailureKind] = None
    error: Optional[str] = None
    records: List[RecordOutcome] = field(default_factory=list)
    chunks: int = 0
    elapsed_seconds: float = 0.0

    @property
    def committed(self) -> bool:
        return self.status == BatchStatus.COMMITTED

    @property
    def persisted(self) -> int:
        if not self.committed:
            return 0
        return sum(1 for outcome in self.records if outcome.ok)

    @property
    def rejected(self) -> int:
        return sum(1 for outcome in self.records if not outcome.ok)


@dataclass
class ImportState:
    """
    Mutable aggregate of one import run.

    Owned by a single pipeline instance and mutated only by its stages, which
    run strictly one after another.
    """
    batch_size: int
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    current_batch: int = 0
    committed_batches: int = 0
    persisted_rows: int = 0
    unpersisted_rows: int = 0
    failed_batches: List[int] = field(default_factory=list)
    rejections: List["RejectedRow"] = field(default_factory=list)
    error: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)


class RejectedRow(BaseModel):
    """Diagnostic detail kept for one rejected input row."""
    row_number: int
    field: str
    reason: str


class ImportStats(BaseModel):
    total: int = 0
    valid: int = 0
    invalid: int = 0
    persisted: int = 0
    unpersisted: int = 0
    processing_time_ms: int = 0


class ImportResult(BaseModel):
    """Outcome surfaced to the caller; stats are always present."""
    success: bool
    error: Optional[str] = None
    stats: ImportStats = Field(default_factory=ImportStats)
    failed_batches: List[int] = Field(default_factory=list)
    rejections: List[RejectedRow] = Field(default_factory=list)
