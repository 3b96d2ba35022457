"""
Streaming contact import pipeline.

raw rows -> column resolution (once) -> validation (per row) -> accumulation
-> bulk upsert (per batch, retried and adaptively sized) -> report
"""

from .columns import resolve_columns
from .validation import RecordValidator, RejectionSampler
from .source import CsvRowSource, RawRow
from .accumulator import BatchAccumulator
from .controller import AdaptiveBatchController
from .executor import BulkUpsertExecutor, RepositoryBatchWriter
from .retry import RetryCoordinator, classify_error
from .report import ImportReportAggregator
from .pipeline import ContactImportPipeline

__all__ = [
    "resolve_columns",
    "RecordValidator",
    "RejectionSampler",
    "CsvRowSource",
    "RawRow",
    "BatchAccumulator",
    "AdaptiveBatchController",
    "BulkUpsertExecutor",
    "RepositoryBatchWriter",
    "RetryCoordinator",
    "classify_error",
    "ImportReportAggregator",
    "ContactImportPipeline",
]
