"""
Contact import pipeline.

A reader task pushes raw rows into a bounded asyncio.Queue; the consumer
validates them and feeds the BatchAccumulator. While a batch is being
written (including its retries) the consumer stops draining the queue, the
queue fills up and the reader blocks: memory stays bounded by
queue_size + read_chunk_size + flush threshold regardless of input size.
Rows are parsed in a worker thread so the event loop stays responsive.
"""
import asyncio
import itertools
from typing import IO, Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ...setup.config import ImportConfig
from ...setup.logging import logger
from ..exceptions import MissingColumnsError, SourceReadError, ValidationError
from ..interfaces import BatchWriter
from ..schemas import Contact, ImportResult
from .accumulator import BatchAccumulator
from .columns import resolve_columns
from .controller import AdaptiveBatchController
from .report import ImportReportAggregator
from .retry import RetryCoordinator
from .source import CsvRowSource, RawRow
from .validation import RecordValidator, RejectionSampler

_END_OF_INPUT = object()

StallCallback = Callable[[Dict[str, Any]], None]


def _read_chunk(rows: Iterator[RawRow], size: int) -> Tuple[List[RawRow], Optional[Exception]]:
    """Pull up to `size` rows; rows read before a failure are returned with it."""
    chunk: List[RawRow] = []
    try:
        for row in itertools.islice(rows, size):
            chunk.append(row)
    except Exception as e:
        return chunk, e
    return chunk, None


class ContactImportPipeline:
    """
    Runs one import at a time per call; every call builds its own state,
    controller and retry coordinator, so a pipeline object can be reused.
    """

    def __init__(self, writer: BatchWriter, config: Optional[ImportConfig] = None,
                 on_stall: Optional[StallCallback] = None):
        self.writer = writer
        self.config = config or ImportConfig()
        self.on_stall = on_stall

    async def import_file(self, path: str) -> ImportResult:
        """Import a delimited-text file from disk."""
        try:
            stream = open(path, "r", encoding=self.config.encoding, newline="")
        except OSError as e:
            report = ImportReportAggregator(self.config.initial_batch_size)
            logger.error(f"[Pipeline] Cannot open {path}: {e}")
            report.set_fatal(f"Unable to read input: {e.strerror or e}")
            return report.result()
        with stream:
            return await self.import_stream(stream)

    async def import_stream(self, stream: Union[IO[str], IO[bytes]]) -> ImportResult:
        """Import from an already open text or binary stream."""
        config = self.config
        report = ImportReportAggregator(config.initial_batch_size)

        source = CsvRowSource(stream, delimiter=config.delimiter, encoding=config.encoding)
        try:
            headers = await asyncio.to_thread(source.read_header)
            mapping = resolve_columns(headers)
        except (SourceReadError, MissingColumnsError) as e:
            logger.error(f"[Pipeline] Import aborted before processing rows: {e}")
            report.set_fatal(str(e))
            return report.result()

        logger.info(
            f"[Pipeline] Columns resolved: email={mapping.email!r}, first_name={mapping.first_name!r}, "
            f"last_name={mapping.last_name!r}"
        )

        controller = AdaptiveBatchController(
            report.state,
            floor=config.min_batch_size,
            ceiling=config.max_batch_size,
            growth_factor=config.growth_factor,
            growth_interval=config.growth_interval,
            shrink_factor=config.shrink_factor,
        )
        retry = RetryCoordinator(
            self.writer, controller, report,
            max_retries=config.max_retries,
            backoff_base=config.backoff_base_seconds,
            backoff_cap=config.backoff_cap_seconds,
            backoff_jitter=config.backoff_jitter_seconds,
        )

        async def flush(batch: List[Contact]) -> bool:
            batch_id = report.next_batch_id()
            if batch_id % config.progress_log_interval == 0:
                logger.info(
                    f"[Pipeline] Batch {batch_id}: saving {len(batch)} contacts "
                    f"(total: {report.state.total_rows}, rate: {report.rows_per_second()}/sec)"
                )
            await retry.run(batch_id, batch)
            return report.fatal_error is None

        validator = RecordValidator(mapping, config.denylist_pattern, config.max_field_length)
        sampler = RejectionSampler(config.rejection_detail_cap, config.rejection_log_interval)
        accumulator = BatchAccumulator(controller, flush)

        queue: asyncio.Queue = asyncio.Queue(maxsize=config.queue_size)
        reader = asyncio.create_task(self._produce(source, queue, config.read_chunk_size))
        watchdog = None
        if config.stall_notice_seconds > 0:
            watchdog = asyncio.create_task(self._watch(report, config.stall_notice_seconds))

        try:
            await self._consume(queue, validator, sampler, accumulator, report)
        finally:
            for task in (reader, watchdog):
                if task is not None and not task.done():
                    task.cancel()
            await asyncio.gather(*(t for t in (reader, watchdog) if t is not None), return_exceptions=True)

        result = report.result()
        stats = result.stats
        logger.info(
            f"[Pipeline] Total: {stats.total}, Valid: {stats.valid}, Invalid: {stats.invalid}, "
            f"Persisted: {stats.persisted} ({stats.processing_time_ms} ms)"
        )
        if result.failed_batches:
            logger.warning(f"[Pipeline] {len(result.failed_batches)} batches failed during import")
        return result

    async def _produce(self, rows: Iterable[RawRow], queue: asyncio.Queue, chunk_size: int) -> None:
        iterator = iter(rows)
        while True:
            # Parsing and file reads block, so they run in a worker thread
            chunk, error = await asyncio.to_thread(_read_chunk, iterator, chunk_size)
            for row in chunk:
                await queue.put(row)
            if error is not None:
                if not isinstance(error, SourceReadError):
                    error = SourceReadError(f"Unable to read input: {error}")
                await queue.put(error)
                return
            if len(chunk) < chunk_size:
                break
        await queue.put(_END_OF_INPUT)

    async def _consume(self, queue: asyncio.Queue, validator: RecordValidator,
                       sampler: RejectionSampler, accumulator: BatchAccumulator,
                       report: ImportReportAggregator) -> None:
        while True:
            item = await queue.get()
            if item is _END_OF_INPUT:
                break
            if isinstance(item, SourceReadError):
                logger.error(f"[Pipeline] Input stream error: {item}")
                # Rows read before the failure are still worth persisting
                await accumulator.finish()
                report.set_fatal(str(item))
                return

            try:
                record = validator.validate(item)
            except ValidationError as e:
                report.record_invalid()
                report.keep_rejection(sampler.observe(item, e, report.state))
                continue

            report.record_valid()
            if not await accumulator.accept(record):
                logger.error("[Pipeline] Stopping import after fatal batch failure")
                return

        await accumulator.finish()

    async def _watch(self, report: ImportReportAggregator, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            snapshot = report.snapshot()
            logger.info(
                f"[Pipeline] Import still in progress: {snapshot['total']} rows read, "
                f"batch {snapshot['current_batch']}, {snapshot['memory_rss_mb']} MB RSS"
            )
            if self.on_stall is not None:
                self.on_stall(snapshot)
