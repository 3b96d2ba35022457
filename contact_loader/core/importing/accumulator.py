"""
Batch accumulation with synchronous drain.
"""
from typing import Awaitable, Callable, List

from ..schemas import Contact
from .controller import AdaptiveBatchController

FlushCallback = Callable[[List[Contact]], Awaitable[bool]]


class BatchAccumulator:
    """
    Buffers validated contacts until the controller's threshold is reached,
    then drains them through `flush` and only returns once that batch has
    resolved. Awaiting `accept` is the backpressure point of the pipeline.

    `flush` returns False when the import must stop (fatal batch failure).
    """

    def __init__(self, controller: AdaptiveBatchController, flush: FlushCallback):
        self.controller = controller
        self._flush = flush
        self._buffer: List[Contact] = []

    def __len__(self) -> int:
        return len(self._buffer)

    async def accept(self, record: Contact) -> bool:
        self._buffer.append(record)
        if len(self._buffer) >= self.controller.threshold:
            return await self._drain()
        return True

    async def finish(self) -> bool:
        """Flush the remaining partial batch, if any."""
        if self._buffer:
            return await self._drain()
        return True

    async def _drain(self) -> bool:
        batch, self._buffer = self._buffer, []
        return await self._flush(batch)
