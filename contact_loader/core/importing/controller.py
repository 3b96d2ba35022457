"""
Adaptive flush threshold (conservative AIMD).
"""
from ...setup.logging import logger
from ..schemas import ImportState


class AdaptiveBatchController:
    """
    Owns the flush threshold stored on the ImportState.

    Every `growth_interval`-th committed batch grows it by `growth_factor`;
    every transient failure shrinks it by `shrink_factor`. The threshold is
    always clamped to [floor, ceiling].
    """

    def __init__(self, state: ImportState, floor: int = 50, ceiling: int = 500,
                 growth_factor: float = 1.1, growth_interval: int = 20, shrink_factor: float = 0.7):
        if floor > ceiling:
            raise ValueError(f"floor {floor} is above ceiling {ceiling}")
        self.state = state
        self.floor = floor
        self.ceiling = ceiling
        self.growth_factor = growth_factor
        self.growth_interval = growth_interval
        self.shrink_factor = shrink_factor
        self._successes = 0
        self.state.batch_size = self._clamp(state.batch_size)

    @property
    def threshold(self) -> int:
        return self.state.batch_size

    def _clamp(self, size: int) -> int:
        return max(self.floor, min(self.ceiling, size))

    def on_commit(self) -> int:
        self._successes += 1
        current = self.state.batch_size
        if self._successes % self.growth_interval == 0 and current < self.ceiling:
            grown = self._clamp(max(current + 1, int(current * self.growth_factor)))
            self.state.batch_size = grown
            logger.info(f"[Controller] Adjusted batch size to {grown} after {self._successes} commits")
        return self.state.batch_size

    def on_failure(self) -> int:
        current = self.state.batch_size
        if current > self.floor:
            shrunk = self._clamp(int(current * self.shrink_factor))
            self.state.batch_size = shrunk
            logger.info(f"[Controller] Reduced batch size to {shrunk} due to error")
        return self.state.batch_size
