"""
Per-stage timing for engine frames.

Engines built with ``enable_timing=True`` record upload, render and readback
durations per frame. ``summary()`` reports total, average, worst and count
for each stage in milliseconds.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class StageStats:
    count: int = 0
    total_s: float = 0.0
    worst_s: float = 0.0

    def add(self, seconds: float) -> None:
        self.count += 1
        self.total_s += seconds
        self.worst_s = max(self.worst_s, seconds)


class FrameTimings:
    """Duration statistics keyed by stage name"""

    def __init__(self):
        self.stages: Dict[str, StageStats] = {}

    def record(self, stage: str, seconds: float) -> None:
        self.stages.setdefault(stage, StageStats()).add(seconds)

    @contextmanager
    def measure(self, stage: str):
        """Time the body of the ``with`` block as one sample of ``stage``"""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(stage, time.perf_counter() - start)

    def summary(self) -> Dict[str, Dict[str, float]]:
        return {
            stage: {
                'total_ms': stats.total_s * 1000,
                'avg_ms': stats.total_s * 1000 / stats.count,
                'max_ms': stats.worst_s * 1000,
                'count': stats.count,
            }
            for stage, stats in self.stages.items()
        }

    def log_summary(self, title: str) -> None:
        """Log one INFO line per stage, slowest total first"""
        summary = self.summary()
        if not summary:
            logger.info("%s: no frames timed", title)
            return
        logger.info("%s:", title)
        for stage, stats in sorted(summary.items(), key=lambda item: -item[1]['total_ms']):
            logger.info("  %-24s %6d frames  avg %8.3f ms  max %8.3f ms",
                        stage, stats['count'], stats['avg_ms'], stats['max_ms'])

    def clear(self) -> None:
        self.stages.clear()


def timed(timings: Optional[FrameTimings], stage: str):
    """``timings.measure(stage)``, or a no-op context when timing is off"""
    if timings is None:
        return _untimed()
    return timings.measure(stage)


@contextmanager
def _untimed():
    yield
