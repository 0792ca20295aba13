"""
Process resource sampling around each processed book.

Sampling is best effort: a failure is logged and never affects the book or
the batch being processed.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import psutil

from booktone.batch.store import JobStore
from booktone.models import ResourceMetrics

logger = logging.getLogger(__name__)


@dataclass
class MetricsSnapshot:
    cpu_usage_percent: float
    memory_usage_bytes: int
    available_memory_bytes: int
    memory_usage_percent: float


class ResourceMonitor:
    def __init__(self, store: JobStore, enabled: bool = True, cpu_interval: float = 0.1):
        self.store = store
        self.enabled = enabled
        self.cpu_interval = cpu_interval
        self._process = psutil.Process()

    def current_metrics(self) -> MetricsSnapshot:
        """
        Sample CPU and memory for this process.

        Blocks for cpu_interval seconds while psutil measures CPU time.
        """
        cpu = min(self._process.cpu_percent(interval=self.cpu_interval), 100.0)
        rss = self._process.memory_info().rss
        available = psutil.virtual_memory().available

        memory_percent = 0.0
        if available > 0:
            memory_percent = rss / (rss + available) * 100

        return MetricsSnapshot(
            cpu_usage_percent=round(cpu, 2),
            memory_usage_bytes=rss,
            available_memory_bytes=available,
            memory_usage_percent=round(memory_percent, 2),
        )

    def record(self, batch_id: str, book_id: Optional[int] = None) -> ResourceMetrics:
        snapshot = self.current_metrics()
        return self.store.add_metrics(ResourceMetrics(
            batch_id=batch_id,
            book_id=book_id,
            cpu_usage_percent=snapshot.cpu_usage_percent,
            memory_usage_bytes=snapshot.memory_usage_bytes,
            available_memory_bytes=snapshot.available_memory_bytes,
            memory_usage_percent=snapshot.memory_usage_percent,
        ))

    async def sample_and_record(self, batch_id: str, book_id: Optional[int] = None) -> None:
        if not self.enabled:
            return
        try:
            metrics = await asyncio.to_thread(self.record, batch_id, book_id)
        except Exception as e:
            logger.error(f"Failed to log resource metrics for batch {batch_id}: {e}")
            return
        logger.debug(
            f"Logged resource metrics for batch {batch_id}, book {book_id}: "
            f"CPU {metrics.cpu_usage_percent}%, Memory {metrics.memory_usage_percent}%"
        )
