"""
Tests for resource sampling.
"""
import pytest

from booktone.services.resource_monitor import MetricsSnapshot, ResourceMonitor


class TestResourceMonitor:

    def test_current_metrics(self, store):
        monitor = ResourceMonitor(store, cpu_interval=0.0)
        snapshot = monitor.current_metrics()

        assert 0.0 <= snapshot.cpu_usage_percent <= 100.0
        assert snapshot.memory_usage_bytes > 0
        assert snapshot.available_memory_bytes > 0
        assert 0.0 <= snapshot.memory_usage_percent < 100.0

    @pytest.mark.asyncio
    async def test_sample_and_record(self, store):
        monitor = ResourceMonitor(store, cpu_interval=0.0)

        await monitor.sample_and_record("b1", 101)

        metrics = store.get_metrics("b1")
        assert len(metrics) == 1
        assert metrics[0].book_id == 101

    @pytest.mark.asyncio
    async def test_disabled_records_nothing(self, store):
        monitor = ResourceMonitor(store, enabled=False)

        await monitor.sample_and_record("b1", 101)

        assert store.get_metrics("b1") == []

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, store, monkeypatch):
        monitor = ResourceMonitor(store, cpu_interval=0.0)

        def broken():
            raise RuntimeError("no /proc")

        monkeypatch.setattr(monitor, "current_metrics", broken)

        await monitor.sample_and_record("b1", 101)

        assert store.get_metrics("b1") == []

    def test_record_uses_snapshot(self, store, monkeypatch):
        monitor = ResourceMonitor(store)
        monkeypatch.setattr(monitor, "current_metrics", lambda: MetricsSnapshot(
            cpu_usage_percent=42.0,
            memory_usage_bytes=100,
            available_memory_bytes=300,
            memory_usage_percent=25.0,
        ))

        metrics = monitor.record("b1")

        assert metrics.cpu_usage_percent == 42.0
        assert metrics.memory_usage_percent == 25.0
        assert metrics.book_id is None
