"""Tests for batch planning."""

import pytest

from docgraph.core.config import settings
from docgraph.services.ingestion.batching import iter_batches, plan_batches


class TestPlanBatches:
    """Batch size shrinks and a delay appears as the workload grows."""

    def test_small_workload(self):
        plan = plan_batches(10)
        assert plan.batch_size == settings.batch_size_small
        assert plan.delay_seconds == 0.0

    def test_medium_workload(self):
        plan = plan_batches(settings.batch_medium_threshold + 1)
        assert plan.batch_size == settings.batch_size_medium
        assert plan.delay_seconds == settings.batch_delay_seconds

    def test_large_workload(self):
        plan = plan_batches(settings.batch_large_threshold + 1)
        assert plan.batch_size == settings.batch_size_large
        assert plan.delay_seconds == settings.batch_delay_seconds

    def test_batch_size_never_zero(self, monkeypatch):
        monkeypatch.setattr(settings, "batch_size_small", 0)
        assert plan_batches(3).batch_size == 1


class TestIterBatches:
    def test_slices_in_order(self):
        assert list(iter_batches([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert list(iter_batches([], 3)) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            list(iter_batches([1], 0))
