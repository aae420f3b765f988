"""
Batch planning for fan-out work (chunk embeddings, OCR pages).

Larger documents get smaller batches and a pause between batches so that
external services are not flooded.
"""
from dataclasses import dataclass
from typing import Iterator, List, Sequence, TypeVar

from docgraph.core.config import settings

T = TypeVar("T")


@dataclass(frozen=True)
class BatchPlan:
    """Batch size and inter-batch delay for one fan-out job."""

    batch_size: int
    delay_seconds: float


def plan_batches(total_items: int) -> BatchPlan:
    """
    Choose a batch size and inter-batch delay for ``total_items`` units of work.

    Batches shrink and the pause appears as the document grows.
    """
    if total_items > settings.batch_large_threshold:
        batch_size = settings.batch_size_large
    elif total_items > settings.batch_medium_threshold:
        batch_size = settings.batch_size_medium
    else:
        batch_size = settings.batch_size_small

    delay = settings.batch_delay_seconds if total_items > settings.batch_medium_threshold else 0.0
    return BatchPlan(batch_size=max(1, batch_size), delay_seconds=delay)


def iter_batches(items: Sequence[T], batch_size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of ``items`` of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    for start in range(0, len(items), batch_size):
        yield list(items[start:start + batch_size])
