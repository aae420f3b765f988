"""Embedding generation services."""

from docgraph.services.embedding.batch_engine import EmbeddingBatchEngine, EmbeddingBatchResult

__all__ = ["EmbeddingBatchEngine", "EmbeddingBatchResult"]
