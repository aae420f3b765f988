"""
Embedding batch engine.

Computes and stores one vector per chunk. Chunks are processed in batches
sized by ``plan_batches``; the chunks of one batch run concurrently and a
pause separates batches for large documents. A chunk that fails is counted
and skipped, the rest of the batch carries on.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from docgraph.services.ingestion.batching import iter_batches, plan_batches
from docgraph.services.ingestion.chunker import Chunk
from docgraph.utils.metrics import chunk_embeddings_total, embedding_batch_duration_seconds

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Awaitable[None]]


@dataclass
class EmbeddingBatchResult:
    """Tally of an embedding run."""

    total: int
    stored: int = 0
    failed: int = 0
    failed_chunk_ids: List[str] = field(default_factory=list)


class EmbeddingBatchEngine:
    """
    Embeds chunks and writes them to the vector index.

    ``embedder`` needs ``embed_text(text) -> list[float]``; ``vector_repository``
    needs ``store_vector(chunk_id, vector, payload)``. Both are blocking and run
    in worker threads.
    """

    def __init__(self, embedder, vector_repository):
        self.embedder = embedder
        self.vector_repository = vector_repository

    async def embed_chunks(
        self,
        chunks: List[Chunk],
        payload_base: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EmbeddingBatchResult:
        """
        Embed and store every chunk.

        Args:
            chunks: Ordered chunks of one document
            payload_base: Fields copied into every vector payload (user_id, file_name, ...)
            on_progress: Awaited with ``(processed, total)`` after each batch

        Returns:
            EmbeddingBatchResult with stored/failed counts
        """
        result = EmbeddingBatchResult(total=len(chunks))
        if not chunks:
            return result

        plan = plan_batches(len(chunks))
        logger.info(
            f"Embedding {len(chunks)} chunks in batches of {plan.batch_size} "
            f"(delay {plan.delay_seconds}s)"
        )

        processed = 0
        for batch_number, batch in enumerate(iter_batches(chunks, plan.batch_size)):
            if batch_number and plan.delay_seconds:
                await asyncio.sleep(plan.delay_seconds)

            batch_start = time.time()
            outcomes = await asyncio.gather(
                *(self._embed_one(chunk, payload_base or {}) for chunk in batch),
                return_exceptions=True,
            )
            embedding_batch_duration_seconds.observe(time.time() - batch_start)

            for chunk, outcome in zip(batch, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    result.failed += 1
                    result.failed_chunk_ids.append(chunk.chunk_id)
                    chunk_embeddings_total.labels(status="failed").inc()
                    logger.warning(f"Skipping chunk {chunk.chunk_id}: {outcome}")
                else:
                    result.stored += 1
                    chunk_embeddings_total.labels(status="stored").inc()

            processed += len(batch)
            if on_progress is not None:
                await on_progress(processed, len(chunks))

        logger.info(
            f"✓ Embedded {result.stored}/{result.total} chunks ({result.failed} failed)"
        )
        return result

    async def _embed_one(self, chunk: Chunk, payload_base: Dict[str, Any]) -> None:
        vector = await asyncio.to_thread(self.embedder.embed_text, chunk.text)
        payload = {
            **payload_base,
            **chunk.metadata,
            "chunk_id": chunk.chunk_id,
            "document_id": chunk.document_id,
            "content": chunk.text,
            "chunk_index": chunk.chunk_index,
            "start_char_index": chunk.start_char_index,
            "end_char_index": chunk.end_char_index,
            "timestamp": datetime.utcnow().isoformat(),
        }
        await asyncio.to_thread(self.vector_repository.store_vector, chunk.chunk_id, vector, payload)
