"""
Document ingestion pipeline.

Orchestrates the complete ingestion flow for one document:
Raw bytes → Extraction → Chunking → Embeddings → Ontology → Graph store

Progress is published on the document status record as the stages advance.
A stage-level failure is written to the record before it propagates.
"""

import asyncio
import logging
import time
from typing import Optional

from docgraph.services.embedding.batch_engine import EmbeddingBatchEngine
from docgraph.services.ingestion.chunker import TextChunker, get_chunk_statistics
from docgraph.services.ingestion.extractor import TextExtractor
from docgraph.services.ingestion.status import DocumentRecord, ProcessingStage, StatusTracker
from docgraph.services.ontology.persistence import persist_ontology
from docgraph.services.ontology.resolver import resolve_ontology
from docgraph.utils.exceptions import BaseAppException, EmbeddingServiceError
from docgraph.utils.logging import set_document_context
from docgraph.utils.metrics import (
    chunks_created_total,
    document_ingestion_duration_seconds,
    documents_ingested_total,
)

logger = logging.getLogger(__name__)

# Progress marks (percent) at stage boundaries
EMBEDDING_START = 15
ONTOLOGY_START = 60
ONTOLOGY_ANALYZING = 65
ENTITIES_START = 70
RELATIONSHIPS_START = 85
RELATIONSHIPS_END = 95


class IngestionPipelineError(BaseAppException):
    """Raised when pipeline execution fails."""
    pass


class IngestionPipeline:
    """
    Complete document ingestion pipeline.

    Orchestrates:
    1. Extract normalized text (direct, OCR fallback for image-only PDFs)
    2. Chunk text into overlapping windows
    3. Embed chunks and store them in the vector index
    4. Extract, resolve and persist the document ontology
    """

    def __init__(
        self,
        status_tracker: StatusTracker,
        embedding_engine: EmbeddingBatchEngine,
        ontology_extractor,
        graph_repository,
        extractor: Optional[TextExtractor] = None,
        chunker: Optional[TextChunker] = None,
        entity_embedder=None,
    ):
        self.status_tracker = status_tracker
        self.embedding_engine = embedding_engine
        self.ontology_extractor = ontology_extractor
        self.graph_repository = graph_repository
        self.extractor = extractor or TextExtractor()
        self.chunker = chunker or TextChunker()
        self.entity_embedder = entity_embedder

    async def process_document(
        self,
        document_id: str,
        file_bytes: bytes,
        file_name: str,
        mime_type: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> DocumentRecord:
        """
        Run every stage for one document.

        Returns:
            The final (completed) status record

        Raises:
            IngestionPipelineError: If any stage fails; the record is already marked failed
            asyncio.CancelledError: If the run is cancelled; the record is already marked failed
        """
        set_document_context(document_id)
        start_time = time.time()
        file_type = "unknown"
        tracker = self.status_tracker

        current = tracker.get(document_id)
        if current is not None and current.is_terminal:
            # resubmitted after an earlier run finished or was superseded
            tracker.restart(document_id)

        try:
            # Step 1: Extract and chunk
            logger.info(f"Step 1: Extracting text from: {file_name}")
            tracker.report_progress(document_id, ProcessingStage.PARSING, 0, "Extracting text")
            file_type = self.extractor.file_type_for(file_name)
            extracted = await asyncio.to_thread(
                self.extractor.extract_from_bytes, file_bytes, file_name, mime_type
            )
            logger.info(
                f"✓ Extracted {len(extracted.text)} characters "
                f"({extracted.extraction_method}, {extracted.page_count or 'n/a'} pages)"
            )
            tracker.report_progress(
                document_id, ProcessingStage.PARSING, 5,
                f"Extracted {extracted.word_count} words",
            )

            chunks = self.chunker.chunk_text(
                extracted.text, document_id, metadata={"file_type": extracted.file_type}
            )
            stats = get_chunk_statistics(chunks)
            chunks_created_total.labels(file_type=file_type).inc(len(chunks))
            logger.info(
                f"✓ Created {stats['total_chunks']} chunks "
                f"(avg length {stats['avg_chunk_length']:.0f} chars)"
            )
            tracker.report_progress(
                document_id, ProcessingStage.PARSING, 10,
                f"Created {len(chunks)} chunks", total_chunks=len(chunks),
            )

            # Step 2: Embeddings
            logger.info(f"Step 2: Generating embeddings for {len(chunks)} chunks")
            tracker.report_progress(
                document_id, ProcessingStage.EMBEDDING, EMBEDDING_START, "Generating embeddings"
            )

            async def on_embedding_progress(processed: int, total: int) -> None:
                span = ONTOLOGY_START - EMBEDDING_START
                tracker.report_progress(
                    document_id, ProcessingStage.EMBEDDING,
                    EMBEDDING_START + span * processed / total,
                    f"Embedded {processed}/{total} chunks",
                    processed_chunks=processed,
                )

            embed_result = await self.embedding_engine.embed_chunks(
                chunks,
                payload_base={"user_id": owner_id, "file_name": file_name},
                on_progress=on_embedding_progress,
            )
            if chunks and embed_result.stored == 0:
                raise EmbeddingServiceError(
                    "No chunk could be embedded",
                    {"total_chunks": len(chunks), "failed": embed_result.failed},
                )
            tracker.report_progress(
                document_id, ProcessingStage.EMBEDDING, ONTOLOGY_START,
                f"Embedded {embed_result.stored} chunks",
                processed_chunks=embed_result.total,
                failed_chunks=embed_result.failed,
            )

            # Step 3: Ontology
            logger.info("Step 3: Extracting knowledge graph")
            tracker.report_progress(
                document_id, ProcessingStage.ONTOLOGY, ONTOLOGY_START, "Extracting knowledge graph"
            )
            tracker.report_progress(
                document_id, ProcessingStage.ONTOLOGY, ONTOLOGY_ANALYZING, "Analyzing content with AI"
            )
            raw_ontology = await asyncio.to_thread(self.ontology_extractor.extract, extracted.text)
            ontology = resolve_ontology(raw_ontology, document_id)
            logger.info(
                f"✓ Resolved {len(ontology.entities)} entities and "
                f"{len(ontology.relationships)} relationships"
            )
            tracker.report_progress(
                document_id, ProcessingStage.ONTOLOGY, ENTITIES_START,
                f"Found {len(ontology.entities)} entities and "
                f"{len(ontology.relationships)} relationships",
            )

            await asyncio.to_thread(
                self.graph_repository.create_document_node, document_id, owner_id, file_name
            )

            async def on_persist_progress(kind: str, done: int, total: int) -> None:
                if kind == "entities":
                    start, span = ENTITIES_START, RELATIONSHIPS_START - ENTITIES_START
                else:
                    start, span = RELATIONSHIPS_START, RELATIONSHIPS_END - RELATIONSHIPS_START
                tracker.report_progress(
                    document_id, ProcessingStage.ONTOLOGY,
                    start + span * done / total,
                    f"Saving {kind} ({done}/{total})",
                )

            persisted = await persist_ontology(
                self.graph_repository,
                document_id,
                ontology,
                embedder=self.entity_embedder,
                on_progress=on_persist_progress,
            )

            # Step 4: Done
            record = tracker.mark_completed(
                document_id,
                message=(
                    f"Processed {len(chunks)} chunks, {persisted.entities.succeeded} entities, "
                    f"{persisted.relationships.succeeded} relationships"
                ),
                entities_created=persisted.entities.succeeded,
                relationships_created=persisted.relationships.succeeded,
            )
            duration = time.time() - start_time
            documents_ingested_total.labels(file_type=file_type, status="completed").inc()
            document_ingestion_duration_seconds.labels(file_type=file_type).observe(duration)
            logger.info(f"✓ Document {document_id} processed in {duration:.2f}s")
            return record

        except asyncio.CancelledError:
            tracker.mark_failed(document_id, "Processing cancelled")
            documents_ingested_total.labels(file_type=file_type, status="cancelled").inc()
            logger.warning(f"Processing of {document_id} was cancelled")
            raise

        except Exception as e:
            message = e.message if isinstance(e, BaseAppException) else str(e)
            current = tracker.get(document_id)
            stage = current.stage.value if current else "unknown"
            tracker.mark_failed(document_id, f"Failed during {stage}: {message}")
            documents_ingested_total.labels(file_type=file_type, status="error").inc()
            logger.error(f"Pipeline failed for {document_id} during {stage}: {message}", exc_info=True)
            raise IngestionPipelineError(
                f"Failed to process {file_name}: {message}",
                {"document_id": document_id, "stage": stage, "error_type": type(e).__name__},
            ) from e
