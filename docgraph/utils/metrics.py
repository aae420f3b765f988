"""
Prometheus metrics for the DocGraph application.

Metrics are organized by category:
- API metrics (request rate, latency)
- Ingestion metrics (documents, chunks, OCR pages)
- Embedding and ontology metrics (per-item successes and failures)
- Storage metrics (Neo4j and Qdrant operations)
- Streaming metrics (frames decoded, answers streamed)
"""
from prometheus_client import Counter, Histogram, REGISTRY

# ============================================================================
# API Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================================================
# Ingestion Metrics
# ============================================================================

documents_ingested_total = Counter(
    'documents_ingested_total',
    'Total number of documents processed',
    ['file_type', 'status']  # status: 'completed', 'error', 'cancelled'
)

document_ingestion_duration_seconds = Histogram(
    'document_ingestion_duration_seconds',
    'Document ingestion duration in seconds',
    ['file_type'],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0]
)

text_extraction_duration_seconds = Histogram(
    'text_extraction_duration_seconds',
    'Text extraction duration in seconds',
    ['file_type', 'method'],  # method: 'direct', 'ocr', 'text'
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0]
)

ocr_pages_processed_total = Counter(
    'ocr_pages_processed_total',
    'Total number of PDF pages run through OCR',
    ['status']  # 'success', 'error'
)

chunks_created_total = Counter(
    'chunks_created_total',
    'Total number of chunks created',
    ['file_type']
)

# ============================================================================
# Embedding Metrics
# ============================================================================

chunk_embeddings_total = Counter(
    'chunk_embeddings_total',
    'Chunk embeddings computed and stored',
    ['status']  # 'stored', 'failed'
)

embedding_batch_duration_seconds = Histogram(
    'embedding_batch_duration_seconds',
    'Duration of one embedding batch in seconds',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# ============================================================================
# Ontology Metrics
# ============================================================================

ontology_extraction_duration_seconds = Histogram(
    'ontology_extraction_duration_seconds',
    'Ontology extraction (LLM call) duration in seconds',
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0]
)

ontology_items_persisted_total = Counter(
    'ontology_items_persisted_total',
    'Entities and relationships written to the graph store',
    ['kind', 'status']  # kind: 'entity', 'relationship'; status: 'success', 'error'
)

# ============================================================================
# Storage Metrics
# ============================================================================

neo4j_queries_total = Counter(
    'neo4j_queries_total',
    'Total number of Neo4j queries',
    ['operation', 'status']
)

neo4j_query_duration_seconds = Histogram(
    'neo4j_query_duration_seconds',
    'Neo4j query duration in seconds',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

qdrant_operations_total = Counter(
    'qdrant_operations_total',
    'Total number of Qdrant operations',
    ['operation', 'status']
)

# ============================================================================
# Streaming Metrics
# ============================================================================

stream_frames_total = Counter(
    'stream_frames_total',
    'Frames handled by the query stream decoder',
    ['result']  # 'event', 'skipped'
)

answers_streamed_total = Counter(
    'answers_streamed_total',
    'Answers streamed to clients',
    ['status']  # 'success', 'error'
)


def get_all_metrics():
    """Get all registered metrics."""
    return REGISTRY
