"""
Application configuration.

This module loads and validates settings from config.yaml and environment variables.
"""
import yaml
from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional


# Project root (parent of the docgraph package)
PROJECT_DIR = Path(__file__).parent.parent.parent
CONFIG_FILE = PROJECT_DIR / "config.yaml"
ENV_FILE = PROJECT_DIR / ".env"


def load_config_yaml() -> dict:
    """Load configuration from config.yaml file."""
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    return {}


class Settings(BaseSettings):
    """Application settings loaded from config.yaml and environment variables."""

    def __init__(self, **kwargs):
        config_data = load_config_yaml()

        # API Settings
        api_config = config_data.get('api', {})
        kwargs.setdefault('api_title', api_config.get('title', "DocGraph RAG API"))
        kwargs.setdefault('api_version', api_config.get('version', "1.0.0"))
        kwargs.setdefault('api_description', api_config.get('description', "Document ingestion, knowledge graphs and streamed answers"))
        kwargs.setdefault('host', api_config.get('host', "0.0.0.0"))
        kwargs.setdefault('port', api_config.get('port', 8000))
        kwargs.setdefault('cors_origins', api_config.get('cors_origins', ["http://localhost:3000", "http://localhost:5173"]))
        kwargs.setdefault('max_upload_bytes', api_config.get('max_upload_bytes', 10 * 1024 * 1024))

        # Environment / logging
        app_config = config_data.get('app', {})
        kwargs.setdefault('environment', app_config.get('environment', "development"))
        kwargs.setdefault('log_level', app_config.get('log_level', "INFO"))
        kwargs.setdefault('log_json', app_config.get('log_json', True))

        # Ingestion Settings
        ingestion_config = config_data.get('ingestion', {})
        kwargs.setdefault('chunk_size', ingestion_config.get('chunk_size', 1000))
        kwargs.setdefault('chunk_overlap', ingestion_config.get('chunk_overlap', 200))
        kwargs.setdefault('ontology_max_chars', ingestion_config.get('ontology_max_chars', 50000))
        kwargs.setdefault('embed_entities', ingestion_config.get('embed_entities', True))

        batching_config = ingestion_config.get('batching', {})
        kwargs.setdefault('batch_size_small', batching_config.get('small', 10))
        kwargs.setdefault('batch_size_medium', batching_config.get('medium', 5))
        kwargs.setdefault('batch_size_large', batching_config.get('large', 3))
        kwargs.setdefault('batch_medium_threshold', batching_config.get('medium_threshold', 1000))
        kwargs.setdefault('batch_large_threshold', batching_config.get('large_threshold', 5000))
        kwargs.setdefault('batch_delay_seconds', batching_config.get('delay_seconds', 0.1))

        ocr_config = ingestion_config.get('ocr', {})
        kwargs.setdefault('ocr_enabled', ocr_config.get('enabled', True))
        kwargs.setdefault('ocr_languages', ocr_config.get('languages', ["en"]))
        kwargs.setdefault('ocr_dpi', ocr_config.get('dpi', 200))
        kwargs.setdefault('ocr_gpu', ocr_config.get('gpu', False))

        # Qdrant Settings
        qdrant_config = config_data.get('qdrant', {})
        kwargs.setdefault('qdrant_host', qdrant_config.get('host', "localhost"))
        kwargs.setdefault('qdrant_port', qdrant_config.get('port', 6333))
        kwargs.setdefault('qdrant_grpc_port', qdrant_config.get('grpc_port', 6334))
        kwargs.setdefault('qdrant_collection_name', qdrant_config.get('collection', "document_chunks"))
        kwargs.setdefault('qdrant_vector_size', qdrant_config.get('vector_size', 768))
        kwargs.setdefault('qdrant_timeout', qdrant_config.get('timeout', 30))

        # Embedding Settings
        embedding_config = config_data.get('embeddings', {})
        kwargs.setdefault('embedding_model', embedding_config.get('model', "intfloat/e5-base-v2"))
        kwargs.setdefault('embedding_device', embedding_config.get('device', "cpu"))

        # Neo4j Settings
        neo4j_config = config_data.get('neo4j', {})
        kwargs.setdefault('neo4j_enabled', neo4j_config.get('enabled', True))
        kwargs.setdefault('neo4j_uri', neo4j_config.get('uri', "bolt://localhost:7687"))
        kwargs.setdefault('neo4j_user', neo4j_config.get('user', "neo4j"))
        kwargs.setdefault('neo4j_database', neo4j_config.get('database', "neo4j"))
        kwargs.setdefault('neo4j_timeout', neo4j_config.get('timeout', 30))
        kwargs.setdefault('neo4j_max_connection_pool_size', neo4j_config.get('max_connection_pool_size', 50))

        # Supabase (status mirror)
        supabase_config = config_data.get('supabase', {})
        kwargs.setdefault('supabase_status_table', supabase_config.get('status_table', "document_status"))

        # LLM Settings
        llm_config = config_data.get('llm', {})
        kwargs.setdefault('llm_temperature', llm_config.get('temperature', 0.2))
        kwargs.setdefault('llm_max_tokens', llm_config.get('max_tokens', 1024))
        kwargs.setdefault('ontology_temperature', llm_config.get('ontology_temperature', 0.0))

        # Streaming Settings
        streaming_config = config_data.get('streaming', {})
        kwargs.setdefault('stream_max_graph_buffer_chars', streaming_config.get('max_graph_buffer_chars', 8 * 1024 * 1024))
        kwargs.setdefault('stream_timeout_seconds', streaming_config.get('timeout_seconds', 120.0))
        kwargs.setdefault('stream_base_url', streaming_config.get('base_url', "http://localhost:8000"))
        kwargs.setdefault('retrieval_top_k', streaming_config.get('top_k', 8))
        kwargs.setdefault('graph_entity_limit', streaming_config.get('graph_entity_limit', 50))

        super().__init__(**kwargs)

    # API Settings
    api_title: str
    api_version: str
    api_description: str
    host: str
    port: int
    debug: bool = False
    cors_origins: list[str]
    max_upload_bytes: int

    # Environment
    environment: str
    log_level: str
    log_json: bool

    # Ingestion Settings
    chunk_size: int
    chunk_overlap: int
    ontology_max_chars: int
    embed_entities: bool
    batch_size_small: int
    batch_size_medium: int
    batch_size_large: int
    batch_medium_threshold: int
    batch_large_threshold: int
    batch_delay_seconds: float
    ocr_enabled: bool
    ocr_languages: list[str]
    ocr_dpi: int
    ocr_gpu: bool

    # Qdrant (Vector DB) Settings
    qdrant_host: str
    qdrant_port: int
    qdrant_grpc_port: int
    qdrant_collection_name: str
    qdrant_vector_size: int
    qdrant_timeout: int

    # Embedding Settings
    embedding_model: str
    embedding_device: str

    # Neo4j (Knowledge Graph) Settings - password from env
    neo4j_uri: str
    neo4j_user: str
    neo4j_password: str = "neo4j-password"
    neo4j_database: str
    neo4j_timeout: int
    neo4j_max_connection_pool_size: int
    neo4j_enabled: bool

    # Supabase (PostgreSQL) Settings - credentials from env
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_status_table: str

    # Groq Settings - API key and models from env
    groq_api_key: Optional[str] = None
    groq_model: Optional[str] = None
    groq_ontology_model: Optional[str] = None
    llm_temperature: float
    llm_max_tokens: int
    ontology_temperature: float

    # Streaming Settings
    stream_max_graph_buffer_chars: int
    stream_timeout_seconds: float
    stream_base_url: str
    retrieval_top_k: int
    graph_entity_limit: int

    model_config = {
        "env_file": str(ENV_FILE),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


settings = Settings()
