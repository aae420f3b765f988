"""
FastAPI application initialization.

Creates the application and builds every long-lived service once at startup.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docgraph.api.middleware import CorrelationIDMiddleware
from docgraph.api.routes import api_router
from docgraph.api.routes.health import metrics_router
from docgraph.core.config import settings
from docgraph.utils.logging import configure_logging, get_logger

configure_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    json_output=settings.log_json,
    include_timestamp=True,
)

logger = get_logger(__name__)


def _initialize(name: str, factory):
    """Build one service; a failure is logged and leaves it unavailable."""
    logger.info("service_initialization", service=name, status="starting")
    try:
        service = factory()
    except Exception as e:
        logger.warning(
            "service_initialization",
            service=name,
            status="failed",
            error_type=type(e).__name__,
            error=str(e),
        )
        return None
    logger.info("service_initialization", service=name, status="ready")
    return service


def build_services(app: FastAPI) -> None:
    """Populate ``app.state`` with the ingestion and query services."""
    from docgraph.repositories import GraphRepository, StatusRepository, VectorRepository
    from docgraph.services.embedding import EmbeddingBatchEngine
    from docgraph.services.embedding.text_embedder import TextEmbedder
    from docgraph.services.generation.answer_streamer import AnswerStreamer
    from docgraph.services.ingestion.pipeline import IngestionPipeline
    from docgraph.services.ingestion.status import StatusTracker
    from docgraph.services.ingestion.tasks import DocumentTaskRegistry
    from docgraph.services.ontology.extractor import OntologyExtractor

    status_repository = None
    if settings.supabase_url and settings.supabase_service_role_key:
        status_repository = _initialize("StatusRepository", StatusRepository)
    app.state.status_tracker = StatusTracker(repository=status_repository)
    app.state.task_registry = DocumentTaskRegistry()

    text_embedder = _initialize("TextEmbedder", TextEmbedder)
    app.state.text_embedder = text_embedder

    vector_repository = None
    if text_embedder is not None:
        vector_repository = _initialize(
            "VectorRepository",
            lambda: VectorRepository(vector_size=text_embedder.dimension),
        )
    app.state.vector_repository = vector_repository

    graph_repository = None
    if settings.neo4j_enabled:
        graph_repository = _initialize("GraphRepository", GraphRepository)
    app.state.graph_repository = graph_repository

    ontology_extractor = _initialize("OntologyExtractor", OntologyExtractor)

    pipeline = None
    if text_embedder is not None and vector_repository is not None and graph_repository is not None:
        pipeline = _initialize(
            "IngestionPipeline",
            lambda: IngestionPipeline(
                status_tracker=app.state.status_tracker,
                embedding_engine=EmbeddingBatchEngine(text_embedder, vector_repository),
                ontology_extractor=ontology_extractor,
                graph_repository=graph_repository,
                entity_embedder=text_embedder if settings.embed_entities else None,
            ),
        )
    app.state.ingestion_pipeline = pipeline

    streamer = None
    if text_embedder is not None and vector_repository is not None:
        streamer = _initialize(
            "AnswerStreamer",
            lambda: AnswerStreamer(text_embedder, vector_repository, graph_repository),
        )
    app.state.answer_streamer = streamer


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup builds the services; shutdown cancels in-flight processing and
    closes the Neo4j driver.
    """
    logger.info("application_startup", message="Starting application", environment=settings.environment)
    build_services(app)
    logger.info(
        "application_startup",
        status="ready",
        ingestion=app.state.ingestion_pipeline is not None,
        answers=app.state.answer_streamer is not None,
    )

    yield

    logger.info("application_shutdown", message="Shutting down application")
    await app.state.task_registry.shutdown()
    from docgraph.core.neo4j_database import close_neo4j_driver
    close_neo4j_driver()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(metrics_router)

    @app.get("/")
    async def root():
        return {
            "message": "DocGraph API",
            "version": settings.api_version,
            "environment": settings.environment,
            "docs": "/docs",
        }

    return app


app = create_app()
