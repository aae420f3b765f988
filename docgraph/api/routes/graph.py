"""
Knowledge graph endpoints.

GET /api/v1/graph - Filtered, normalized graph with styles and statistics
GET /api/v1/graph/path - Shortest path between two entities
GET /api/v1/graph/export - Graph as JSON, CSV or Cypher
"""
import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

from docgraph.api.dependencies import get_graph_repository
from docgraph.api.schemas import ErrorResponse, GraphPathResponse, GraphResponse
from docgraph.services.graph.processor import (
    KnowledgeGraph,
    filter_graph,
    export_graph,
    graph_from_payload,
    graph_statistics,
    graph_to_payload,
    normalize_graph,
    shortest_path,
    styled_nodes,
)
from docgraph.utils.exceptions import PersistenceError
from docgraph.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/graph", tags=["graph"])

EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "cypher": "text/plain",
}


async def _load_graph(graph_repository, document_ids: Optional[List[str]], limit: int) -> KnowledgeGraph:
    try:
        nodes, edges = await asyncio.to_thread(
            graph_repository.get_document_graph, document_ids or None, limit
        )
    except PersistenceError as e:
        logger.error("graph_load_failed", error=e.message, **e.details)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"success": False, "error": e.message, "details": e.details},
        ) from e
    return normalize_graph(graph_from_payload({"nodes": nodes, "edges": edges}))


@router.get("", response_model=GraphResponse, responses={502: {"model": ErrorResponse}})
async def get_graph(
    document_id: Optional[List[str]] = Query(None),
    search: Optional[str] = None,
    types: Optional[List[str]] = Query(None),
    relation_type: Optional[str] = None,
    limit: int = Query(500, ge=1, le=5000),
    graph_repository=Depends(get_graph_repository),
) -> GraphResponse:
    graph = await _load_graph(graph_repository, document_id, limit)
    graph = filter_graph(graph, search_term=search, types=types, relation_type=relation_type)
    payload = graph_to_payload(graph)
    return GraphResponse(
        nodes=styled_nodes(graph.nodes),
        edges=payload["edges"],
        metadata={"scope": "documents" if document_id else "all", **payload["metadata"]},
        statistics=graph_statistics(graph),
    )


@router.get("/path", response_model=GraphPathResponse, responses={502: {"model": ErrorResponse}})
async def get_path(
    source: str,
    target: str,
    document_id: Optional[List[str]] = Query(None),
    graph_repository=Depends(get_graph_repository),
) -> GraphPathResponse:
    graph = await _load_graph(graph_repository, document_id, 5000)
    path = shortest_path(graph, source, target)
    if path is None:
        return GraphPathResponse(found=False)
    payload = graph_to_payload(KnowledgeGraph(nodes=path.nodes, edges=path.edges))
    return GraphPathResponse(
        found=True,
        distance=path.distance,
        nodes=payload["nodes"],
        edges=payload["edges"],
    )


@router.get("/export", responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}})
async def export(
    format: str = "json",
    document_id: Optional[List[str]] = Query(None),
    graph_repository=Depends(get_graph_repository),
) -> PlainTextResponse:
    fmt = format.lower()
    if fmt not in EXPORT_MEDIA_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "success": False,
                "error": f"Unsupported export format: {format}",
                "details": {"supported": sorted(EXPORT_MEDIA_TYPES)},
            },
        )
    graph = await _load_graph(graph_repository, document_id, 5000)
    return PlainTextResponse(
        export_graph(graph, fmt),
        media_type=EXPORT_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="knowledge_graph.{fmt}"'},
    )
