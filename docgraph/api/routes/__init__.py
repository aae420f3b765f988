"""API route handlers."""
from fastapi import APIRouter
from docgraph.api.routes import health, documents, chat, graph

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health.router)
api_router.include_router(documents.router)
api_router.include_router(chat.router)
api_router.include_router(graph.router)
