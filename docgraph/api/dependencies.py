"""
FastAPI dependencies.

Services are built once in the application lifespan and kept on
``app.state``; these helpers fetch them for route handlers.
"""
from typing import Any

from fastapi import HTTPException, Request, status


def _service(request: Request, name: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "success": False,
                "error": f"Service unavailable: {name}",
                "details": {"service": name},
            },
        )
    return service


def get_status_tracker(request: Request):
    return _service(request, "status_tracker")


def get_task_registry(request: Request):
    return _service(request, "task_registry")


def get_ingestion_pipeline(request: Request):
    return _service(request, "ingestion_pipeline")


def get_answer_streamer(request: Request):
    return _service(request, "answer_streamer")


def get_graph_repository(request: Request):
    return _service(request, "graph_repository")
