"""
Answer stream endpoint.

POST /api/v1/chat/stream - Stream a grounded answer as server-sent events
"""
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from docgraph.api.dependencies import get_answer_streamer
from docgraph.api.schemas import ChatRequest
from docgraph.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/stream")
async def chat_stream(request: ChatRequest, streamer=Depends(get_answer_streamer)) -> StreamingResponse:
    logger.info(
        "chat_stream_start",
        query_length=len(request.message),
        document_count=len(request.document_ids),
        session_id=request.session_id,
    )
    return StreamingResponse(
        streamer.stream(request.message, request.document_ids or None, request.session_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
