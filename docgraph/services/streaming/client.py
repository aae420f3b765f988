"""
Query stream client and chat session.

``QueryStreamClient`` posts a question to the answer stream endpoint and
yields decoded events. ``ChatSession`` keeps at most one query in flight:
asking again supersedes the previous query, whose partial answer is dropped.
"""
import asyncio
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Set

import httpx

from docgraph.core.config import settings
from docgraph.services.streaming.accumulator import AnswerAccumulator, AnswerMessage
from docgraph.services.streaming.decoder import StreamDecoder
from docgraph.services.streaming.events import EventType, StreamEvent
from docgraph.utils.exceptions import StreamTransportError
from docgraph.utils.logging import get_logger

logger = get_logger(__name__)

STREAM_PATH = "/api/v1/chat/stream"

EventCallback = Callable[[StreamEvent, AnswerAccumulator], Awaitable[None]]


class QueryStreamClient:
    """HTTP client for the answer stream."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_graph_buffer_chars: Optional[int] = None,
    ):
        self.base_url = base_url or settings.stream_base_url
        self.timeout = timeout or settings.stream_timeout_seconds
        self.transport = transport
        self.max_graph_buffer_chars = max_graph_buffer_chars

    async def stream_events(
        self,
        query: str,
        document_ids: Optional[Sequence[str]] = None,
        session_id: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Yield decoded events for one query.

        Transport failures do not raise; they end the stream with a single
        ``error`` event so the consumer always sees a terminal event.
        """
        decoder = StreamDecoder(max_graph_buffer_chars=self.max_graph_buffer_chars)
        body = {"message": query, "document_ids": list(document_ids or []), "session_id": session_id}

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                async with client.stream("POST", STREAM_PATH, json=body) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise StreamTransportError(
                            f"Stream request failed with status {response.status_code}",
                            {"status_code": response.status_code},
                        )
                    async for chunk in response.aiter_bytes():
                        for event in decoder.feed(chunk):
                            yield event
                        if decoder.done:
                            return
            for event in decoder.finish():
                yield event
        except httpx.HTTPError as e:
            logger.warning("stream_transport_failed", error=str(e), error_type=type(e).__name__)
            yield StreamEvent(type=EventType.ERROR, data={"message": f"Connection failed: {e}"})
        except StreamTransportError as e:
            logger.warning("stream_transport_failed", error=e.message, **e.details)
            yield StreamEvent(type=EventType.ERROR, data={"message": e.message, **e.details})


class ChatSession:
    """
    One conversation against the answer stream.

    Only completed answers are appended to ``history``. A query that is
    cancelled or superseded resolves to ``None``.
    """

    def __init__(
        self,
        client: Optional[QueryStreamClient] = None,
        session_id: Optional[str] = None,
        on_event: Optional[EventCallback] = None,
    ):
        self.client = client or QueryStreamClient()
        self.session_id = session_id
        self.on_event = on_event
        self.history: List[AnswerMessage] = []
        self.current: Optional[AnswerAccumulator] = None
        self._active: Optional[asyncio.Task] = None
        self._cancelled: Set[asyncio.Task] = set()

    @property
    def busy(self) -> bool:
        return self._active is not None and not self._active.done()

    async def ask(
        self, query: str, document_ids: Optional[Sequence[str]] = None
    ) -> Optional[AnswerMessage]:
        await self.cancel()
        accumulator = AnswerAccumulator()
        self.current = accumulator
        task = asyncio.create_task(self._run(query, document_ids, accumulator))
        self._active = task
        try:
            return await task
        except asyncio.CancelledError:
            if task in self._cancelled:
                self._cancelled.discard(task)
                return None
            raise
        finally:
            if self._active is task:
                self._active = None

    async def cancel(self) -> None:
        """Stop the query in flight, if any, and discard its partial answer."""
        task = self._active
        if task is None or task.done():
            return
        self._cancelled.add(task)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._active = None
        self.current = None
        logger.info("chat_query_cancelled", session_id=self.session_id)

    async def _run(
        self,
        query: str,
        document_ids: Optional[Sequence[str]],
        accumulator: AnswerAccumulator,
    ) -> AnswerMessage:
        async for event in self.client.stream_events(query, document_ids, self.session_id):
            accumulator.apply(event)
            if event.type is EventType.METADATA and not self.session_id:
                self.session_id = event.data.get("sessionId") or self.session_id
            if self.on_event is not None:
                await self.on_event(event, accumulator)
            if event.type is EventType.DONE:
                break
        message = accumulator.finalize()
        self.history.append(message)
        if self.current is accumulator:
            self.current = None
        return message
