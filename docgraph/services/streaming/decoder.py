"""
Query stream decoder.

Rebuilds the ordered event sequence from a byte stream that the network may
split anywhere. Two buffers are kept:

- the line buffer holds the trailing, not yet newline-terminated fragment;
- the graph buffer accumulates a ``knowledge_graph`` payload that the server
  spread over several frames, until it parses as one JSON object.

Small events are parsed once per frame. Only frames carrying (or continuing)
a knowledge graph go through the accumulate-and-retry path.
"""
import codecs
import json
from typing import Any, Dict, List, Optional, Union

from docgraph.core.config import settings
from docgraph.services.streaming.events import (
    DATA_PREFIX,
    DONE_SENTINEL,
    EventType,
    StreamEvent,
    parse_event_type,
)
from docgraph.utils.exceptions import StreamMalformedFrameError
from docgraph.utils.logging import get_logger
from docgraph.utils.metrics import stream_frames_total

logger = get_logger(__name__)

GRAPH_MARKERS = ('"type":"knowledge_graph"', '"type": "knowledge_graph"')


class StreamDecoder:
    """Single-consumer decoder for one query stream."""

    def __init__(self, max_graph_buffer_chars: Optional[int] = None):
        self.max_graph_buffer_chars = max_graph_buffer_chars or settings.stream_max_graph_buffer_chars
        self._text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._line_buffer = ""
        self._graph_buffer = ""
        self.skipped_frames = 0
        self.done = False

    @property
    def graph_pending(self) -> bool:
        """True while a knowledge graph payload is partially reassembled."""
        return bool(self._graph_buffer)

    def feed(self, data: Union[bytes, str]) -> List[StreamEvent]:
        """Consume one network read and return the events it completed."""
        if self.done:
            return []
        if isinstance(data, bytes):
            data = self._text_decoder.decode(data)

        self._line_buffer += data
        lines = self._line_buffer.split("\n")
        self._line_buffer = lines.pop()

        events: List[StreamEvent] = []
        for line in lines:
            if self.done:
                break
            events.extend(self._process_line(line))
        return events

    def finish(self) -> List[StreamEvent]:
        """
        Flush at end of stream.

        Processes a final unterminated line and makes one last attempt at a
        pending knowledge graph; whatever still does not parse is dropped.
        """
        events: List[StreamEvent] = []
        if not self.done:
            self._line_buffer += self._text_decoder.decode(b"", final=True)
            if self._line_buffer:
                events.extend(self._process_line(self._line_buffer))
        self._line_buffer = ""
        events.extend(self._flush_graph())
        return events

    def _process_line(self, line: str) -> List[StreamEvent]:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            # blank separators, SSE comments and other fields
            return []
        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]

        if payload.strip() == DONE_SENTINEL:
            events = self._flush_graph()
            self.done = True
            events.append(StreamEvent(type=EventType.DONE))
            return events

        try:
            if self._graph_buffer and not any(marker in payload for marker in GRAPH_MARKERS):
                standalone = self._standalone_event(payload)
                if standalone is not None:
                    # the pending graph was truncated; keep the rest of the answer
                    logger.debug("stream_graph_abandoned", buffered_chars=len(self._graph_buffer))
                    self._graph_buffer = ""
                    self._count_skipped()
                    return self._emit(standalone)
            if self._graph_buffer or any(marker in payload for marker in GRAPH_MARKERS):
                return self._accumulate_graph(payload)
            return self._emit(self._parse(payload))
        except StreamMalformedFrameError as e:
            self._count_skipped()
            logger.debug("stream_frame_skipped", reason=e.message, **e.details)
            return []

    def _accumulate_graph(self, payload: str) -> List[StreamEvent]:
        if self._graph_buffer and payload.lstrip().startswith("{") and any(
            marker in payload for marker in GRAPH_MARKERS
        ):
            # a new graph started before the previous one completed
            logger.debug("stream_graph_superseded", buffered_chars=len(self._graph_buffer))
            self._graph_buffer = ""
            self._count_skipped()

        self._graph_buffer += payload
        if len(self._graph_buffer) > self.max_graph_buffer_chars:
            buffered = len(self._graph_buffer)
            self._graph_buffer = ""
            raise StreamMalformedFrameError(
                "Knowledge graph payload exceeds buffer limit",
                {"buffered_chars": buffered, "limit": self.max_graph_buffer_chars},
            )
        return self._try_graph()

    def _try_graph(self) -> List[StreamEvent]:
        try:
            obj = json.loads(self._graph_buffer)
        except ValueError:
            return []  # still incomplete
        self._graph_buffer = ""
        if not isinstance(obj, dict):
            raise StreamMalformedFrameError("Reassembled payload is not an object", {})
        return self._emit(obj)

    def _flush_graph(self) -> List[StreamEvent]:
        if not self._graph_buffer:
            return []
        try:
            events = self._try_graph()
        except StreamMalformedFrameError:
            self._count_skipped()
            events = []
        if self._graph_buffer:
            logger.debug("stream_graph_incomplete", buffered_chars=len(self._graph_buffer))
            self._graph_buffer = ""
            self._count_skipped()
        return events

    def _count_skipped(self) -> None:
        self.skipped_frames += 1
        stream_frames_total.labels(result="skipped").inc()

    @staticmethod
    def _standalone_event(payload: str) -> Optional[Dict[str, Any]]:
        """The frame as an object if it is a complete event other than a knowledge graph."""
        try:
            obj = json.loads(payload)
        except ValueError:
            return None
        if not isinstance(obj, dict):
            return None
        event_type = parse_event_type(obj.get("type"))
        if event_type is None or event_type is EventType.KNOWLEDGE_GRAPH:
            return None
        return obj

    @staticmethod
    def _parse(payload: str) -> Dict[str, Any]:
        try:
            obj = json.loads(payload)
        except ValueError as e:
            raise StreamMalformedFrameError(
                f"Frame is not valid JSON: {e}", {"preview": payload[:80]}
            ) from e
        if not isinstance(obj, dict):
            raise StreamMalformedFrameError("Frame payload is not an object", {"preview": payload[:80]})
        return obj

    def _emit(self, obj: Dict[str, Any]) -> List[StreamEvent]:
        event_type = parse_event_type(obj.get("type"))
        if event_type is None:
            raise StreamMalformedFrameError("Unknown event type", {"type": str(obj.get("type"))})
        data = {key: value for key, value in obj.items() if key != "type"}
        if event_type is EventType.DONE:
            self.done = True
        stream_frames_total.labels(result="event").inc()
        return [StreamEvent(type=event_type, data=data)]
