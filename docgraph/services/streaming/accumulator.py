"""
Answer state built from decoded stream events.

Holds what a chat view shows while an answer streams in, and produces the
final message once the stream completes.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from docgraph.services.graph.processor import KnowledgeGraph, graph_from_payload, normalize_graph
from docgraph.services.streaming.events import EventType, StreamEvent
from docgraph.utils.logging import get_logger

logger = get_logger(__name__)

TOOL_STATUS_MESSAGES = {
    "vector_search": "Searching documents",
    "entity_search": "Finding related concepts",
    "relationship_path": "Mapping connections",
    "graph_traversal": "Exploring knowledge graph",
}


def tool_status_message(tool: Optional[str]) -> str:
    if not tool:
        return "Running tool"
    return TOOL_STATUS_MESSAGES.get(tool, f"Running {tool}")


@dataclass
class AnswerMessage:
    """A completed answer."""

    answer: str
    sources: List[Dict[str, Any]] = field(default_factory=list)
    reasoning: List[Any] = field(default_factory=list)
    knowledge_graph: Optional[KnowledgeGraph] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class AnswerAccumulator:
    """
    Folds stream events into answer state.

    ``thinking`` and ``tool-call`` only replace the transient status line;
    ``chunk`` text is appended in arrival order; ``sources`` replaces the
    source list; ``reasoning-step`` appends to the trace.
    """

    def __init__(self):
        self.status_line: Optional[str] = None
        self._answer_parts: List[str] = []
        self.sources: List[Dict[str, Any]] = []
        self.reasoning: List[Any] = []
        self.knowledge_graph: Optional[KnowledgeGraph] = None
        self.metadata: Dict[str, Any] = {}
        self.error: Optional[str] = None
        self.done = False

    @property
    def answer(self) -> str:
        return "".join(self._answer_parts)

    def apply(self, event: StreamEvent) -> None:
        data = event.data
        if event.type is EventType.THINKING:
            self.status_line = data.get("message") or data.get("content") or self.status_line
        elif event.type is EventType.CHUNK:
            content = data.get("content")
            if content:
                self._answer_parts.append(str(content))
        elif event.type is EventType.SOURCES:
            self.sources = list(data.get("sources") or [])
        elif event.type is EventType.REASONING_STEP:
            self.reasoning.append(data.get("step", data))
        elif event.type is EventType.TOOL_CALL:
            tool = data.get("tool")
            if isinstance(tool, dict):
                tool = tool.get("tool") or tool.get("name")
            self.status_line = tool_status_message(tool)
        elif event.type is EventType.KNOWLEDGE_GRAPH:
            if self.knowledge_graph is not None:
                logger.warning("duplicate_knowledge_graph_ignored")
                return
            payload = data.get("graph", data)
            if isinstance(payload, dict):
                self.knowledge_graph = normalize_graph(graph_from_payload(payload))
        elif event.type is EventType.METADATA:
            self.metadata.update(data)
        elif event.type is EventType.ERROR:
            self.error = data.get("message") or "Stream failed"
        elif event.type is EventType.DONE:
            self.done = True
            self.status_line = None

    def finalize(self) -> AnswerMessage:
        return AnswerMessage(
            answer=self.answer,
            sources=list(self.sources),
            reasoning=list(self.reasoning),
            knowledge_graph=self.knowledge_graph,
            metadata=dict(self.metadata),
            error=self.error,
        )
