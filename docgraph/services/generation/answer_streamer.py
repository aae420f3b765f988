"""
Answer streaming service.

Produces the server side of the query stream: retrieves context from the
vector index and the knowledge graph, then streams a Groq completion as
``chunk`` events, framed as server-sent events.
"""

import asyncio
import re
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from groq import Groq

from docgraph.core.config import settings
from docgraph.services.graph.processor import graph_from_payload, graph_to_payload, normalize_graph
from docgraph.services.streaming.events import EventType, StreamEvent, encode_frame, frame
from docgraph.utils.exceptions import BaseAppException
from docgraph.utils.logging import get_logger
from docgraph.utils.metrics import answers_streamed_total

logger = get_logger(__name__)

STOPWORDS = {
    "a", "an", "and", "are", "about", "does", "for", "from", "how", "in", "is", "of",
    "on", "or", "the", "to", "was", "what", "when", "where", "which", "who", "why", "with",
}


class AnswerStreamerError(BaseAppException):
    """Raised when answer streaming cannot start."""
    pass


def query_terms(query: str, max_terms: int = 8) -> List[str]:
    """Distinct lowercase words of the query worth matching against entity names."""
    terms: List[str] = []
    for word in re.findall(r"[\w][\w\-]*", query.lower()):
        if len(word) < 3 or word in STOPWORDS or word in terms:
            continue
        terms.append(word)
        if len(terms) == max_terms:
            break
    return terms


class AnswerStreamer:
    """
    Streams grounded answers.

    Event order: thinking, tool-call (vector_search), sources, reasoning-step,
    tool-call (entity_search), knowledge_graph, chunk..., metadata, [DONE].
    """

    SYSTEM_PROMPT = """You are a helpful assistant that answers questions based only on the provided context.

Instructions:
- Answer based ONLY on the provided context and knowledge graph facts
- Format your answer in Markdown
- Cite sources using [Document: filename, Chunk: N] format
- If information is not in the context, say "I don't have that information"
- Be concise and accurate"""

    def __init__(
        self,
        embedder,
        vector_repository,
        graph_repository=None,
        client: Optional[Groq] = None,
        model: Optional[str] = None,
        top_k: Optional[int] = None,
    ):
        self.embedder = embedder
        self.vector_repository = vector_repository
        self.graph_repository = graph_repository
        self.model = model or settings.groq_model
        self.top_k = top_k or settings.retrieval_top_k
        if client is not None:
            self.client = client
        elif settings.groq_api_key:
            self.client = Groq(api_key=settings.groq_api_key)
        else:
            self.client = None
            logger.warning(
                "answer_streamer_config_missing",
                config_key="GROQ_API_KEY",
                message="Answer streaming will fail until GROQ_API_KEY is set.",
            )

    async def stream(
        self,
        query: str,
        document_ids: Optional[List[str]] = None,
        session_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Yield encoded frames for one question. Always ends with ``[DONE]``."""
        session_id = session_id or str(uuid.uuid4())
        try:
            if self.client is None or not self.model:
                raise AnswerStreamerError(
                    "Answer generation is not configured (GROQ_API_KEY / GROQ_MODEL)", {}
                )

            yield frame(EventType.THINKING, message="Understanding your question")

            yield frame(EventType.TOOL_CALL, tool="vector_search", query=query)
            query_vector = await asyncio.to_thread(self.embedder.embed_query, query)
            hits = await asyncio.to_thread(
                self.vector_repository.search, query_vector, self.top_k, document_ids
            )
            sources = [self._source_from_hit(hit) for hit in hits]
            yield frame(EventType.SOURCES, sources=sources)
            yield frame(
                EventType.REASONING_STEP,
                step=f"Found {len(sources)} relevant passages",
            )

            graph_payload = None
            terms = query_terms(query)
            if self.graph_repository is not None and terms:
                yield frame(EventType.TOOL_CALL, tool="entity_search", terms=terms)
                nodes, edges = await asyncio.to_thread(
                    self.graph_repository.search_entities,
                    terms, document_ids, settings.graph_entity_limit,
                )
                if nodes:
                    graph = normalize_graph(graph_from_payload({"nodes": nodes, "edges": edges}))
                    graph_payload = graph_to_payload(graph)
                    graph_payload["metadata"] = {
                        "entityCount": len(graph.nodes),
                        "relationshipCount": len(graph.edges),
                        "createdAt": datetime.now(timezone.utc).isoformat(),
                        "scope": "documents" if document_ids else "all",
                    }
                    yield frame(EventType.KNOWLEDGE_GRAPH, graph=graph_payload)
                    yield frame(
                        EventType.REASONING_STEP,
                        step=(
                            f"Matched {len(graph.nodes)} entities and "
                            f"{len(graph.edges)} relationships"
                        ),
                    )

            messages = self._build_messages(query, sources, graph_payload)
            stream = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=self.model,
                messages=messages,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
                stream=True,
            )
            iterator = iter(stream)
            while True:
                piece = await asyncio.to_thread(next, iterator, None)
                if piece is None:
                    break
                if not piece.choices:
                    continue
                content = piece.choices[0].delta.content
                if content:
                    yield frame(EventType.CHUNK, content=content)

            yield frame(EventType.METADATA, sessionId=session_id, model=self.model)
            answers_streamed_total.labels(status="completed").inc()

        except asyncio.CancelledError:
            answers_streamed_total.labels(status="cancelled").inc()
            logger.info("answer_stream_cancelled", session_id=session_id)
            raise
        except Exception as e:
            message = e.message if isinstance(e, BaseAppException) else str(e)
            answers_streamed_total.labels(status="error").inc()
            logger.error("answer_stream_failed", error=message, error_type=type(e).__name__)
            yield frame(EventType.ERROR, message=message)

        yield encode_frame(StreamEvent(type=EventType.DONE))

    @staticmethod
    def _source_from_hit(hit: Dict[str, Any]) -> Dict[str, Any]:
        payload = hit.get("payload") or {}
        return {
            "chunk_id": payload.get("chunk_id") or hit.get("id"),
            "document_id": payload.get("document_id"),
            "file_name": payload.get("file_name"),
            "chunk_index": payload.get("chunk_index"),
            "score": hit.get("score"),
            "content": payload.get("content", ""),
        }

    def _build_messages(
        self,
        query: str,
        sources: List[Dict[str, Any]],
        graph_payload: Optional[Dict[str, Any]],
    ) -> List[Dict[str, str]]:
        context_parts = []
        for source in sources:
            context_parts.append(
                f"[Document: {source.get('file_name') or source.get('document_id')}, "
                f"Chunk: {source.get('chunk_index')}]\n{source.get('content', '')}"
            )
        if graph_payload:
            labels = {node["id"]: node["label"] for node in graph_payload["nodes"]}
            facts = [
                f"{labels.get(edge['source'], edge['source'])} {edge['type']} "
                f"{labels.get(edge['target'], edge['target'])}"
                for edge in graph_payload["edges"]
            ]
            if facts:
                context_parts.append("Knowledge graph facts:\n" + "\n".join(facts))

        context = "\n\n".join(context_parts) or "No relevant context was found."
        return [
            {"role": "system", "content": self.SYSTEM_PROMPT},
            {"role": "user", "content": f"Context:\n{context}\n\nQuestion: {query}"},
        ]
