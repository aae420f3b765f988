"""Tests for the server-side answer stream."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from docgraph.services.generation.answer_streamer import AnswerStreamer, query_terms
from docgraph.services.streaming.decoder import StreamDecoder
from docgraph.services.streaming.events import EventType

from tests.conftest import FakeEmbedder


def _completion(*pieces):
    return iter(
        SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))])
        for piece in pieces
    )


async def _collect(streamer, *args, **kwargs):
    decoder = StreamDecoder()
    events = []
    async for frame in streamer.stream(*args, **kwargs):
        events.extend(decoder.feed(frame))
    events.extend(decoder.finish())
    return events


@pytest.fixture
def vector_repository():
    repository = MagicMock()
    repository.search.return_value = [
        {
            "id": "p1",
            "score": 0.87,
            "payload": {
                "chunk_id": "doc1_chunk_0",
                "document_id": "doc1",
                "file_name": "story.txt",
                "chunk_index": 0,
                "content": "Alice joined Acme Corp in 2020.",
            },
        }
    ]
    return repository


@pytest.fixture
def graph_repository():
    repository = MagicMock()
    repository.search_entities.return_value = (
        [
            {"id": "doc1_entity_alice", "label": "Alice", "type": "PERSON", "properties": {}},
            {"id": "doc1_entity_acme_corp", "label": "Acme Corp", "type": "ORGANIZATION", "properties": {}},
        ],
        [{"source": "doc1_entity_alice", "target": "doc1_entity_acme_corp", "type": "WORKS_FOR", "properties": {}}],
    )
    return repository


@pytest.fixture
def groq_client():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion("Alice ", None, "works at Acme Corp.")
    return client


class TestAnswerStreamer:
    """Frames follow the documented event order and always end with [DONE]."""

    @pytest.mark.asyncio
    async def test_event_order(self, vector_repository, graph_repository, groq_client):
        streamer = AnswerStreamer(
            FakeEmbedder(), vector_repository, graph_repository, client=groq_client, model="test-model"
        )
        events = await _collect(streamer, "Where does Alice work?", ["doc1"], "session-1")

        assert [e.type for e in events] == [
            EventType.THINKING,
            EventType.TOOL_CALL,
            EventType.SOURCES,
            EventType.REASONING_STEP,
            EventType.TOOL_CALL,
            EventType.KNOWLEDGE_GRAPH,
            EventType.REASONING_STEP,
            EventType.CHUNK,
            EventType.CHUNK,
            EventType.METADATA,
            EventType.DONE,
        ]
        sources = events[2].data["sources"]
        assert sources[0]["chunk_id"] == "doc1_chunk_0"
        graph = events[5].data["graph"]
        assert graph["metadata"]["entityCount"] == 2
        assert graph["metadata"]["relationshipCount"] == 1
        assert graph["metadata"]["scope"] == "documents"
        assert "".join(e.data["content"] for e in events if e.type is EventType.CHUNK) == "Alice works at Acme Corp."
        assert events[-2].data["sessionId"] == "session-1"

    @pytest.mark.asyncio
    async def test_prompt_contains_context_and_graph_facts(self, vector_repository, graph_repository, groq_client):
        streamer = AnswerStreamer(
            FakeEmbedder(), vector_repository, graph_repository, client=groq_client, model="test-model"
        )
        await _collect(streamer, "Where does Alice work?")

        kwargs = groq_client.chat.completions.create.call_args.kwargs
        user_prompt = kwargs["messages"][1]["content"]
        assert kwargs["stream"] is True
        assert "Alice joined Acme Corp in 2020." in user_prompt
        assert "Alice WORKS_FOR Acme Corp" in user_prompt
        graph_repository.search_entities.assert_called_once()
        assert graph_repository.search_entities.call_args.args[0] == ["alice", "work"]

    @pytest.mark.asyncio
    async def test_no_graph_matches_skips_graph_event(self, vector_repository, groq_client):
        graph_repository = MagicMock()
        graph_repository.search_entities.return_value = ([], [])
        streamer = AnswerStreamer(
            FakeEmbedder(), vector_repository, graph_repository, client=groq_client, model="test-model"
        )
        events = await _collect(streamer, "Where does Alice work?")
        assert EventType.KNOWLEDGE_GRAPH not in [e.type for e in events]
        assert events[-1].type is EventType.DONE

    @pytest.mark.asyncio
    async def test_failure_yields_error_then_done(self, graph_repository, groq_client):
        vector_repository = MagicMock()
        vector_repository.search.side_effect = RuntimeError("qdrant unreachable")
        streamer = AnswerStreamer(
            FakeEmbedder(), vector_repository, graph_repository, client=groq_client, model="test-model"
        )
        events = await _collect(streamer, "Where does Alice work?")

        assert events[-2].type is EventType.ERROR
        assert "qdrant unreachable" in events[-2].data["message"]
        assert events[-1].type is EventType.DONE

    @pytest.mark.asyncio
    async def test_unconfigured_llm(self, vector_repository):
        streamer = AnswerStreamer(FakeEmbedder(), vector_repository, client=MagicMock(), model="m")
        streamer.client = None
        events = await _collect(streamer, "question")
        assert [e.type for e in events] == [EventType.ERROR, EventType.DONE]


def test_query_terms():
    assert query_terms("What is the role of Alice at Acme-Corp?") == ["role", "alice", "acme-corp"]
    assert query_terms("is it?") == []
