"""Tests for answer accumulation from stream events."""

from docgraph.services.streaming.accumulator import AnswerAccumulator, tool_status_message
from docgraph.services.streaming.events import EventType, StreamEvent


def _event(event_type, **data):
    return StreamEvent(type=event_type, data=data)


class TestAnswerAccumulator:
    """Each event kind updates only its own part of the answer."""

    def test_chunks_append_in_order(self):
        acc = AnswerAccumulator()
        for piece in ["Alice ", "works ", "at Acme."]:
            acc.apply(_event(EventType.CHUNK, content=piece))
        assert acc.answer == "Alice works at Acme."

    def test_thinking_and_tool_calls_only_touch_status(self):
        acc = AnswerAccumulator()
        acc.apply(_event(EventType.CHUNK, content="partial"))
        acc.apply(_event(EventType.THINKING, message="Understanding your question"))
        assert acc.status_line == "Understanding your question"
        acc.apply(_event(EventType.TOOL_CALL, tool="entity_search"))
        assert acc.status_line == "Finding related concepts"
        acc.apply(_event(EventType.TOOL_CALL, tool={"name": "custom_lookup"}))
        assert acc.status_line == "Running custom_lookup"
        assert acc.answer == "partial"
        assert acc.reasoning == []

    def test_sources_replace(self):
        acc = AnswerAccumulator()
        acc.apply(_event(EventType.SOURCES, sources=[{"chunk_id": "a"}]))
        acc.apply(_event(EventType.SOURCES, sources=[{"chunk_id": "b"}]))
        assert acc.sources == [{"chunk_id": "b"}]

    def test_reasoning_steps_append(self):
        acc = AnswerAccumulator()
        acc.apply(_event(EventType.REASONING_STEP, step="Found 3 passages"))
        acc.apply(_event(EventType.REASONING_STEP, step="Matched 2 entities"))
        assert acc.reasoning == ["Found 3 passages", "Matched 2 entities"]

    def test_knowledge_graph_normalized_first_wins(self):
        acc = AnswerAccumulator()
        acc.apply(_event(
            EventType.KNOWLEDGE_GRAPH,
            graph={
                "nodes": [{"id": "Alice"}, {"id": "alice", "properties": {"role": "lead"}}, {"id": "Acme"}],
                "edges": [{"source": "Alice", "target": "Acme"}, {"source": "Alice", "target": "Ghost"}],
            },
        ))
        acc.apply(_event(EventType.KNOWLEDGE_GRAPH, graph={"nodes": [{"id": "Other"}], "edges": []}))

        graph = acc.knowledge_graph
        assert len(graph.nodes) == 2
        assert len(graph.edges) == 1
        assert graph.edges[0].source == "alice"

    def test_metadata_merges_and_done_clears_status(self):
        acc = AnswerAccumulator()
        acc.apply(_event(EventType.METADATA, sessionId="s1"))
        acc.apply(_event(EventType.METADATA, model="m"))
        acc.apply(_event(EventType.THINKING, message="working"))
        acc.apply(_event(EventType.DONE))
        assert acc.metadata == {"sessionId": "s1", "model": "m"}
        assert acc.status_line is None
        assert acc.done

    def test_error_recorded(self):
        acc = AnswerAccumulator()
        acc.apply(_event(EventType.ERROR, message="Connection failed"))
        message = acc.finalize()
        assert message.error == "Connection failed"
        assert message.answer == ""

    def test_finalize_copies_state(self):
        acc = AnswerAccumulator()
        acc.apply(_event(EventType.CHUNK, content="a"))
        acc.apply(_event(EventType.SOURCES, sources=[{"chunk_id": "x"}]))
        message = acc.finalize()
        acc.apply(_event(EventType.SOURCES, sources=[]))
        assert message.answer == "a"
        assert message.sources == [{"chunk_id": "x"}]


def test_tool_status_messages():
    assert tool_status_message("vector_search") == "Searching documents"
    assert tool_status_message("graph_traversal") == "Exploring knowledge graph"
    assert tool_status_message(None) == "Running tool"
