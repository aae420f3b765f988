"""Tests for the query stream decoder."""

import json

import pytest

from docgraph.services.streaming.decoder import StreamDecoder
from docgraph.services.streaming.events import EventType, StreamEvent, encode_frame

GRAPH = {
    "nodes": [
        {"id": "Alice", "label": "Alice", "type": "PERSON"},
        {"id": "Acme Corp", "label": "Acme Corp — Zürich", "type": "ORGANIZATION"},
    ],
    "edges": [{"source": "Alice", "target": "Acme Corp", "type": "WORKS_FOR"}],
}


def _compact(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def _graph_frames(parts: int = 3) -> str:
    """A knowledge graph payload spread over several data lines."""
    payload = _compact({"type": "knowledge_graph", "graph": GRAPH})
    size = len(payload) // parts + 1
    pieces = [payload[i:i + size] for i in range(0, len(payload), size)]
    return "".join(f"data: {piece}\n\n" for piece in pieces)


def _stream() -> bytes:
    text = (
        encode_frame(StreamEvent(EventType.THINKING, {"message": "Understanding your question"}))
        + encode_frame(StreamEvent(EventType.SOURCES, {"sources": [{"chunk_id": "d_chunk_0"}]}))
        + _graph_frames()
        + encode_frame(StreamEvent(EventType.CHUNK, {"content": "Alice works at Acme — "}))
        + encode_frame(StreamEvent(EventType.CHUNK, {"content": "日本語 ✓ 🚀"}))
        + encode_frame(StreamEvent(EventType.METADATA, {"sessionId": "s1"}))
        + encode_frame(StreamEvent(EventType.DONE))
    )
    return text.encode("utf-8")


def _decode(*pieces) -> list:
    decoder = StreamDecoder()
    events = []
    for piece in pieces:
        events.extend(decoder.feed(piece))
    events.extend(decoder.finish())
    return [event.to_dict() for event in events]


class TestStreamDecoder:
    """Event sequence is independent of how the bytes are split."""

    def test_unsplit_stream(self):
        events = _decode(_stream())
        assert [e["type"] for e in events] == [
            "thinking", "sources", "knowledge_graph", "chunk", "chunk", "metadata", "done",
        ]
        assert events[2]["graph"] == GRAPH
        assert events[4]["content"] == "日本語 ✓ 🚀"

    def test_every_two_way_split_matches(self):
        data = _stream()
        expected = _decode(data)
        for index in range(1, len(data)):
            assert _decode(data[:index], data[index:]) == expected, f"split at byte {index}"

    def test_byte_at_a_time(self):
        data = _stream()
        assert _decode(*[data[i:i + 1] for i in range(len(data))]) == _decode(data)

    def test_graph_pending_between_frames(self):
        decoder = StreamDecoder()
        lines = _graph_frames(parts=2).split("\n\n")
        assert decoder.feed(lines[0] + "\n\n") == []
        assert decoder.graph_pending
        events = decoder.feed(lines[1] + "\n\n")
        assert [e.type for e in events] == [EventType.KNOWLEDGE_GRAPH]
        assert not decoder.graph_pending

    def test_malformed_frame_skipped(self):
        decoder = StreamDecoder()
        events = decoder.feed('data: {"type":"chunk","content":\n\ndata: {"type":"chunk","content":"ok"}\n\n')
        assert [e.data["content"] for e in events] == ["ok"]
        assert decoder.skipped_frames == 1

    def test_unknown_type_and_non_object_skipped(self):
        decoder = StreamDecoder()
        events = decoder.feed('data: {"type":"mystery"}\n\ndata: [1,2]\n\ndata: {"type":"chunk","content":"x"}\n\n')
        assert [e.type for e in events] == [EventType.CHUNK]
        assert decoder.skipped_frames == 2

    def test_legacy_type_aliases(self):
        events = _decode(b'data: {"type":"reasoning","step":"s"}\n\ndata: {"type":"tool_call","tool":"vector_search"}\n\n')
        assert [e["type"] for e in events] == ["reasoning-step", "tool-call"]

    def test_non_data_lines_ignored(self):
        events = _decode(b': keep-alive\n\nevent: message\nid: 7\ndata: {"type":"chunk","content":"a"}\n\n')
        assert events == [{"type": "chunk", "content": "a"}]

    def test_crlf_and_no_space_after_prefix(self):
        events = _decode(b'data:{"type":"chunk","content":"a"}\r\n\r\ndata: [DONE]\r\n\r\n')
        assert [e["type"] for e in events] == ["chunk", "done"]

    def test_done_stops_decoding(self):
        decoder = StreamDecoder()
        events = decoder.feed('data: [DONE]\n\ndata: {"type":"chunk","content":"late"}\n\n')
        assert [e.type for e in events] == [EventType.DONE]
        assert decoder.done
        assert decoder.feed('data: {"type":"chunk","content":"later"}\n\n') == []

    def test_done_event_object_stops_decoding(self):
        events = _decode(b'data: {"type":"done"}\n\ndata: {"type":"chunk","content":"late"}\n\n')
        assert [e["type"] for e in events] == ["done"]

    def test_unterminated_final_line_flushed(self):
        assert _decode(b'data: {"type":"chunk","content":"tail"}') == [{"type": "chunk", "content": "tail"}]

    def test_incomplete_graph_dropped_at_end(self):
        decoder = StreamDecoder()
        decoder.feed('data: {"type":"knowledge_graph","graph":{"nodes":[\n\n')
        assert decoder.finish() == []
        assert decoder.skipped_frames == 1
        assert not decoder.graph_pending

    def test_graph_buffer_limit(self):
        decoder = StreamDecoder(max_graph_buffer_chars=64)
        events = decoder.feed(
            'data: {"type":"knowledge_graph","graph":{"nodes":[' + '{"id":"n"},' * 20 + "\n\n"
            + 'data: {"type":"chunk","content":"after"}\n\n'
        )
        assert decoder.skipped_frames >= 1
        assert not decoder.graph_pending
        assert [e.type for e in events] == [EventType.CHUNK]

    def test_new_graph_supersedes_unfinished_one(self):
        decoder = StreamDecoder()
        complete = _compact({"type": "knowledge_graph", "graph": GRAPH})
        events = decoder.feed(
            'data: {"type":"knowledge_graph","graph":{"nodes":[\n\n'
            + f"data: {complete}\n\n"
        )
        assert [e.type for e in events] == [EventType.KNOWLEDGE_GRAPH]
        assert events[0].data["graph"] == GRAPH
        assert decoder.skipped_frames == 1

    def test_truncated_graph_does_not_swallow_answer(self):
        stream = (
            'data: {"type":"knowledge_graph","graph":{"nodes":[{"id":"a"}\n\n'
            + encode_frame(StreamEvent(EventType.CHUNK, {"content": "Alice "}))
            + encode_frame(StreamEvent(EventType.CHUNK, {"content": "works at Acme"}))
            + encode_frame(StreamEvent(EventType.METADATA, {"sessionId": "s1"}))
            + encode_frame(StreamEvent(EventType.DONE))
        ).encode("utf-8")

        decoder = StreamDecoder()
        events = decoder.feed(stream) + decoder.finish()

        assert [e.type for e in events] == [
            EventType.CHUNK, EventType.CHUNK, EventType.METADATA, EventType.DONE,
        ]
        assert "".join(e.data["content"] for e in events[:2]) == "Alice works at Acme"
        assert decoder.skipped_frames == 1
        assert not decoder.graph_pending

    def test_truncated_graph_followed_by_done_object(self):
        events = _decode(
            b'data: {"type":"knowledge_graph","graph":{"nodes":[\n\n'
            b'data: {"type":"done"}\n\n'
            b'data: {"type":"chunk","content":"late"}\n\n'
        )
        assert [e["type"] for e in events] == ["done"]

    def test_truncated_graph_split_at_every_byte(self):
        stream = (
            'data: {"type":"knowledge_graph","graph":{"nodes":[{"id":"a"}\n\n'
            + encode_frame(StreamEvent(EventType.CHUNK, {"content": "kept"}))
            + encode_frame(StreamEvent(EventType.DONE))
        ).encode("utf-8")
        expected = _decode(stream)
        assert [e["type"] for e in expected] == ["chunk", "done"]
        for index in range(1, len(stream)):
            assert _decode(stream[:index], stream[index:]) == expected, f"split at byte {index}"

    def test_graph_split_before_done(self):
        payload = _compact({"type": "knowledge_graph", "graph": GRAPH})
        events = _decode(f"data: {payload[:40]}\n\ndata: {payload[40:]}\n\ndata: [DONE]\n\n".encode("utf-8"))
        assert [e["type"] for e in events] == ["knowledge_graph", "done"]

    @pytest.mark.parametrize("text", ["", "\n\n", ": comment only\n"])
    def test_empty_streams(self, text):
        assert _decode(text.encode("utf-8")) == []
