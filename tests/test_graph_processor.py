"""Tests for knowledge graph normalization, filtering, traversal and export."""

import csv
import io
import json

import pytest

from docgraph.services.graph.processor import (
    DEFAULT_STYLE,
    GraphEdge,
    GraphNode,
    KnowledgeGraph,
    classify_node,
    export_graph,
    filter_graph,
    graph_from_payload,
    graph_statistics,
    graph_to_payload,
    merge_graphs,
    nodes_within_distance,
    normalize_graph,
    shortest_path,
    styled_nodes,
    to_cypher,
)


@pytest.fixture
def messy_graph() -> KnowledgeGraph:
    return graph_from_payload({
        "nodes": [
            {"id": "Acme Corp", "label": "Acme Corp", "type": "ORGANIZATION"},
            {"id": "acme  corp", "name": "ACME", "type": "ORGANIZATION",
             "properties": {"industry": "sensors", "founded": 1999}},
            {"id": "Alice", "type": "PERSON", "properties": {"role": "engineer"}},
            {"id": "Berlin", "type": "LOCATION"},
            {"id": "", "label": "nameless"},
        ],
        "edges": [
            {"source": "Alice", "target": "Acme Corp", "type": "WORKS_FOR"},
            {"from": "alice", "to": "ACME CORP", "type": "works_for", "properties": {"since": 2020}},
            {"source": "Acme Corp", "target": "Berlin", "type": "LOCATED_IN"},
            {"source": "Alice", "target": "Nobody", "type": "KNOWS"},
        ],
    })


class TestNormalizeGraph:
    """Deduplication, property union and dangling-edge removal."""

    def test_duplicate_nodes_collapse_to_richest(self, messy_graph):
        graph = normalize_graph(messy_graph)
        acme = [n for n in graph.nodes if n.type == "ORGANIZATION"]
        assert len(acme) == 1
        assert acme[0].id == "acme  corp"
        assert acme[0].properties == {"industry": "sensors", "founded": 1999}

    def test_edges_deduplicated_and_remapped(self, messy_graph):
        graph = normalize_graph(messy_graph)
        works_for = [e for e in graph.edges if e.type.upper() == "WORKS_FOR"]
        assert len(works_for) == 1
        assert works_for[0].target == "acme  corp"
        assert works_for[0].properties == {"since": 2020}

    def test_no_dangling_edges(self, messy_graph):
        graph = normalize_graph(messy_graph)
        ids = graph.node_ids()
        assert all(e.source in ids and e.target in ids for e in graph.edges)
        assert len(graph.edges) == 2

    def test_idempotent(self, messy_graph):
        once = normalize_graph(messy_graph)
        assert normalize_graph(once) == once

    def test_input_not_modified(self, messy_graph):
        before = graph_to_payload(messy_graph)
        normalize_graph(messy_graph)
        assert graph_to_payload(messy_graph) == before

    def test_merge_graphs(self):
        left = KnowledgeGraph(nodes=[GraphNode("Alice", "Alice", "PERSON")], metadata={"scope": "a"})
        right = KnowledgeGraph(
            nodes=[GraphNode("alice", "alice", "PERSON", {"role": "lead"}), GraphNode("Acme", "Acme")],
            edges=[GraphEdge("alice", "Acme", "WORKS_FOR")],
            metadata={"scope": "b"},
        )
        merged = merge_graphs(left, right)
        assert len(merged.nodes) == 2
        assert merged.edges[0].source == "alice"
        assert merged.metadata == {"scope": "b"}


class TestPayloadConversion:
    def test_defaults_applied(self):
        graph = KnowledgeGraph(nodes=[GraphNode("a", "A"), GraphNode("b", "B")], edges=[GraphEdge("a", "b", "")])
        payload = graph_to_payload(graph)
        assert payload["nodes"][0]["type"] == "CONCEPT"
        assert payload["edges"][0]["type"] == "RELATED"

    def test_links_alias(self):
        graph = graph_from_payload({"nodes": [{"id": "a"}, {"id": "b"}], "links": [{"source": "a", "target": "b"}]})
        assert len(graph.edges) == 1
        assert graph.nodes[0].label == "a"


class TestFilterGraph:
    @pytest.fixture
    def graph(self, messy_graph):
        return normalize_graph(messy_graph)

    def test_search_term(self, graph):
        result = filter_graph(graph, search_term="ali")
        assert [n.id for n in result.nodes] == ["Alice"]
        assert result.edges == []

    def test_type_filter_keeps_edges_between_survivors(self, graph):
        result = filter_graph(graph, types=["person", "ORGANIZATION"])
        assert {n.type for n in result.nodes} == {"PERSON", "ORGANIZATION"}
        assert len(result.edges) == 1

    def test_relation_type(self, graph):
        result = filter_graph(graph, relation_type="located_in")
        assert [e.type for e in result.edges] == ["LOCATED_IN"]

    def test_chained_filters_never_dangle(self, graph):
        result = filter_graph(filter_graph(graph, types=["ORGANIZATION", "LOCATION"]), search_term="berlin")
        ids = result.node_ids()
        assert all(e.source in ids and e.target in ids for e in result.edges)

    def test_blank_criteria_keep_everything(self, graph):
        assert filter_graph(graph, search_term="  ", types=[]) == graph


class TestTraversal:
    @pytest.fixture
    def chain(self) -> KnowledgeGraph:
        nodes = [GraphNode(x, x) for x in "ABCDE"]
        edges = [GraphEdge("A", "B"), GraphEdge("C", "B"), GraphEdge("C", "D")]
        return KnowledgeGraph(nodes=nodes, edges=edges)

    def test_shortest_path_ignores_direction(self, chain):
        path = shortest_path(chain, "A", "D")
        assert [n.id for n in path.nodes] == ["A", "B", "C", "D"]
        assert path.distance == 3
        assert len(path.edges) == 3

    def test_same_node(self, chain):
        path = shortest_path(chain, "B", "b")
        assert [n.id for n in path.nodes] == ["B"]
        assert path.distance == 0

    def test_unreachable_or_missing(self, chain):
        assert shortest_path(chain, "A", "E") is None
        assert shortest_path(chain, "A", "Z") is None

    def test_nodes_within_distance(self, chain):
        result = nodes_within_distance(chain, "B", 1)
        assert result.node_ids() == {"A", "B", "C"}
        assert nodes_within_distance(chain, "missing", 2).nodes == []

    def test_statistics(self, chain):
        stats = graph_statistics(chain)
        assert stats["node_count"] == 5
        assert stats["edge_count"] == 3
        assert stats["connected_components"] == 2
        assert stats["most_connected"][0]["degree"] == 2
        assert stats["density"] == pytest.approx(6 / 20)


class TestClassificationAndExport:
    def test_classify(self):
        assert classify_node(GraphNode("a", "a", "person")).group == "PERSON"
        assert classify_node(GraphNode("a", "a", None)) == DEFAULT_STYLE
        assert classify_node(GraphNode("a", "a", "spaceship")) == DEFAULT_STYLE

    def test_styled_nodes(self):
        styled = styled_nodes([GraphNode("a", "A", "ORGANIZATION")])
        assert styled[0]["color"] == "#10B981"
        assert styled[0]["group"] == "ORGANIZATION"

    def test_cypher(self):
        graph = KnowledgeGraph(
            nodes=[
                GraphNode("alice", 'Alice "Al"', "PERSON", {"age": 30, "tags": ["x"]}),
                GraphNode("acme", "Acme", "ORGANIZATION"),
            ],
            edges=[GraphEdge("alice", "acme", "works for")],
        )
        statements = to_cypher(graph)
        assert statements[0] == 'CREATE (n0:PERSON {id: "alice", label: "Alice \\"Al\\"", age: 30})'
        assert statements[2] == 'MATCH (a {id: "alice"}), (b {id: "acme"}) CREATE (a)-[:WORKS_FOR]->(b)'

    def test_cypher_skips_non_finite_numbers(self):
        graph = KnowledgeGraph(nodes=[
            GraphNode("m", "Metric", "CONCEPT", {
                "score": float("nan"), "upper": float("inf"), "lower": float("-inf"), "ratio": 0.5,
            }),
        ])
        statement = to_cypher(graph)[0]
        assert statement == 'CREATE (n0:CONCEPT {id: "m", label: "Metric", ratio: 0.5})'
        assert "nan" not in statement and "inf" not in statement

    def test_export_formats(self):
        graph = KnowledgeGraph(nodes=[GraphNode("a", "A"), GraphNode("b", "B")], edges=[GraphEdge("a", "b", "LINKS")])
        assert json.loads(export_graph(graph, "json"))["nodes"][0]["id"] == "a"
        assert export_graph(graph, "cypher").endswith(";")
        rows = list(csv.reader(io.StringIO(export_graph(graph, "CSV"))))
        assert rows[0] == ["id", "label", "type"]
        assert ["a", "b", "LINKS"] in rows

    def test_unknown_export_format(self):
        with pytest.raises(ValueError):
            export_graph(KnowledgeGraph(), "graphml")
