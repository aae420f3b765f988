"""
Knowledge graph processor.

Pure functions over an in-memory graph: normalization (deduplication and
dangling-edge removal), node classification, filtering, traversal and
export. The same rules apply to the central document graph and to the
per-answer graph carried by the query stream.
"""
import csv
import io
import json
import math
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from docgraph.utils.text import count_filled, normalize_key

DEFAULT_NODE_TYPE = "CONCEPT"
DEFAULT_EDGE_TYPE = "RELATED"


@dataclass
class GraphNode:
    id: str
    label: str
    type: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    confidence: Optional[float] = None


@dataclass
class GraphEdge:
    source: str
    target: str
    type: str = DEFAULT_EDGE_TYPE
    label: Optional[str] = None
    id: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    confidence: Optional[float] = None


@dataclass
class KnowledgeGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def node_ids(self) -> Set[str]:
        return {node.id for node in self.nodes}


@dataclass
class GraphPath:
    nodes: List[GraphNode]
    edges: List[GraphEdge]
    distance: int


@dataclass(frozen=True)
class NodeStyle:
    color: str
    size: int
    group: str


NODE_STYLES: Dict[str, NodeStyle] = {
    "PERSON": NodeStyle("#3B82F6", 8, "PERSON"),
    "ORGANIZATION": NodeStyle("#10B981", 10, "ORGANIZATION"),
    "CONCEPT": NodeStyle("#8B5CF6", 6, "CONCEPT"),
    "LOCATION": NodeStyle("#F59E0B", 7, "LOCATION"),
    "EVENT": NodeStyle("#EF4444", 9, "EVENT"),
    "TECHNOLOGY": NodeStyle("#06B6D4", 7, "TECHNOLOGY"),
    "PRODUCT": NodeStyle("#84CC16", 6, "PRODUCT"),
}
DEFAULT_STYLE = NodeStyle("#6B7280", 5, "OTHER")


# ============================================================================
# Conversion
# ============================================================================

def graph_from_payload(payload: Dict[str, Any]) -> KnowledgeGraph:
    """Build a graph from a JSON-like dict (stream payload or API input)."""
    nodes = []
    for raw in payload.get("nodes") or []:
        if not isinstance(raw, dict) or raw.get("id") in (None, ""):
            continue
        nodes.append(
            GraphNode(
                id=str(raw["id"]),
                label=str(raw.get("label") or raw.get("name") or raw["id"]),
                type=raw.get("type"),
                properties=dict(raw.get("properties") or {}),
                confidence=raw.get("confidence"),
            )
        )

    edges = []
    for raw in payload.get("edges") or payload.get("links") or []:
        if not isinstance(raw, dict):
            continue
        source = raw.get("source", raw.get("from"))
        target = raw.get("target", raw.get("to"))
        if source in (None, "") or target in (None, ""):
            continue
        edges.append(
            GraphEdge(
                source=str(source),
                target=str(target),
                type=raw.get("type") or raw.get("label") or DEFAULT_EDGE_TYPE,
                label=raw.get("label"),
                id=raw.get("id"),
                properties=dict(raw.get("properties") or {}),
                confidence=raw.get("confidence"),
            )
        )

    return KnowledgeGraph(nodes=nodes, edges=edges, metadata=dict(payload.get("metadata") or {}))


def graph_to_payload(graph: KnowledgeGraph) -> Dict[str, Any]:
    """Serializable form; missing node/edge types get their defaults."""
    return {
        "nodes": [
            {
                "id": node.id,
                "label": node.label,
                "type": node.type or DEFAULT_NODE_TYPE,
                "properties": node.properties,
            }
            for node in graph.nodes
        ],
        "edges": [
            {
                "id": edge.id or _edge_id(edge.source, edge.type, edge.target),
                "source": edge.source,
                "target": edge.target,
                "label": edge.label or edge.type,
                "type": edge.type or DEFAULT_EDGE_TYPE,
                "properties": edge.properties,
            }
            for edge in graph.edges
        ],
        "metadata": dict(graph.metadata),
    }


# ============================================================================
# Normalization
# ============================================================================

def _node_rank(node: GraphNode) -> tuple:
    return (count_filled(node.properties), node.confidence or 0.0)


def _edge_id(source: str, edge_type: str, target: str) -> str:
    return f"{source}|{edge_type}|{target}"


def normalize_graph(graph: KnowledgeGraph) -> KnowledgeGraph:
    """
    Deduplicate nodes and edges and drop dangling edges.

    Nodes collapse on their normalized id. The variant with the most filled
    properties (then the highest confidence) wins; the others contribute the
    properties it lacks. Edges collapse on (source, type, target) after their
    endpoints are mapped to the surviving node ids. Applying it twice gives
    the same graph as applying it once.
    """
    groups: Dict[str, List[GraphNode]] = {}
    for node in graph.nodes:
        key = normalize_key(node.id)
        if key:
            groups.setdefault(key, []).append(node)

    nodes: List[GraphNode] = []
    canonical_ids: Dict[str, str] = {}
    for key, group in groups.items():
        best = max(group, key=_node_rank)
        properties: Dict[str, Any] = {}
        for variant in group:
            if variant is not best:
                for prop, value in variant.properties.items():
                    if value not in (None, "", [], {}):
                        properties.setdefault(prop, value)
        for prop, value in best.properties.items():
            if value not in (None, "", [], {}) or prop not in properties:
                properties[prop] = value

        confidences = [n.confidence for n in group if n.confidence is not None]
        nodes.append(
            GraphNode(
                id=best.id,
                label=best.label,
                type=best.type or next((n.type for n in group if n.type), None),
                properties=properties,
                confidence=max(confidences) if confidences else None,
            )
        )
        canonical_ids[key] = best.id

    edges: List[GraphEdge] = []
    seen: Dict[tuple, int] = {}
    for edge in graph.edges:
        source = canonical_ids.get(normalize_key(edge.source))
        target = canonical_ids.get(normalize_key(edge.target))
        if source is None or target is None:
            continue
        edge_type = edge.type or DEFAULT_EDGE_TYPE
        triple = (normalize_key(source), normalize_key(edge_type), normalize_key(target))
        if triple in seen:
            existing = edges[seen[triple]]
            for prop, value in edge.properties.items():
                existing.properties.setdefault(prop, value)
            continue
        seen[triple] = len(edges)
        edges.append(
            GraphEdge(
                source=source,
                target=target,
                type=edge_type,
                label=edge.label or edge_type,
                id=edge.id or _edge_id(source, edge_type, target),
                properties=dict(edge.properties),
                confidence=edge.confidence,
            )
        )

    return KnowledgeGraph(nodes=nodes, edges=edges, metadata=dict(graph.metadata))


def merge_graphs(*graphs: KnowledgeGraph) -> KnowledgeGraph:
    """Normalized union of several graphs; metadata of later graphs wins."""
    combined = KnowledgeGraph()
    for graph in graphs:
        combined.nodes.extend(graph.nodes)
        combined.edges.extend(graph.edges)
        combined.metadata.update(graph.metadata)
    return normalize_graph(combined)


# ============================================================================
# Classification and filtering
# ============================================================================

def classify_node(node: GraphNode) -> NodeStyle:
    """Visual attributes for a node; unknown or missing types get the default style."""
    return NODE_STYLES.get(str(node.type or "").strip().upper(), DEFAULT_STYLE)


def _matches_search(node: GraphNode, term: str) -> bool:
    haystack = [node.id, node.label, str(node.properties.get("description") or "")]
    return any(term in value.casefold() for value in haystack)


def filter_graph(
    graph: KnowledgeGraph,
    search_term: Optional[str] = None,
    types: Optional[Iterable[str]] = None,
    relation_type: Optional[str] = None,
) -> KnowledgeGraph:
    """
    Subgraph of the nodes matching every given criterion.

    An edge survives only if both of its endpoints survive (and it matches
    ``relation_type`` when given), so chained filters never leave dangling edges.
    """
    term = search_term.strip().casefold() if search_term and search_term.strip() else None
    wanted_types = {t.strip().upper() for t in types or [] if t and t.strip()}

    nodes = [
        node for node in graph.nodes
        if (term is None or _matches_search(node, term))
        and (not wanted_types or str(node.type or "").upper() in wanted_types)
    ]
    kept = {node.id for node in nodes}
    rel = relation_type.strip().upper() if relation_type and relation_type.strip() else None
    edges = [
        edge for edge in graph.edges
        if edge.source in kept and edge.target in kept
        and (rel is None or str(edge.type).upper() == rel)
    ]
    return KnowledgeGraph(nodes=nodes, edges=edges, metadata=dict(graph.metadata))


# ============================================================================
# Traversal
# ============================================================================

def _adjacency(graph: KnowledgeGraph) -> Dict[str, List[tuple]]:
    adjacency: Dict[str, List[tuple]] = {node.id: [] for node in graph.nodes}
    for edge in graph.edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].append((edge.target, edge))
            adjacency[edge.target].append((edge.source, edge))
    return adjacency


def _resolve_node(graph: KnowledgeGraph, node_id: str) -> Optional[GraphNode]:
    for node in graph.nodes:
        if node.id == node_id:
            return node
    key = normalize_key(node_id)
    return next((node for node in graph.nodes if normalize_key(node.id) == key), None)


def shortest_path(graph: KnowledgeGraph, start_id: str, end_id: str) -> Optional[GraphPath]:
    """
    Minimum-hop path between two nodes, treating edges as undirected.

    Returns None when either node is missing or no path exists. A node's
    path to itself is that single node with distance 0.
    """
    start = _resolve_node(graph, start_id)
    end = _resolve_node(graph, end_id)
    if start is None or end is None:
        return None
    if start.id == end.id:
        return GraphPath(nodes=[start], edges=[], distance=0)

    adjacency = _adjacency(graph)
    previous: Dict[str, tuple] = {start.id: (None, None)}
    queue = deque([start.id])
    while queue:
        current = queue.popleft()
        if current == end.id:
            break
        for neighbour, edge in adjacency[current]:
            if neighbour not in previous:
                previous[neighbour] = (current, edge)
                queue.append(neighbour)

    if end.id not in previous:
        return None

    by_id = {node.id: node for node in graph.nodes}
    path_nodes: List[GraphNode] = []
    path_edges: List[GraphEdge] = []
    cursor: Optional[str] = end.id
    while cursor is not None:
        path_nodes.append(by_id[cursor])
        parent, edge = previous[cursor]
        if edge is not None:
            path_edges.append(edge)
        cursor = parent
    path_nodes.reverse()
    path_edges.reverse()
    return GraphPath(nodes=path_nodes, edges=path_edges, distance=len(path_edges))


def nodes_within_distance(graph: KnowledgeGraph, node_id: str, max_hops: int) -> KnowledgeGraph:
    """Neighbourhood subgraph of every node at most ``max_hops`` away."""
    start = _resolve_node(graph, node_id)
    if start is None:
        return KnowledgeGraph(metadata=dict(graph.metadata))

    adjacency = _adjacency(graph)
    distances = {start.id: 0}
    queue = deque([start.id])
    while queue:
        current = queue.popleft()
        if distances[current] >= max_hops:
            continue
        for neighbour, _ in adjacency[current]:
            if neighbour not in distances:
                distances[neighbour] = distances[current] + 1
                queue.append(neighbour)

    nodes = [node for node in graph.nodes if node.id in distances]
    edges = [e for e in graph.edges if e.source in distances and e.target in distances]
    return KnowledgeGraph(nodes=nodes, edges=edges, metadata=dict(graph.metadata))


def graph_statistics(graph: KnowledgeGraph, top_n: int = 5) -> Dict[str, Any]:
    """Counts, density, connected components and the most connected nodes."""
    node_count = len(graph.nodes)
    edge_count = len(graph.edges)
    adjacency = _adjacency(graph)

    degrees = {node_id: len(links) for node_id, links in adjacency.items()}
    labels = {node.id: node.label for node in graph.nodes}
    most_connected = sorted(degrees.items(), key=lambda item: item[1], reverse=True)[:top_n]

    components = 0
    visited: Set[str] = set()
    for node_id in adjacency:
        if node_id in visited:
            continue
        components += 1
        queue = deque([node_id])
        visited.add(node_id)
        while queue:
            for neighbour, _ in adjacency[queue.popleft()]:
                if neighbour not in visited:
                    visited.add(neighbour)
                    queue.append(neighbour)

    type_counts: Dict[str, int] = {}
    for node in graph.nodes:
        node_type = node.type or DEFAULT_NODE_TYPE
        type_counts[node_type] = type_counts.get(node_type, 0) + 1

    return {
        "node_count": node_count,
        "edge_count": edge_count,
        "density": (2 * edge_count) / (node_count * (node_count - 1)) if node_count > 1 else 0.0,
        "average_degree": (2 * edge_count) / node_count if node_count else 0.0,
        "connected_components": components,
        "most_connected": [
            {"id": node_id, "label": labels[node_id], "degree": degree}
            for node_id, degree in most_connected
        ],
        "type_counts": type_counts,
    }


# ============================================================================
# Export
# ============================================================================

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _cypher_string(value: Any) -> str:
    text = str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{text}"'


def _cypher_value(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return _cypher_string(value)
    return None


def _cypher_label(value: Optional[str], default: str) -> str:
    label = re.sub(r"[^A-Za-z0-9_]", "_", str(value or "").strip())
    label = re.sub(r"_+", "_", label).strip("_")
    if not label:
        return default
    if label[0].isdigit():
        label = f"_{label}"
    return label


def to_cypher(graph: KnowledgeGraph) -> List[str]:
    """
    Cypher statements that recreate the graph.

    One CREATE per node (id, label and scalar properties) followed by one
    MATCH ... CREATE per edge. The graph is not modified.
    """
    statements = []
    for index, node in enumerate(graph.nodes):
        fields = [f"id: {_cypher_string(node.id)}", f"label: {_cypher_string(node.label)}"]
        for key, value in node.properties.items():
            rendered = _cypher_value(value)
            if rendered is not None and _IDENTIFIER_RE.match(key) and key not in ("id", "label"):
                fields.append(f"{key}: {rendered}")
        node_label = _cypher_label(node.type, "Entity")
        statements.append(f"CREATE (n{index}:{node_label} {{{', '.join(fields)}}})")

    for edge in graph.edges:
        rel_type = _cypher_label(edge.type, DEFAULT_EDGE_TYPE).upper()
        statements.append(
            f"MATCH (a {{id: {_cypher_string(edge.source)}}}), (b {{id: {_cypher_string(edge.target)}}}) "
            f"CREATE (a)-[:{rel_type}]->(b)"
        )
    return statements


def export_graph(graph: KnowledgeGraph, fmt: str = "json") -> str:
    """Render a graph as ``json``, ``csv`` (nodes then edges) or ``cypher``."""
    fmt = fmt.lower()
    if fmt == "json":
        return json.dumps(graph_to_payload(graph), indent=2, default=str)
    if fmt == "cypher":
        statements = to_cypher(graph)
        return ";\n".join(statements) + ";" if statements else ""
    if fmt == "csv":
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["id", "label", "type"])
        for node in graph.nodes:
            writer.writerow([node.id, node.label, node.type or DEFAULT_NODE_TYPE])
        writer.writerow([])
        writer.writerow(["source", "target", "type"])
        for edge in graph.edges:
            writer.writerow([edge.source, edge.target, edge.type])
        return buffer.getvalue()
    raise ValueError(f"Unsupported export format: {fmt}")


def styled_nodes(nodes: Sequence[GraphNode]) -> List[Dict[str, Any]]:
    """Node payloads with their visual attributes attached."""
    styled = []
    for node in nodes:
        style = classify_node(node)
        styled.append({
            "id": node.id,
            "label": node.label,
            "type": node.type or DEFAULT_NODE_TYPE,
            "properties": node.properties,
            "color": style.color,
            "size": style.size,
            "group": style.group,
        })
    return styled
