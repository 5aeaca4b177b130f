"""Structural well-formedness checks run before structuring."""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List

import structlog

from workflow_compiler.errors import (
    DuplicateEdgeError,
    DuplicateStartError,
    IllegalCycleError,
    InvalidPortError,
    MissingStartError,
    UnknownNodeError,
    UnreachableEndError,
    UnreachableNodeWarning,
)
from workflow_compiler.graph.handles import inbound_port, loop_back_port, outbound_ports
from workflow_compiler.graph.models import Graph, Node

logger = structlog.get_logger(__name__)


@dataclass
class ValidationReport:
    """Outcome of a successful validation."""
    start: Node
    graph: Graph
    reachable: FrozenSet[str]
    warnings: List[UnreachableNodeWarning] = field(default_factory=list)


def is_back_edge(graph_index: Dict[str, Node], edge) -> bool:
    target = graph_index.get(edge.target)
    return target is not None and edge.target_handle == loop_back_port(target.type)


def validate(graph: Graph) -> ValidationReport:
    """Validate ``graph`` and return its reachable, pruned form.

    Raises a ``ValidationError`` subclass on the first problem found.
    """
    index = graph.index()
    start = _single_start(graph)

    _check_edges(graph, index)
    _check_cycles(graph, index)

    reachable = _reachable_from(graph, start.id)
    if not any(index[node_id].type == "end" for node_id in reachable):
        raise UnreachableEndError(
            f"No end node is reachable from start node '{start.id}'", node_id=start.id
        )

    warnings = [
        UnreachableNodeWarning(node.id, node.type)
        for node in graph.nodes
        if node.id not in reachable and node.type != "note"
    ]
    if warnings:
        logger.warning("unreachable_nodes_pruned", nodes=[w.node_id for w in warnings])

    pruned = graph.subgraph(reachable)
    logger.debug("graph_validated", nodes=len(pruned.nodes), edges=len(pruned.edges))
    return ValidationReport(start=start, graph=pruned, reachable=frozenset(reachable), warnings=warnings)


def _single_start(graph: Graph) -> Node:
    starts = graph.nodes_of_type("start")
    if not starts:
        raise MissingStartError("Workflow has no start node")
    if len(starts) > 1:
        ids = ", ".join(node.id for node in starts)
        raise DuplicateStartError(
            f"Workflow must have exactly one start node, found {len(starts)}: {ids}",
            node_id=starts[1].id,
        )
    return starts[0]


def _check_edges(graph: Graph, index: Dict[str, Node]) -> None:
    used_ports = {}
    for edge in graph.edges:
        source = index.get(edge.source)
        target = index.get(edge.target)
        if source is None:
            raise UnknownNodeError(
                f"Edge '{edge.id}' starts at unknown node '{edge.source}'", edge_id=edge.id
            )
        if target is None:
            raise UnknownNodeError(
                f"Edge '{edge.id}' ends at unknown node '{edge.target}'", edge_id=edge.id
            )

        ports = outbound_ports(source.type, source.config)
        if len(set(ports)) != len(ports):
            raise InvalidPortError(
                f"Node '{source.id}' declares the same output port more than once",
                node_id=source.id,
            )
        if edge.source_handle not in ports:
            raise InvalidPortError(
                f"Edge '{edge.id}' leaves node '{source.id}' ({source.type}) through "
                f"'{edge.source_handle}', which is not one of its output ports",
                node_id=source.id, edge_id=edge.id, port=edge.source_handle,
            )

        expected = inbound_port(target.type)
        if edge.target_handle != expected and edge.target_handle != loop_back_port(target.type):
            raise InvalidPortError(
                f"Edge '{edge.id}' enters node '{target.id}' ({target.type}) through "
                f"'{edge.target_handle}', expected '{expected}'",
                node_id=target.id, edge_id=edge.id, port=edge.target_handle,
            )

        key = (edge.source, edge.source_handle)
        if key in used_ports:
            raise DuplicateEdgeError(
                f"Port '{edge.source_handle}' of node '{edge.source}' has more than one "
                f"outgoing edge ('{used_ports[key]}', '{edge.id}')",
                node_id=edge.source, edge_id=edge.id, port=edge.source_handle,
            )
        used_ports[key] = edge.id


def _forward_adjacency(graph: Graph, index: Dict[str, Node]) -> Dict[str, List[str]]:
    adjacency = defaultdict(list)
    for edge in graph.edges:
        if not is_back_edge(index, edge):
            adjacency[edge.source].append(edge.target)
    return adjacency


def _check_cycles(graph: Graph, index: Dict[str, Node]) -> None:
    """Depth-first search over forward edges with an explicit stack.

    ``path`` mirrors the stack so that a cycle can be reported as the node
    path that closes it.
    """
    adjacency = _forward_adjacency(graph, index)
    visited = set()

    for root in graph.nodes:
        if root.id in visited:
            continue

        visited.add(root.id)
        path = [root.id]
        on_path = {root.id}
        stack = [iter(adjacency.get(root.id, []))]
        while stack:
            neighbor = next(stack[-1], None)
            if neighbor is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if neighbor in on_path:
                cycle_start = path.index(neighbor)
                raise IllegalCycleError(path[cycle_start:] + [neighbor])
            if neighbor not in visited:
                visited.add(neighbor)
                path.append(neighbor)
                on_path.add(neighbor)
                stack.append(iter(adjacency.get(neighbor, [])))


def _reachable_from(graph: Graph, start_id: str) -> List[str]:
    successors = defaultdict(list)
    for edge in graph.edges:
        successors[edge.source].append(edge.target)

    seen = {start_id}
    order = [start_id]
    queue = deque([start_id])
    while queue:
        node = queue.popleft()
        for neighbor in successors.get(node, []):
            if neighbor not in seen:
                seen.add(neighbor)
                order.append(neighbor)
                queue.append(neighbor)
    return order
