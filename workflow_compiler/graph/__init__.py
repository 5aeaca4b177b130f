from workflow_compiler.graph.handles import (
    NODE_HANDLES,
    NODE_TYPES,
    inbound_port,
    is_branching,
    loop_back_port,
    outbound_ports,
)
from workflow_compiler.graph.models import Edge, Graph, Node, parse_graph
from workflow_compiler.graph.validator import ValidationReport, validate

__all__ = [
    "NODE_HANDLES",
    "NODE_TYPES",
    "inbound_port",
    "is_branching",
    "loop_back_port",
    "outbound_ports",
    "Edge",
    "Graph",
    "Node",
    "parse_graph",
    "ValidationReport",
    "validate",
]
