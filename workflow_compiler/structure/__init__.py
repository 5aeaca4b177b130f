from workflow_compiler.structure.resolver import StructureResolver, resolve
from workflow_compiler.structure.tree import (
    Action,
    Branch,
    Continue,
    Loop,
    Sequence,
    StructuredNode,
    Terminal,
    graph_nodes,
    walk,
)

__all__ = [
    "StructureResolver",
    "resolve",
    "Action",
    "Branch",
    "Continue",
    "Loop",
    "Sequence",
    "StructuredNode",
    "Terminal",
    "graph_nodes",
    "walk",
]
