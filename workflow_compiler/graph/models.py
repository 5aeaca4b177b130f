"""Immutable graph model parsed from the canvas JSON document."""

import json
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from workflow_compiler.errors import (
    DuplicateNodeError,
    MalformedDocumentError,
    UnknownNodeTypeError,
)
from workflow_compiler.graph.configs import CONFIG_SHAPES
from workflow_compiler.graph.handles import NODE_TYPES


class Node(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    type: str
    label: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def _null_config(cls, value):
        return {} if value is None else value


class Edge(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str
    source: str
    source_handle: str = Field(alias="sourceHandle")
    target: str
    target_handle: str = Field(alias="targetHandle")


class Graph(BaseModel):
    """Nodes and edges in document order.

    Lookups (``node``, ``outgoing``, ``incoming``) are derived on demand and
    never cached on the instance, so a Graph is safe to share between
    compilations.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    nodes: Tuple[Node, ...] = ()
    edges: Tuple[Edge, ...] = ()

    def node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_type(self, node_type: str) -> List[Node]:
        return [node for node in self.nodes if node.type == node_type]

    def outgoing(self, node_id: str) -> Iterator[Edge]:
        return (edge for edge in self.edges if edge.source == node_id)

    def incoming(self, node_id: str) -> Iterator[Edge]:
        return (edge for edge in self.edges if edge.target == node_id)

    def index(self) -> Dict[str, Node]:
        return {node.id: node for node in self.nodes}

    def subgraph(self, node_ids) -> "Graph":
        """Restrict to ``node_ids``, dropping edges that touch anything else."""
        keep = set(node_ids)
        return Graph(
            nodes=tuple(node for node in self.nodes if node.id in keep),
            edges=tuple(edge for edge in self.edges if edge.source in keep and edge.target in keep),
        )


def parse_graph(document: Any) -> Graph:
    """Build a Graph from a JSON string or an already-decoded mapping."""
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise MalformedDocumentError(f"Invalid workflow JSON: {e}") from e

    if not isinstance(document, dict):
        raise MalformedDocumentError("Workflow document must be an object with 'nodes' and 'edges'")

    try:
        graph = Graph.model_validate({
            "nodes": document.get("nodes") or [],
            "edges": document.get("edges") or [],
        })
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise MalformedDocumentError(f"Invalid workflow document at '{location}': {first['msg']}") from e

    seen = set()
    for node in graph.nodes:
        if node.id in seen:
            raise DuplicateNodeError(f"Duplicate node id '{node.id}'", node_id=node.id)
        seen.add(node.id)
        if node.type not in NODE_TYPES:
            raise UnknownNodeTypeError(
                f"Node '{node.id}' has unknown type '{node.type}'", node_id=node.id
            )
        _check_config(node)

    return graph


def _check_config(node: Node) -> None:
    shape = CONFIG_SHAPES.get(node.type)
    if shape is None:
        return
    try:
        shape.model_validate(node.config)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise MalformedDocumentError(
            f"Invalid config for node '{node.id}' ({node.type}) at '{location}': {first['msg']}",
            node_id=node.id,
        ) from e
