"""Structured-statement tree recovered from the workflow graph.

The tree is acyclic: loop back-edges are represented by ``Loop`` nesting and,
where a back-edge is taken before the end of the body, by ``Continue``.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from workflow_compiler.graph.models import Node


@dataclass(frozen=True)
class Action:
    """A node with a single continuation."""
    node: Node

    @property
    def falls_through(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.node.id, "type": self.node.type}


@dataclass(frozen=True)
class Terminal:
    node: Node

    @property
    def falls_through(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {"return": self.node.id}


@dataclass(frozen=True)
class Continue:
    """Back-edge into the innermost enclosing loop."""
    loop: Node
    source: str

    @property
    def falls_through(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {"continue": self.loop.id, "from": self.source}


@dataclass(frozen=True)
class Sequence:
    steps: Tuple["StructuredNode", ...] = ()

    @property
    def falls_through(self) -> bool:
        if not self.steps:
            return True
        return self.steps[-1].falls_through

    def to_dict(self) -> Dict[str, Any]:
        return {"sequence": [step.to_dict() for step in self.steps]}


@dataclass(frozen=True)
class Branch:
    node: Node
    cases: Tuple[Tuple[str, Sequence], ...]
    converges_at: Optional[str] = None

    @property
    def falls_through(self) -> bool:
        if self.converges_at is not None:
            return True
        return any(arm.falls_through for _, arm in self.cases)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "branch": self.node.id,
            "type": self.node.type,
            "converges_at": self.converges_at,
            "cases": {port: arm.to_dict() for port, arm in self.cases},
        }


@dataclass(frozen=True)
class Loop:
    node: Node
    body: Sequence
    closes_at: Tuple[str, ...]

    @property
    def falls_through(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loop": self.node.id,
            "closes_at": list(self.closes_at),
            "body": self.body.to_dict(),
        }


StructuredNode = Union[Action, Terminal, Continue, Sequence, Branch, Loop]


def walk(tree: StructuredNode) -> Iterator[StructuredNode]:
    """Pre-order traversal over every structured node."""
    yield tree
    if isinstance(tree, Sequence):
        for step in tree.steps:
            yield from walk(step)
    elif isinstance(tree, Branch):
        for _, arm in tree.cases:
            yield from walk(arm)
    elif isinstance(tree, Loop):
        yield from walk(tree.body)


def graph_nodes(tree: StructuredNode) -> Iterator[Node]:
    """Graph nodes referenced by the tree, once per occurrence."""
    for item in walk(tree):
        if isinstance(item, (Action, Terminal, Branch, Loop)):
            yield item.node
