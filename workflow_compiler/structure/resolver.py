"""Recover a Sequence/Branch/Loop tree from a validated workflow graph.

Resolution walks forward from start. Each sequence runs inside a *region*:
the stack of convergence nodes of the branches it is nested in, plus the
innermost enclosing while node. Reaching the innermost convergence node ends
the sequence by falling through to the parent; taking a back-edge into the
innermost while ends it with ``Continue``.

A branch converges at the unique nearest node reachable from every arm
(end nodes excluded, so each arm keeps its own return). Arms that never
reconverge are resolved to their own ends, and a node shared by several such
arms is emitted once per arm.
"""

from collections import deque
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Tuple

import structlog

from workflow_compiler.errors import (
    AmbiguousConvergenceError,
    MisplacedBackEdgeError,
    MissingEdgeError,
    StructureError,
    UnclosedLoopError,
)
from workflow_compiler.graph.handles import (
    LOOP_BACK,
    LOOP_EXIT,
    OUT,
    is_branching,
    outbound_ports,
)
from workflow_compiler.graph.models import Edge, Node
from workflow_compiler.graph.validator import ValidationReport, is_back_edge
from workflow_compiler.structure.tree import (
    Action,
    Branch,
    Continue,
    Loop,
    Sequence,
    Terminal,
    walk,
)

logger = structlog.get_logger(__name__)


class Region(NamedTuple):
    stops: Tuple[str, ...] = ()
    loop: Optional[str] = None


class StructureResolver:
    """Single-use resolver; all working state is local to one instance."""

    def __init__(self, report: ValidationReport):
        self.graph = report.graph
        self.start = report.start
        self._index: Dict[str, Node] = self.graph.index()
        self._order = {node.id: i for i, node in enumerate(self.graph.nodes)}
        self._edges: Dict[Tuple[str, str], Edge] = {
            (edge.source, edge.source_handle): edge for edge in self.graph.edges
        }
        self._reach_cache: Dict[Tuple[str, Tuple[str, ...]], FrozenSet[str]] = {}

    def resolve(self) -> Sequence:
        region = Region()
        steps = [Action(self.start)]
        current = self._advance(self._require_edge(self.start, OUT), region, steps)
        self._extend(current, region, steps)
        tree = Sequence(tuple(steps))

        logger.debug(
            "structure_resolved",
            branches=sum(1 for item in walk(tree) if isinstance(item, Branch)),
            loops=sum(1 for item in walk(tree) if isinstance(item, Loop)),
        )
        return tree

    # ------------------------------------------------------------------
    # Sequences
    # ------------------------------------------------------------------

    def _sequence(self, edge: Edge, region: Region) -> Sequence:
        steps: list = []
        current = self._advance(edge, region, steps)
        self._extend(current, region, steps)
        return Sequence(tuple(steps))

    def _extend(self, current: Optional[str], region: Region, steps: list) -> None:
        while current is not None:
            if region.stops and current == region.stops[-1]:
                return
            if current in region.stops:
                raise AmbiguousConvergenceError(
                    f"Node '{current}' is reached from inside a branch that converges at "
                    f"'{region.stops[-1]}' without passing through it",
                    node_id=current,
                )

            node = self._index[current]
            if node.type == "end":
                steps.append(Terminal(node))
                return

            if node.type == "while":
                steps.append(self._loop(node))
                exit_edge = self._edges.get((node.id, LOOP_EXIT))
                current = self._advance(exit_edge, region, steps) if exit_edge else None
                continue

            if is_branching(node.type, node.config):
                branch = self._branch(node, region)
                steps.append(branch)
                current = branch.converges_at
                continue

            steps.append(Action(node))
            port = outbound_ports(node.type, node.config)[0]
            current = self._advance(self._require_edge(node, port), region, steps)

    def _advance(self, edge: Edge, region: Region, steps: list) -> Optional[str]:
        """Follow ``edge``; back-edges close the current loop instead."""
        if not is_back_edge(self._index, edge):
            return edge.target
        if edge.target != region.loop:
            raise MisplacedBackEdgeError(
                f"Edge '{edge.id}' from node '{edge.source}' returns to while node "
                f"'{edge.target}' from outside its loop body",
                node_id=edge.target, edge_id=edge.id, port=LOOP_BACK,
            )
        steps.append(Continue(self._index[edge.target], edge.source))
        return None

    def _require_edge(self, node: Node, port: str) -> Edge:
        edge = self._edges.get((node.id, port))
        if edge is None:
            raise MissingEdgeError(node.id, port, node.type)
        return edge

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def _branch(self, node: Node, region: Region) -> Branch:
        arms = [
            (port, self._require_edge(node, port))
            for port in outbound_ports(node.type, node.config)
        ]

        reaches = [self._edge_reach(edge, region) for _, edge in arms]
        common = set(reaches[0]).intersection(*reaches[1:])
        common = {node_id for node_id in common if self._index[node_id].type != "end"}
        convergence = self._nearest(node, common, region)

        arm_region = region
        if convergence is not None:
            arm_region = region._replace(stops=region.stops + (convergence,))

        cases = tuple((port, self._sequence(edge, arm_region)) for port, edge in arms)
        return Branch(node=node, cases=cases, converges_at=convergence)

    def _nearest(self, node: Node, common: set, region: Region) -> Optional[str]:
        if not common:
            return None
        minimal = [
            candidate for candidate in common
            if not any(
                other != candidate and candidate in self._reach(other, region)
                for other in common
            )
        ]
        minimal.sort(key=self._order.__getitem__)
        if len(minimal) > 1:
            raise AmbiguousConvergenceError(
                f"Branches of node '{node.id}' reconverge at more than one node: "
                + ", ".join(f"'{candidate}'" for candidate in minimal),
                node_id=node.id,
            )
        return minimal[0]

    def _edge_reach(self, edge: Edge, region: Region) -> FrozenSet[str]:
        if is_back_edge(self._index, edge):
            return frozenset()
        return self._reach(edge.target, region)

    def _reach(self, node_id: str, region: Region) -> FrozenSet[str]:
        """Nodes a branch arm entering at ``node_id`` can get to.

        Region stops are sinks, back-edges are never followed and nested
        while nodes are stepped over through their exit port.
        """
        key = (node_id, region.stops)
        if key in self._reach_cache:
            return self._reach_cache[key]

        seen = set()
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            if current in region.stops:
                continue
            node = self._index[current]
            ports = (LOOP_EXIT,) if node.type == "while" else outbound_ports(node.type, node.config)
            for port in ports:
                edge = self._edges.get((current, port))
                if edge is not None and not is_back_edge(self._index, edge):
                    queue.append(edge.target)

        result = frozenset(seen)
        self._reach_cache[key] = result
        return result

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    def _loop(self, node: Node) -> Loop:
        back_edges = [
            edge for edge in self.graph.incoming(node.id)
            if is_back_edge(self._index, edge)
        ]
        if not back_edges:
            raise UnclosedLoopError(
                f"While node '{node.id}' has no edge into its '{LOOP_BACK}' port, so its loop never closes",
                node_id=node.id, port=LOOP_BACK,
            )

        entry = self._require_edge(node, OUT)
        body_nodes = self._body_nodes(node, entry)
        for edge in back_edges:
            if edge.source not in body_nodes:
                raise MisplacedBackEdgeError(
                    f"Edge '{edge.id}' closes while node '{node.id}' from node '{edge.source}', "
                    f"which is outside the loop body",
                    node_id=node.id, edge_id=edge.id, port=LOOP_BACK,
                )

        exit_edge = self._edges.get((node.id, LOOP_EXIT))
        if exit_edge is not None and exit_edge.target in body_nodes:
            raise StructureError(
                f"The body of while node '{node.id}' reaches its exit target '{exit_edge.target}'",
                node_id=node.id, edge_id=exit_edge.id, port=LOOP_EXIT,
            )

        body = self._sequence(entry, Region(stops=(), loop=node.id))
        closes_at = tuple(sorted({edge.source for edge in back_edges}))
        return Loop(node=node, body=body, closes_at=closes_at)

    def _body_nodes(self, node: Node, entry: Edge) -> FrozenSet[str]:
        if is_back_edge(self._index, entry):
            return frozenset({node.id}) if entry.target == node.id else frozenset()

        seen = set()
        queue = deque([entry.target])
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            for edge in self.graph.outgoing(current):
                if not is_back_edge(self._index, edge):
                    queue.append(edge.target)
        return frozenset(seen)


def resolve(report: ValidationReport) -> Sequence:
    return StructureResolver(report).resolve()
