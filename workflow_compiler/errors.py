"""Error taxonomy for the workflow compiler.

Every failure is one of three categories, detected in pipeline order:

* ``ValidationError`` - the raw graph is malformed.
* ``StructureError`` - the graph is valid but cannot be turned into a
  sequence/branch/loop tree.
* ``EmissionError`` - the tree references configuration the code templates
  cannot render.

Each error carries the offending node, edge and/or port so that the message
shown to the user points at something on the canvas.
"""

from dataclasses import dataclass
from typing import Optional, Sequence


class CompilerError(Exception):
    """Base class for all compilation failures."""

    category = "CompilerError"

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        edge_id: Optional[str] = None,
        port: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.node_id = node_id
        self.edge_id = edge_id
        self.port = port

    def describe(self) -> str:
        return f"{self.category}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "type": type(self).__name__,
            "message": self.message,
            "node_id": self.node_id,
            "edge_id": self.edge_id,
            "port": self.port,
        }


# ============================================================================
# VALIDATION
# ============================================================================

class ValidationError(CompilerError):
    category = "ValidationError"


class MalformedDocumentError(ValidationError):
    pass


class DuplicateNodeError(ValidationError):
    pass


class UnknownNodeTypeError(ValidationError):
    pass


class MissingStartError(ValidationError):
    pass


class DuplicateStartError(ValidationError):
    pass


class UnknownNodeError(ValidationError):
    pass


class InvalidPortError(ValidationError):
    pass


class DuplicateEdgeError(ValidationError):
    pass


class IllegalCycleError(ValidationError):
    def __init__(self, cycle: Sequence[str]):
        path = " -> ".join(cycle)
        super().__init__(
            f"Illegal cycle {path}; cycles may only close through a while node's dummy-in port",
            node_id=cycle[0] if cycle else None,
        )
        self.cycle = list(cycle)


class UnreachableEndError(ValidationError):
    pass


# ============================================================================
# STRUCTURE
# ============================================================================

class StructureError(CompilerError):
    category = "StructureError"


class AmbiguousConvergenceError(StructureError):
    pass


class UnclosedLoopError(StructureError):
    pass


class MissingEdgeError(StructureError):
    def __init__(self, node_id: str, port: str, node_type: str):
        super().__init__(
            f"Node '{node_id}' ({node_type}) has no outgoing edge on port '{port}'",
            node_id=node_id,
            port=port,
        )


class MisplacedBackEdgeError(StructureError):
    pass


# ============================================================================
# EMISSION
# ============================================================================

class EmissionError(CompilerError):
    category = "EmissionError"


class MissingConfigError(EmissionError):
    pass


class UnsupportedNodeError(EmissionError):
    pass


class ExpressionError(EmissionError):
    pass


@dataclass(frozen=True)
class UnreachableNodeWarning:
    """Advisory: a node that no path from start reaches."""

    node_id: str
    node_type: str

    @property
    def message(self) -> str:
        return f"Node '{self.node_id}' ({self.node_type}) is unreachable from start and was skipped"

    def __str__(self) -> str:
        return self.message
