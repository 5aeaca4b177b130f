"""Public entry point: workflow JSON in, generated source (or an error) out."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from workflow_compiler.codegen.emitter import CodeEmitter
from workflow_compiler.config import Settings
from workflow_compiler.errors import CompilerError
from workflow_compiler.graph.models import parse_graph
from workflow_compiler.graph.validator import ValidationReport, validate
from workflow_compiler.structure.resolver import StructureResolver
from workflow_compiler.structure.tree import Sequence

logger = structlog.get_logger(__name__)


@dataclass
class CompileResult:
    code: str
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "error": self.error, "warnings": list(self.warnings)}


def check_workflow(document: Any) -> ValidationReport:
    """Parse and validate; raises ``CompilerError`` on failure."""
    return validate(parse_graph(document))


def structure_workflow(document: Any) -> Sequence:
    """Parse, validate and resolve; raises ``CompilerError`` on failure."""
    return StructureResolver(check_workflow(document)).resolve()


def compile_workflow(document: Any, settings: Optional[Settings] = None) -> CompileResult:
    """Compile a workflow document into Agents SDK source.

    ``document`` is the JSON text (or its decoded mapping). Compilation is
    all-or-nothing: any failure yields an empty ``code`` and a message naming
    the offending node, edge or port.
    """
    try:
        report = check_workflow(document)
        tree = StructureResolver(report).resolve()
        code = CodeEmitter(report.graph, settings).emit(tree)
    except CompilerError as e:
        logger.info("compilation_failed", error=type(e).__name__, node_id=e.node_id, message=e.message)
        return CompileResult(code="", error=e.describe())

    return CompileResult(code=code, warnings=[warning.message for warning in report.warnings])
