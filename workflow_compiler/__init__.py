"""Workflow graph to Agents SDK source compiler."""

from workflow_compiler.compiler import CompileResult, compile_workflow, structure_workflow
from workflow_compiler.errors import (
    CompilerError,
    EmissionError,
    StructureError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "CompileResult",
    "compile_workflow",
    "structure_workflow",
    "CompilerError",
    "ValidationError",
    "StructureError",
    "EmissionError",
]
