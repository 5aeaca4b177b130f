from workflow_compiler.codegen.emitter import CodeEmitter, emit
from workflow_compiler.codegen.indentation import IndentationContext

__all__ = ["CodeEmitter", "emit", "IndentationContext"]
