"""Shapes of per-type node configuration.

Only the keys code generation dereferences are typed; every other key is
accepted as-is. Checking them while parsing turns a wrong container or
scalar type into a ``MalformedDocumentError`` instead of a crash deep inside
emission.
"""

from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


class Shape(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# ============================================================================
# Shared pieces
# ============================================================================

class Named(Shape):
    name: Optional[str] = None


class Variable(Named):
    type: Optional[str] = None


class JsonSchema(Shape):
    type: Optional[str] = None
    properties: Optional[Dict[str, Optional["JsonSchema"]]] = None
    items: Optional["JsonSchema"] = None


JsonSchema.model_rebuild()


# ============================================================================
# Per node type
# ============================================================================

class StartConfig(Shape):
    input_variables: Optional[List[Optional[Variable]]] = None
    state_vars: Optional[List[Optional[Named]]] = None


class Case(Shape):
    output_port_id: Optional[str] = None


class IfElseConfig(Shape):
    cases: Optional[List[Optional[Case]]] = None
    fallback: Optional[Case] = None


class ContentPart(Shape):
    text: Any = None


class Message(Shape):
    role: Optional[str] = None
    content: Union[str, List[Optional[ContentPart]], None] = None


class Reasoning(Shape):
    effort: Optional[str] = None
    summary: Optional[str] = None


class FunctionSpec(Shape):
    name: Optional[str] = None
    parameters: Optional[JsonSchema] = None


class Tool(Shape):
    type: Optional[str] = None
    name: Optional[str] = None
    function: Optional[FunctionSpec] = None
    parameters: Optional[JsonSchema] = None
    search_context_size: Optional[str] = None


class OutputFormat(Shape):
    type: Optional[str] = None
    json_schema: Optional[JsonSchema] = Field(default=None, alias="schema")


class OutputText(Shape):
    format: Optional[OutputFormat] = None


class AgentConfig(Shape):
    reasoning: Optional[Reasoning] = None
    messages: Optional[List[Optional[Message]]] = None
    tools: Optional[List[Optional[Tool]]] = None
    text: Optional[OutputText] = None


class KeyedExpression(Shape):
    key: Optional[str] = None


class TransformConfig(Shape):
    outputKind: Optional[str] = None
    expressions: Optional[List[Optional[KeyedExpression]]] = None


class SetStateConfig(Shape):
    assignments: Optional[List[Optional[Named]]] = None


class FileSearchConfig(Shape):
    max_results: Optional[int] = None


class McpConfig(Shape):
    transportType: Optional[str] = None
    toolName: Optional[str] = None
    authType: Optional[str] = None


class GuardrailSettings(Shape):
    categories: Optional[List[str]] = None
    entities: Optional[List[str]] = None
    model: Optional[str] = None
    confidence_threshold: Optional[float] = None


class Guardrail(Shape):
    type: Optional[str] = None
    config: Optional[GuardrailSettings] = None


class GuardrailsConfig(Shape):
    guardrails: Optional[List[Optional[Guardrail]]] = None


CONFIG_SHAPES: Dict[str, Type[Shape]] = {
    "start": StartConfig,
    "if-else": IfElseConfig,
    "agent": AgentConfig,
    "transform": TransformConfig,
    "set-state": SetStateConfig,
    "file-search": FileSearchConfig,
    "mcp": McpConfig,
    "guardrails": GuardrailsConfig,
}
