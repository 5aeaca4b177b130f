"""Deterministic variable naming for generated code."""

import keyword
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from workflow_compiler.errors import MissingConfigError
from workflow_compiler.graph.models import Node

# Names the module skeleton defines or uses itself.
RESERVED = (
    "workflow", "workflow_input", "state", "conversation_history", "client",
    "ctx", "item", "result", "run_workflow", "WorkflowInput", "BaseModel",
    "Agent", "Runner", "ModelSettings", "Reasoning", "WebSearchTool",
    "function_tool", "guardrails_has_tripwire", "get_guardrail_checked_text",
    "build_guardrail_fail_output", "Any", "AsyncOpenAI", "SimpleNamespace",
    "TResponseInputItem", "Client", "StdioClientTransport", "SSEClientTransport",
    "load_config_bundle", "instantiate_guardrails", "run_guardrails", "RunConfig",
)

DEFAULT_LABELS = {
    "agent": "Agent",
    "guardrails": "Guardrails",
}


def snake_case(text: str) -> str:
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", text)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1).lower()
    return re.sub(r"[^a-z0-9]+", "_", s2).strip("_")


def pascal_case(text: str) -> str:
    words = re.split(r"[^A-Za-z0-9]+", text)
    return "".join(word[:1].upper() + word[1:] for word in words if word)


def is_python_name(text: str) -> bool:
    return text.isidentifier() and not keyword.iskeyword(text)


def function_tool_name(tool: Dict) -> str:
    return (tool.get("name") or (tool.get("function") or {}).get("name") or "").strip()


def identifier(text: str, fallback: str) -> str:
    name = snake_case(text or "") or fallback
    if not name.isidentifier():
        name = f"{fallback}_{name}"
    if keyword.iskeyword(name):
        name += "_"
    return name


class NameAllocator:
    """Hands out unique identifiers: ``base``, then ``base1``, ``base2``..."""

    def __init__(self, reserved: Iterable[str] = RESERVED):
        self._taken = set(reserved)

    def is_taken(self, name: str) -> bool:
        return name in self._taken

    def reserve(self, name: str) -> None:
        self._taken.add(name)

    def claim(self, base: str) -> str:
        name = base
        counter = 1
        while name in self._taken:
            name = f"{base}{counter}"
            counter += 1
        self._taken.add(name)
        return name


def _suffix(index: int) -> str:
    return "" if index == 0 else str(index)


@dataclass
class NodeNames:
    """Identifiers bound for one graph node."""
    var: Optional[str] = None
    result: Optional[str] = None
    temp: Optional[str] = None
    schema: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

    def __getitem__(self, key: str) -> str:
        return self.extra[key]


class NameTable:
    """Names for every emitted node, assigned once in document order.

    Fixed families (``guardrails_*``, ``approval_*``, ``transform_result``,
    ``filesearch_result``, ``mcp_*``) are numbered per node type. Label
    derived names (agents, guardrail configs, output schemas) are claimed
    afterwards, custom labels before default ones. Function tool names are
    reserved in between and are never renamed.
    """

    def __init__(self, nodes: List[Node], reserved: Iterable[str] = ()):
        self._allocator = NameAllocator((*RESERVED, *reserved))
        self._names: Dict[str, NodeNames] = {}
        self._tools: Dict[str, str] = {}

        counters: Dict[str, int] = {}
        for node in nodes:
            index = counters.get(node.type, 0)
            names = self._family_names(node, _suffix(index))
            if names is not None:
                counters[node.type] = index + 1
                self._names[node.id] = names

        self._reserve_tools(nodes)

        labelled = [node for node in nodes if node.type in DEFAULT_LABELS]
        custom = [node for node in labelled if not self._is_default_label(node)]
        default = [node for node in labelled if self._is_default_label(node)]
        for node in custom + default:
            self._names[node.id] = self._label_names(node)

    def __getitem__(self, node_id: str) -> NodeNames:
        return self._names[node_id]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._names

    def claim(self, base: str) -> str:
        return self._allocator.claim(base)

    def web_search_tool(self, key: str) -> str:
        if key not in self._tools:
            self._tools[key] = self._allocator.claim("web_search_preview")
        return self._tools[key]

    @staticmethod
    def _is_default_label(node: Node) -> bool:
        label = (node.label or "").strip()
        return not label or label == DEFAULT_LABELS[node.type]

    def _reserve_tools(self, nodes: List[Node]) -> None:
        """Function tools are emitted under their own name, so nothing else may take it."""
        tools = set()
        for node in nodes:
            if node.type != "agent":
                continue
            for tool in node.config.get("tools") or []:
                tool = tool or {}
                name = function_tool_name(tool)
                if tool.get("type") == "web_search" or name in tools or not is_python_name(name):
                    continue
                if self._allocator.is_taken(name):
                    raise MissingConfigError(
                        f"Agent node '{node.id}' has a function tool named '{name}', "
                        f"which the generated module already uses",
                        node_id=node.id,
                    )
                self._allocator.reserve(name)
                tools.add(name)

    def _reserve_all(self, names: NodeNames) -> NodeNames:
        for name in (names.var, names.result, names.temp, *names.extra.values()):
            if name:
                self._allocator.reserve(name)
        return names

    def _family_names(self, node: Node, s: str) -> Optional[NodeNames]:
        if node.type == "guardrails":
            return self._reserve_all(NodeNames(extra={
                "inputtext": f"guardrails_inputtext{s}",
                "result": f"guardrails_result{s}",
                "hastripwire": f"guardrails_hastripwire{s}",
                "anonymizedtext": f"guardrails_anonymizedtext{s}",
                "output": f"guardrails_output{s}",
                "errorresult": f"guardrails_errorresult{s}",
                "error": f"guardrails_error{s}",
            }))
        if node.type == "user-approval":
            return self._reserve_all(NodeNames(
                var=f"approval_request{s}",
                extra={"message": f"approval_message{s}"},
            ))
        if node.type == "transform":
            return self._reserve_all(NodeNames(result=f"transform_result{s}"))
        if node.type == "file-search":
            return self._reserve_all(NodeNames(result=f"filesearch_result{s}"))
        if node.type == "mcp":
            return self._reserve_all(NodeNames(
                result=f"mcp_result{s}",
                extra={"transport": f"mcp_transport{s}", "client": f"mcp_client{s}"},
            ))
        return None

    def _label_names(self, node: Node) -> NodeNames:
        label = (node.label or "").strip() or DEFAULT_LABELS[node.type]
        if node.type == "agent":
            var = self._allocator.claim(identifier(label, "agent"))
            return NodeNames(
                var=var,
                result=self._allocator.claim(f"{var}_result"),
                temp=self._allocator.claim(f"{var}_result_temp"),
                schema=self._allocator.claim(f"{pascal_case(var)}Schema"),
            )

        names = self._names[node.id]
        names.var = self._allocator.claim(f"{identifier(label, 'guardrails')}_config")
        return names
