"""Walk a structured tree and emit the Agents SDK module source."""

import json
from typing import Any, Dict, List, Optional, Tuple

import structlog

from workflow_compiler.codegen import expressions
from workflow_compiler.codegen.indentation import (
    IndentationContext,
    apply,
    get_context,
    replace_placeholders,
)
from workflow_compiler.codegen.naming import NameTable, function_tool_name, is_python_name, pascal_case
from workflow_compiler.codegen.templates import Raw, create_environment, python_value, quote
from workflow_compiler.config import Settings, get_settings
from workflow_compiler.errors import MissingConfigError, UnsupportedNodeError
from workflow_compiler.graph.handles import outbound_ports
from workflow_compiler.graph.models import Graph, Node
from workflow_compiler.structure.tree import (
    Action,
    Branch,
    Continue,
    Loop,
    Sequence,
    Terminal,
    graph_nodes,
)

logger = structlog.get_logger(__name__)

JSON_TYPES = {
    "string": "str",
    "number": "float",
    "integer": "int",
    "boolean": "bool",
    "array": "list",
    "object": "dict",
}

GUARDRAIL_NAMES = {
    "moderation": "Moderation",
    "pii": "Contains PII",
    "jailbreak": "Jailbreak",
}


def _text(config: Dict[str, Any], key: str, default: str = "") -> str:
    """Config value that may be a plain string or ``{"expression": ...}``."""
    value = config.get(key)
    if isinstance(value, dict):
        value = value.get("expression")
    if value is None:
        return default
    return str(value).strip()


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def _json_object(value: Any, what: str, node: Node) -> Dict[str, Any]:
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise MissingConfigError(
                f"{what} of node '{node.id}' is not valid JSON: {e}", node_id=node.id
            ) from e
    if not isinstance(value, dict):
        raise MissingConfigError(f"{what} of node '{node.id}' must be a JSON object", node_id=node.id)
    return value


class CodeEmitter:
    """Emits one module per tree. Instances are single-use."""

    def __init__(self, graph: Graph, settings: Optional[Settings] = None):
        self.graph = graph
        self.settings = settings or get_settings()
        self.env = create_environment()
        self.names: Optional[NameTable] = None
        self._uses_any = False

    def render(self, template_name: str, /, **context) -> str:
        return self.env.get_template(template_name).render(**context).rstrip("\n")

    def emit(self, tree: Sequence) -> str:
        if not tree.steps or not isinstance(tree.steps[0], Action) or tree.steps[0].node.type != "start":
            raise UnsupportedNodeError("Structured tree must begin with the start node")

        seen = {node.id for node in graph_nodes(tree)}
        nodes = [node for node in self.graph.nodes if node.id in seen]
        self.names = NameTable(
            nodes, reserved=(self.settings.entrypoint_name, self.settings.input_model_name)
        )

        start = tree.steps[0].node
        input_fields = self._input_fields(start)
        context = get_context(1)

        prelude = apply(self.render(
            "start",
            state=self._initial_state(start),
            input_text=any(field["name"] == "input_as_text" for field in input_fields),
        ), context.total_level)
        body, _ = self._emit_steps(Sequence(tree.steps[1:]), context, "workflow", loop_tail=False)
        entrypoint = replace_placeholders(
            self.render(
                "entrypoint",
                entrypoint=self.settings.entrypoint_name,
                input_model=self.settings.input_model_name,
            ),
            {"BODY": prelude + "\n" + body if body else prelude},
        )

        declarations = self._declarations(nodes)
        input_model = self.render("model_class", name=self.settings.input_model_name, fields=input_fields)
        sections = [self._imports(nodes)] + declarations + [input_model]
        code = "\n\n".join(section for section in sections if section) + "\n\n\n" + entrypoint + "\n"

        logger.debug("code_emitted", nodes=len(nodes), lines=code.count("\n"))
        return code

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _emit_steps(
        self, sequence: Sequence, context: IndentationContext, var: str, loop_tail: bool
    ) -> Tuple[str, str]:
        blocks = []
        for index, step in enumerate(sequence.steps):
            tail = loop_tail and index == len(sequence.steps) - 1
            block, var = self._emit_step(step, context, var, tail)
            if block:
                blocks.append(block)
        return "\n".join(blocks), var

    def _emit_block(self, sequence: Sequence, context: IndentationContext, var: str, loop_tail: bool) -> Tuple[str, str]:
        text, var = self._emit_steps(sequence, context, var, loop_tail)
        return text or apply("pass", context.total_level), var

    def _emit_step(self, step, context: IndentationContext, var: str, tail: bool) -> Tuple[str, str]:
        if isinstance(step, Continue):
            return ("" if tail else apply("continue", context.total_level)), var
        if isinstance(step, Terminal):
            return apply(self._end(step.node, var), context.total_level), var
        if isinstance(step, Loop):
            return self._loop(step, context, var), var
        if isinstance(step, Branch):
            return self._branch(step, context, var, tail)

        handler = getattr(self, "_" + step.node.type.replace("-", "_"), None)
        if handler is None:
            raise UnsupportedNodeError(
                f"No template for node '{step.node.id}' of type '{step.node.type}'",
                node_id=step.node.id,
            )
        text, out_var = handler(step.node, var)
        return apply(text, context.total_level) if text else "", out_var

    def _loop(self, loop: Loop, context: IndentationContext, var: str) -> str:
        node = loop.node
        condition = expressions.to_python(_text(node.config, "condition"), var)
        if not condition:
            raise MissingConfigError(f"While node '{node.id}' has an empty condition", node_id=node.id)

        body, _ = self._emit_block(loop.body, context.nested(), var, loop_tail=True)
        header = apply(self.render("while", condition=condition), context.total_level)
        return replace_placeholders(header, {"BODY": body})

    def _branch(self, branch: Branch, context: IndentationContext, var: str, tail: bool) -> Tuple[str, str]:
        node = branch.node
        arm_tail = tail and branch.converges_at is None
        if node.type == "if-else":
            preamble, headers = "", self._if_else_headers(node, var)
            arm_vars = {port: var for port, _ in branch.cases}
        elif node.type == "user-approval":
            names = self.names[node.id]
            preamble = self.render(
                "user_approval",
                message_var=names["message"],
                message=_text(node.config, "message"),
            )
            headers = [f"if {names.var}({names['message']}):", "else:"]
            arm_vars = {port: var for port, _ in branch.cases}
        elif node.type == "guardrails":
            preamble, headers, arm_vars = self._guardrails_branch(node, var)
        else:
            raise UnsupportedNodeError(
                f"Node '{node.id}' of type '{node.type}' cannot branch", node_id=node.id
            )

        arms = [
            {"header": header, "slot": f"ARM_{index}"}
            for index, header in enumerate(headers)
        ]
        conditional = self.render("conditional", arms=arms)
        text = replace_placeholders(preamble, {"CONDITIONAL": conditional}) if preamble else conditional
        text = apply(text, context.total_level)

        children = {}
        out_vars = []
        for index, (port, arm) in enumerate(branch.cases):
            block, arm_var = self._emit_block(arm, context.nested(), arm_vars[port], arm_tail)
            children[f"ARM_{index}"] = block
            if arm.falls_through:
                out_vars.append(arm_var)

        out_var = out_vars[0] if out_vars and len(set(out_vars)) == 1 else var
        return replace_placeholders(text, children), out_var

    def _if_else_headers(self, node: Node, var: str) -> List[str]:
        headers = []
        for index, case in enumerate(node.config.get("cases") or []):
            if not (case or {}).get("output_port_id"):
                continue
            predicate = expressions.to_python(_text(case, "predicate"), var)
            if not predicate:
                raise MissingConfigError(
                    f"If/else node '{node.id}' case {index} has an empty predicate",
                    node_id=node.id, port=case["output_port_id"],
                )
            keyword = "if" if not headers else "elif"
            headers.append(f"{keyword} {predicate}:")
        headers.append("else:")
        return headers

    def _guardrails_checks(self, node: Node, var: str) -> str:
        names = self.names[node.id]
        input_expr = expressions.to_python(_text(node.config, "expr") or "workflow.input_as_text", var)
        checks = self.render(
            "guardrails_checks", n=names.extra, input_expr=input_expr, config_var=names.var,
        )
        if not node.config.get("continue_on_error"):
            return checks
        guarded = self.render("guardrails_guarded", n=names.extra)
        return replace_placeholders(guarded, {"CHECKS": apply(checks, 1)})

    def _guardrails_branch(self, node: Node, var: str):
        names = self.names[node.id]
        error, tripwire = names["errorresult"], names["hastripwire"]
        ports = outbound_ports(node.type, node.config)

        conditions = {
            ("pass", "fail"): [f"if not {tripwire}:", "else:"],
            ("pass", "error"): [f"if {error} is None:", "else:"],
            ("pass", "error", "fail"): [
                f"if {error} is None and not {tripwire}:",
                f"elif {error} is not None:",
                "else:",
            ],
        }
        arm_vars = {"pass": names["output"], "fail": names["output"], "error": error}
        preamble = self._guardrails_checks(node, var) + "\n{CONDITIONAL}"
        return preamble, conditions[ports], arm_vars

    # ------------------------------------------------------------------
    # Single-continuation nodes
    # ------------------------------------------------------------------

    def _agent(self, node: Node, var: str) -> Tuple[str, str]:
        names = self.names[node.id]
        messages = [self._message(message) for message in node.config.get("messages") or []]
        text = self.render(
            "agent",
            var=names.var,
            temp=names.temp,
            result=names.result,
            messages=[message for message in messages if message],
            structured=self._output_schema(node) is not None,
        )
        return text, names.result

    def _message(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        message = message or {}
        role = message.get("role") or "user"
        content = message.get("content")
        if isinstance(content, list):
            content = " ".join(str((part or {}).get("text", "")) for part in content)
        if not content:
            return None
        kind = "output_text" if role == "assistant" else "input_text"
        return {"role": role, "content": [{"type": kind, "text": str(content)}]}

    def _guardrails(self, node: Node, var: str) -> Tuple[str, str]:
        # Only reached when "pass" is the sole outcome
        return self._guardrails_checks(node, var), self.names[node.id]["output"]

    def _if_else(self, node: Node, var: str) -> Tuple[str, str]:
        return "", var

    def _transform(self, node: Node, var: str) -> Tuple[str, str]:
        config = node.config
        result = self.names[node.id].result
        if config.get("outputKind") == "expressions" and config.get("expressions"):
            mapping = {}
            for item in config["expressions"]:
                key = (item or {}).get("key")
                if key:
                    mapping[key] = Raw(expressions.to_python(_text(item, "expression"), var) or "None")
            value = python_value(mapping)
        else:
            expr = _text(config, "expr")
            value = "{}" if expressions.is_trivial(expr) else expressions.to_python(expr, var)
        return self.render("transform", result=result, value=value), result

    def _set_state(self, node: Node, var: str) -> Tuple[str, str]:
        assignments = []
        for index, assignment in enumerate(node.config.get("assignments") or []):
            name = ((assignment or {}).get("name") or "").strip()
            if not name:
                raise MissingConfigError(
                    f"Set state node '{node.id}' assignment {index} has no variable name",
                    node_id=node.id,
                )
            value = expressions.to_python(_text(assignment, "expression"), var)
            if not value:
                raise MissingConfigError(
                    f"Set state node '{node.id}' assigns '{name}' without an expression",
                    node_id=node.id,
                )
            assignments.append((name, value))
        if not assignments:
            return "", var
        return self.render("set_state", assignments=assignments), var

    def _file_search(self, node: Node, var: str) -> Tuple[str, str]:
        config = node.config
        result = self.names[node.id].result
        text = self.render(
            "file_search",
            result=result,
            vector_store_id=config.get("vector_store_id") or "",
            query=_text(config, "query"),
            max_results=int(config.get("max_results") or 10),
        )
        return text, result

    def _mcp(self, node: Node, var: str) -> Tuple[str, str]:
        config = node.config
        names = self.names[node.id]
        tool_name = (config.get("toolName") or "").strip()
        if not tool_name:
            raise MissingConfigError(f"MCP node '{node.id}' has no toolName configured", node_id=node.id)

        text = self.render(
            "mcp",
            transport_type=config.get("transportType") or "http",
            transport=names["transport"],
            client=names["client"],
            result=names.result,
            url=config.get("url") or "",
            server_url=config.get("serverUrl") or "",
            headers=self._mcp_headers(node),
            tool_name=tool_name,
            arguments=_json_object(config.get("parameters"), "MCP parameters", node),
        )
        return text, names.result

    def _mcp_headers(self, node: Node) -> Dict[str, Any]:
        config = node.config
        auth_type = config.get("authType") or "none"
        if auth_type == "api_key" and config.get("apiKey"):
            return {"Authorization": f"Api-Key {config['apiKey']}"}
        if auth_type == "bearer" and config.get("bearerToken"):
            return {"Authorization": f"Bearer {config['bearerToken']}"}
        if auth_type == "custom":
            return _json_object(config.get("customHeaders"), "MCP custom headers", node)
        return {}

    def _end(self, node: Node, var: str) -> str:
        expr = _text(node.config, "expr")
        value = var if expressions.is_trivial(expr) else expressions.to_python(expr, var)
        return self.render("end", value=value)

    # ------------------------------------------------------------------
    # Module level
    # ------------------------------------------------------------------

    def _imports(self, nodes: List[Node]) -> str:
        types = {node.type for node in nodes}
        agents = [node for node in nodes if node.type == "agent"]
        tools = [tool or {} for node in agents for tool in node.config.get("tools") or []]

        lines = []
        if "mcp" in types:
            lines.append("from mcp.client import Client, StdioClientTransport, SSEClientTransport")
        if "file-search" in types or "guardrails" in types:
            lines.append("from openai import AsyncOpenAI")
            lines.append("from types import SimpleNamespace")
        if "guardrails" in types:
            lines.append("from guardrails.runtime import load_config_bundle, instantiate_guardrails, run_guardrails")
        if self._uses_any:
            lines.append("from typing import Any")

        if agents:
            names = []
            if any(tool.get("type") == "web_search" for tool in tools):
                names.append("WebSearchTool")
            if any(tool.get("type", "function") == "function" for tool in tools):
                names.append("function_tool")
            names += ["Agent", "ModelSettings", "TResponseInputItem", "Runner", "RunConfig"]
            lines.append(f"from agents import {', '.join(names)}")
            lines.append("from openai.types.shared.reasoning import Reasoning")
        else:
            lines.append("from agents import TResponseInputItem")
        lines.append("from pydantic import BaseModel")
        return "\n".join(lines)

    def _declarations(self, nodes: List[Node]) -> List[str]:
        agents = [node for node in nodes if node.type == "agent"]
        guardrails = [node for node in nodes if node.type == "guardrails"]

        tool_defs = self._tool_definitions(agents)
        schemas = [model for node in agents for model in self._schema_models(node)]
        sections = [
            "# Tool definitions\n" + "\n\n".join(tool_defs) if tool_defs else "",
        ]
        if guardrails or any(node.type == "file-search" for node in nodes):
            sections.append(self.render("shared_client"))
        if guardrails:
            configs = [
                self.render("guardrails_config", var=self.names[node.id].var, bundle=self._guardrails_bundle(node))
                for node in guardrails
            ]
            sections.append("# Guardrails definitions\n" + "\n".join(configs))
            sections.append(self.render("guardrails_utils"))
        sections.append("\n\n".join(schemas))
        sections.append("\n\n".join(self._agent_declaration(node) for node in agents))
        sections.append("\n\n".join(
            self.render("approval_request", name=self.names[node.id].var)
            for node in nodes if node.type == "user-approval"
        ))
        return sections

    def _tool_definitions(self, agents: List[Node]) -> List[str]:
        definitions = []
        seen = set()
        for node in agents:
            for index, tool in enumerate(node.config.get("tools") or []):
                tool = tool or {}
                if tool.get("type") == "web_search":
                    definitions.append(self.render(
                        "web_search_tool",
                        var=self.names.web_search_tool(f"{node.id}:{index}"),
                        search_context_size=tool.get("search_context_size") or "medium",
                        user_location=tool.get("user_location") or {"type": "approximate"},
                    ))
                    continue
                name, parameters = self._function_tool(node, tool)
                if name in seen:
                    continue
                seen.add(name)
                params = []
                for key, spec in (parameters.get("properties") or {}).items():
                    self._check_name(node, key, f"function tool '{name}' parameter")
                    params.append(f"{key}: {JSON_TYPES.get((spec or {}).get('type'), 'str')}")
                definitions.append(self.render("function_tool", name=name, params=params))
        return definitions

    @staticmethod
    def _check_name(node: Node, name: str, what: str) -> None:
        if not is_python_name(name):
            raise MissingConfigError(
                f"Agent node '{node.id}' has {what} '{name}' that is not a valid Python name",
                node_id=node.id,
            )

    def _function_tool(self, node: Node, tool: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        function = tool.get("function") or {}
        name = function_tool_name(tool)
        if not is_python_name(name):
            raise MissingConfigError(
                f"Agent node '{node.id}' has a function tool with invalid name '{name}'",
                node_id=node.id,
            )
        parameters = tool.get("parameters") or function.get("parameters") or {}
        return name, parameters

    def _agent_declaration(self, node: Node) -> str:
        config = node.config
        names = self.names[node.id]
        model = _unquote(_text(config, "model"))
        if not model:
            raise MissingConfigError(f"Agent node '{node.id}' has no model configured", node_id=node.id)

        tools = []
        for index, tool in enumerate(config.get("tools") or []):
            tool = tool or {}
            if tool.get("type") == "web_search":
                tools.append(self.names.web_search_tool(f"{node.id}:{index}"))
            else:
                tools.append(self._function_tool(node, tool)[0])

        reasoning = config.get("reasoning") or {}
        reasoning_args = [f"effort={quote(reasoning.get('effort') or self.settings.default_reasoning_effort)}"]
        if reasoning.get("summary"):
            reasoning_args.append(f"summary={quote(reasoning['summary'])}")

        return self.render(
            "agent_declaration",
            var=names.var,
            name=(node.label or "").strip() or "Agent",
            instructions=_unquote(_text(config, "instructions")),
            model=model,
            tools=tools,
            output_type=names.schema if self._output_schema(node) is not None else None,
            parallel_tool_calls=bool(config.get("parallel_tool_calls", True)),
            reasoning=reasoning_args,
        )

    def _output_schema(self, node: Node) -> Optional[Dict[str, Any]]:
        fmt = (node.config.get("text") or {}).get("format") or {}
        if fmt.get("type") != "json_schema":
            return None
        schema = fmt.get("schema") or {}
        return schema if schema.get("type", "object") == "object" else None

    def _schema_models(self, node: Node) -> List[str]:
        schema = self._output_schema(node)
        if schema is None:
            return []
        models: List[str] = []
        self._model_class(node, self.names[node.id].schema, schema, models)
        return models

    def _model_class(self, node: Node, class_name: str, schema: Dict[str, Any], models: List[str]) -> None:
        """Append ``class_name`` to ``models`` after any nested classes it needs."""
        fields = []
        for key, spec in (schema.get("properties") or {}).items():
            self._check_name(node, key, "output schema property")
            fields.append({"name": key, "type": self._field_type(node, class_name, key, spec or {}, models)})
        models.append(self.render("model_class", name=class_name, fields=fields))

    def _field_type(self, node: Node, parent: str, key: str, spec: Dict[str, Any], models: List[str]) -> str:
        kind = spec.get("type")
        if kind == "object" and spec.get("properties"):
            nested = self.names.claim(f"{parent}{pascal_case(key)}")
            self._model_class(node, nested, spec, models)
            return nested
        if kind == "array":
            items = spec.get("items") or {}
            if items.get("type") == "object" and items.get("properties"):
                nested = self.names.claim(f"{parent}{pascal_case(key)}Item")
                self._model_class(node, nested, items, models)
                return f"list[{nested}]"
            if items.get("type") in JSON_TYPES:
                return f"list[{JSON_TYPES[items['type']]}]"
            return "list"
        if kind in JSON_TYPES:
            return JSON_TYPES[kind]
        self._uses_any = True
        return "Any"

    def _guardrails_bundle(self, node: Node) -> Dict[str, Any]:
        entries = []
        for guardrail in node.config.get("guardrails") or []:
            guardrail = guardrail or {}
            kind = guardrail.get("type")
            config = guardrail.get("config") or {}
            if kind == "moderation":
                settings = {"categories": list(config.get("categories") or [])}
            elif kind == "pii":
                settings = {"block": config.get("block") is True, "entities": list(config.get("entities") or [])}
            elif kind == "jailbreak":
                settings = {
                    "model": config.get("model") or "gpt-4o-mini",
                    "confidence_threshold": config.get("confidence_threshold") or 0.7,
                }
            else:
                settings = dict(config)
            entries.append({"name": GUARDRAIL_NAMES.get(kind, kind or "Unknown"), "config": settings})
        return {"guardrails": entries}

    def _input_fields(self, start: Node) -> List[Dict[str, str]]:
        fields = []
        for variable in start.config.get("input_variables") or []:
            name = ((variable or {}).get("name") or "").strip()
            if not is_python_name(name):
                raise MissingConfigError(
                    f"Start node '{start.id}' declares invalid input variable '{name}'",
                    node_id=start.id,
                )
            fields.append({"name": name, "type": JSON_TYPES.get(variable.get("type"), "str")})
        return fields or [{"name": "input_as_text", "type": "str"}]

    def _initial_state(self, start: Node) -> Dict[str, Any]:
        state = {}
        for variable in start.config.get("state_vars") or []:
            name = ((variable or {}).get("name") or "").strip()
            if not name:
                raise MissingConfigError(
                    f"Start node '{start.id}' declares a state variable without a name",
                    node_id=start.id,
                )
            state[name] = variable.get("default")
        return state


def emit(graph: Graph, tree: Sequence, settings: Optional[Settings] = None) -> str:
    return CodeEmitter(graph, settings).emit(tree)
