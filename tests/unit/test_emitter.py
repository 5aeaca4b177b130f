"""
Tests for workflow_compiler.codegen.emitter.

Tests cover:
- Module skeleton, imports and settings-driven names
- Agent declarations, tools, output schemas and runs
- Branch emission for if/else, user approval and guardrails
- Loops, continue placement and indentation composition
- Data-flow nodes: transform, set state, file search, MCP
- Configuration errors raised while emitting
"""

import ast

import pytest

from workflow_compiler.codegen.emitter import CodeEmitter
from workflow_compiler.config import Settings
from workflow_compiler.errors import MissingConfigError
from workflow_compiler.graph.models import Graph, parse_graph
from workflow_compiler.graph.validator import validate
from workflow_compiler.structure.resolver import StructureResolver


def emit_code(builder, settings=None):
    report = validate(parse_graph(builder.to_dict()))
    tree = StructureResolver(report).resolve()
    code = CodeEmitter(report.graph, settings or Settings()).emit(tree)
    ast.parse(code)
    return code


def chain(builder, node_id, node_type, port="out", label=None, **config):
    """start -> node -> end."""
    builder.node("start", "start").node(node_id, node_type, label, **config).node("end", "end")
    return builder.edge("start", "out", node_id).edge(node_id, port, "end")


# ============================================================================
# MODULE SKELETON
# ============================================================================

class TestSkeleton:
    def test_minimal_module(self, minimal):
        code = emit_code(minimal)
        assert code.startswith("from agents import TResponseInputItem\nfrom pydantic import BaseModel\n")
        assert "class WorkflowInput(BaseModel):\n  input_as_text: str\n\n\n# Main code entrypoint\n" in code
        assert "async def run_workflow(workflow_input: WorkflowInput):\n  state = {}\n" in code
        assert code.endswith("  return workflow\n")

    def test_settings_rename_entrypoint_and_input_model(self, minimal):
        code = emit_code(minimal, Settings(entrypoint_name="main", input_model_name="Payload"))
        assert "class Payload(BaseModel):" in code
        assert "async def main(workflow_input: Payload):" in code

    def test_entrypoint_name_is_not_reused_for_nodes(self, builder):
        chain(builder, "a", "agent", port="on_result", label="main", model="gpt-5")
        code = emit_code(builder, Settings(entrypoint_name="main"))
        assert "async def main(" in code
        assert "main1 = Agent(" in code

    def test_declared_input_variables(self, builder):
        variables = [{"name": "topic", "type": "string"}, {"name": "count", "type": "integer"}]
        builder.node("start", "start", input_variables=variables).node("end", "end")
        builder.edge("start", "out", "end")

        code = emit_code(builder)
        assert "class WorkflowInput(BaseModel):\n  topic: str\n  count: int\n" in code
        assert "conversation_history: list[TResponseInputItem] = []" in code

    def test_invalid_input_variable(self, builder):
        builder.node("start", "start", input_variables=[{"name": "bad name"}]).node("end", "end")
        builder.edge("start", "out", "end")
        with pytest.raises(MissingConfigError):
            emit_code(builder)

    def test_keyword_input_variable(self, builder):
        builder.node("start", "start", input_variables=[{"name": "class"}]).node("end", "end")
        builder.edge("start", "out", "end")
        with pytest.raises(MissingConfigError, match="invalid input variable 'class'"):
            emit_code(builder)

    def test_template_variables_may_be_called_name(self):
        emitter = CodeEmitter(Graph(), Settings())
        assert emitter.render("model_class", name="Thing", fields=[]) == "class Thing(BaseModel):\n  pass"

    def test_initial_state(self, builder):
        builder.node("start", "start", state_vars=[{"name": "count", "default": 0}, {"name": "tags", "default": ["a"]}])
        builder.node("end", "end").edge("start", "out", "end")

        code = emit_code(builder)
        assert '  state = {\n    "count": 0,\n    "tags": [\n      "a"\n    ]\n  }\n' in code

    def test_emission_is_deterministic(self, builder, if_else_config):
        builder.node("start", "start").node("c", "if-else", **if_else_config)
        builder.node("a", "agent", model="gpt-5").node("b", "agent", model="gpt-5").node("end", "end")
        builder.edge("start", "out", "c").edge("c", "case-0", "a").edge("c", "case-1", "b")
        builder.edge("c", "fallback", "end").edge("a", "on_result", "end").edge("b", "on_result", "end")

        assert emit_code(builder) == emit_code(builder)


# ============================================================================
# AGENTS
# ============================================================================

class TestAgents:
    def test_declaration_and_run(self, builder):
        chain(builder, "a", "agent", port="on_result", label="Research Agent",
              model="gpt-5", instructions="Find facts.")
        code = emit_code(builder)

        assert "from agents import Agent, ModelSettings, TResponseInputItem, Runner, RunConfig" in code
        assert "from openai.types.shared.reasoning import Reasoning" in code
        assert 'research_agent = Agent(\n  name="Research Agent",\n  instructions="Find facts.",\n  model="gpt-5",\n' in code
        assert '      effort="low"\n' in code
        assert "  research_agent_result_temp = await Runner.run(\n    research_agent,\n" in code
        assert '"output_text": research_agent_result_temp.final_output_as(str)' in code
        assert code.endswith("  return research_agent_result\n")

    def test_model_expression_is_unquoted(self, builder):
        chain(builder, "a", "agent", port="on_result", model={"expression": '"gpt-4o"'})
        assert 'model="gpt-4o",' in emit_code(builder)

    def test_reasoning_settings(self, builder):
        chain(builder, "a", "agent", port="on_result", model="o3",
              reasoning={"effort": "high", "summary": "auto"})
        assert '      effort="high",\n      summary="auto"\n' in emit_code(builder)

    def test_reasoning_values_are_string_literals(self, builder):
        chain(builder, "a", "agent", port="on_result", model="o3",
              reasoning={"effort": 'x"y', "summary": "a\\b"})
        code = emit_code(builder)
        assert '      effort="x\\"y",\n      summary="a\\\\b"\n' in code

    def test_default_reasoning_effort_from_settings(self, builder):
        chain(builder, "a", "agent", port="on_result", model="o3")
        assert 'effort="medium"' in emit_code(builder, Settings(default_reasoning_effort="medium"))

    def test_default_labels_are_numbered(self, builder):
        builder.node("start", "start").node("a", "agent", model="gpt-5").node("b", "agent", model="gpt-5")
        builder.node("end", "end")
        builder.edge("start", "out", "a").edge("a", "on_result", "b").edge("b", "on_result", "end")

        code = emit_code(builder)
        assert "agent = Agent(" in code
        assert "agent1 = Agent(" in code
        assert "    *conversation_history\n" in code
        assert code.endswith("  return agent1_result\n")

    def test_messages_follow_conversation_history(self, builder):
        messages = [{"role": "user", "content": "Be brief."}, {"role": "assistant", "content": "Ok."}]
        chain(builder, "a", "agent", port="on_result", model="gpt-5", messages=messages)
        code = emit_code(builder)

        assert "    *conversation_history,\n" in code
        assert '"text": "Be brief."' in code
        assert '"type": "output_text"' in code

    def test_tools(self, builder):
        tools = [
            {"type": "function", "name": "lookup", "parameters": {
                "properties": {"query": {"type": "string"}, "limit": {"type": "integer"}},
            }},
            {"type": "web_search"},
        ]
        chain(builder, "a", "agent", port="on_result", model="gpt-5", tools=tools)
        code = emit_code(builder)

        assert "from agents import WebSearchTool, function_tool, Agent," in code
        assert "# Tool definitions\n@function_tool\ndef lookup(query: str, limit: int):\n  pass\n" in code
        assert "web_search_preview = WebSearchTool(" in code
        assert '  search_context_size="medium",' in code
        assert "  tools=[\n    lookup,\n    web_search_preview\n  ],\n" in code
        assert "    parallel_tool_calls=True,\n" in code

    def test_invalid_function_tool_name(self, builder):
        chain(builder, "a", "agent", port="on_result", model="gpt-5", tools=[{"type": "function", "name": "not valid"}])
        with pytest.raises(MissingConfigError):
            emit_code(builder)

    def test_tool_parameter_must_be_a_python_name(self, builder):
        tools = [{"type": "function", "name": "lookup", "parameters": {"properties": {"first-name": {"type": "string"}}}}]
        chain(builder, "a", "agent", port="on_result", model="gpt-5", tools=tools)
        with pytest.raises(MissingConfigError, match="parameter 'first-name'"):
            emit_code(builder)

    def test_keyword_function_tool_name(self, builder):
        chain(builder, "a", "agent", port="on_result", model="gpt-5", tools=[{"type": "function", "name": "lambda"}])
        with pytest.raises(MissingConfigError, match="invalid name 'lambda'"):
            emit_code(builder)

    def test_tool_name_keeps_its_name_and_agent_moves(self, builder):
        chain(builder, "a", "agent", port="on_result", model="gpt-5", tools=[{"type": "function", "name": "agent"}])
        code = emit_code(builder)

        assert "@function_tool\ndef agent():\n  pass\n" in code
        assert "agent1 = Agent(" in code
        assert "  tools=[\n    agent\n  ],\n" in code
        assert "    agent1,\n" in code
        assert code.endswith("  return agent1_result\n")

    @pytest.mark.parametrize("name", ["state", "Agent", "transform_result"])
    def test_tool_name_taken_by_module(self, builder, name):
        builder.node("start", "start").node("a", "agent", model="gpt-5", tools=[{"type": "function", "name": name}])
        builder.node("t", "transform").node("end", "end")
        builder.edge("start", "out", "a").edge("a", "on_result", "t").edge("t", "out", "end")
        with pytest.raises(MissingConfigError, match=f"function tool named '{name}'"):
            emit_code(builder)

    def test_shared_tool_is_defined_once(self, builder):
        tools = [{"type": "function", "name": "lookup"}]
        builder.node("start", "start").node("a", "agent", model="gpt-5", tools=tools)
        builder.node("b", "agent", model="gpt-5", tools=tools).node("end", "end")
        builder.edge("start", "out", "a").edge("a", "on_result", "b").edge("b", "on_result", "end")

        code = emit_code(builder)
        assert code.count("def lookup(") == 1
        assert code.count("    lookup\n") == 2

    def test_schema_property_must_be_a_python_name(self, builder):
        schema = {"type": "object", "properties": {"first-name": {"type": "string"}}}
        chain(builder, "a", "agent", port="on_result", model="gpt-5",
              text={"format": {"type": "json_schema", "schema": schema}})
        with pytest.raises(MissingConfigError, match="output schema property 'first-name'"):
            emit_code(builder)

    def test_nested_schema_classes_get_unique_names(self, builder):
        nested = {"type": "object", "properties": {"score": {"type": "number"}}}
        schema = {"type": "object", "properties": {"meta": nested, "Meta": nested}}
        chain(builder, "a", "agent", port="on_result", label="Writer", model="gpt-5",
              text={"format": {"type": "json_schema", "schema": schema}})
        code = emit_code(builder)

        assert "class WriterSchemaMeta(BaseModel):" in code
        assert "class WriterSchemaMeta1(BaseModel):" in code
        assert "  meta: WriterSchemaMeta\n  Meta: WriterSchemaMeta1\n" in code

    def test_structured_output(self, builder):
        schema = {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "tags": {"type": "array", "items": {"type": "string"}},
                "meta": {"type": "object", "properties": {"score": {"type": "number"}}},
                "blob": {},
            },
        }
        chain(builder, "a", "agent", port="on_result", label="Writer", model="gpt-5",
              text={"format": {"type": "json_schema", "schema": schema}})
        code = emit_code(builder)

        assert "from typing import Any" in code
        assert "class WriterSchemaMeta(BaseModel):\n  score: float\n" in code
        assert "class WriterSchema(BaseModel):\n  title: str\n  tags: list[str]\n  meta: WriterSchemaMeta\n  blob: Any\n" in code
        assert code.index("class WriterSchemaMeta(") < code.index("class WriterSchema(")
        assert "  output_type=WriterSchema,\n" in code
        assert '"output_text": writer_result_temp.final_output.json(),' in code
        assert '"output_parsed": writer_result_temp.final_output.model_dump()' in code

    def test_missing_model(self, builder):
        chain(builder, "a", "agent", port="on_result", instructions="Hi")
        with pytest.raises(MissingConfigError, match="has no model configured"):
            emit_code(builder)


# ============================================================================
# BRANCHES
# ============================================================================

class TestBranches:
    def test_if_else_arms_in_port_order(self, builder, if_else_config):
        builder.node("start", "start").node("c", "if-else", **if_else_config)
        builder.node("e1", "end").node("e2", "end").node("e3", "end")
        builder.edge("start", "out", "c").edge("c", "case-0", "e1").edge("c", "case-1", "e2").edge("c", "fallback", "e3")

        code = emit_code(builder)
        expected = (
            '  if workflow["input_as_text"] == "a":\n'
            "    return workflow\n"
            '  elif workflow["input_as_text"] == "b":\n'
            "    return workflow\n"
            "  else:\n"
            "    return workflow\n"
        )
        assert code.endswith(expected)
        assert code.count("  elif ") == 1
        assert code.count("  else:") == 1

    def test_empty_predicate(self, builder):
        config = {"cases": [{"output_port_id": "yes", "predicate": {"expression": "  "}}]}
        builder.node("start", "start").node("c", "if-else", **config).node("e1", "end").node("e2", "end")
        builder.edge("start", "out", "c").edge("c", "yes", "e1").edge("c", "fallback", "e2")

        with pytest.raises(MissingConfigError, match="empty predicate"):
            emit_code(builder)

    def test_empty_arm_emits_pass(self, builder):
        config = {"cases": [{"output_port_id": "yes", "predicate": {"expression": "state.ok"}}]}
        builder.node("start", "start").node("c", "if-else", **config)
        builder.node("x", "transform").node("j", "set-state").node("end", "end")
        builder.edge("start", "out", "c").edge("c", "yes", "x").edge("c", "fallback", "j")
        builder.edge("x", "out", "j").edge("j", "out", "end")

        code = emit_code(builder)
        assert '  if state["ok"]:\n    transform_result = {}\n  else:\n    pass\n  return workflow\n' in code

    def test_user_approval(self, builder):
        builder.node("start", "start").node("u", "user-approval", message="Continue?")
        builder.node("ok", "end").node("no", "end")
        builder.edge("start", "out", "u").edge("u", "approval", "ok").edge("u", "reject", "no")

        code = emit_code(builder)
        assert "def approval_request(message: str):\n  # TODO: Implement\n  return True\n" in code
        assert '  approval_message = "Continue?"\n\n  if approval_request(approval_message):\n' in code

    def test_guardrails_pass_and_fail(self, builder):
        builder.node("start", "start")
        builder.node("g", "guardrails", guardrails=[{"type": "jailbreak", "config": {}}])
        builder.node("ok", "end").node("bad", "end")
        builder.edge("start", "out", "g").edge("g", "pass", "ok").edge("g", "fail", "bad")

        code = emit_code(builder)
        assert "guardrails_config = {" in code
        assert '"name": "Jailbreak"' in code
        assert '"model": "gpt-4o-mini"' in code
        assert '"confidence_threshold": 0.7' in code
        assert "try:" not in code
        assert "  if not guardrails_hastripwire:\n    return guardrails_output\n  else:\n    return guardrails_output\n" in code

    def test_guardrails_pass_and_error(self, builder):
        builder.node("start", "start").node("g", "guardrails", continue_on_error=True)
        builder.node("ok", "end").node("err", "end")
        builder.edge("start", "out", "g").edge("g", "pass", "ok").edge("g", "error", "err")

        code = emit_code(builder)
        assert "  guardrails_errorresult = None\n  try:\n    guardrails_inputtext = " in code
        assert "  if guardrails_errorresult is None:\n    return guardrails_output\n  else:\n    return guardrails_errorresult\n" in code

    def test_guardrails_pass_only_runs_inline(self, builder):
        chain(builder, "g", "guardrails", port="pass", expr={"expression": "state.text"})
        code = emit_code(builder)

        assert '  guardrails_inputtext = state["text"]\n' in code
        body = code.split("# Main code entrypoint")[1]
        assert "if " not in body
        assert code.endswith("  return guardrails_output\n")


# ============================================================================
# LOOPS
# ============================================================================

class TestLoops:
    def test_simple_loop(self, builder):
        builder.node("start", "start").node("w", "while", condition={"expression": "state.n < 3"})
        builder.node("s", "set-state", assignments=[{"name": "n", "expression": {"expression": "state.n + 1"}}])
        builder.node("end", "end")
        builder.edge("start", "out", "w").edge("w", "out", "s").edge("s", "out", "w", target_handle="dummy-in")
        builder.edge("w", "exit", "end")

        code = emit_code(builder)
        assert '  while state["n"] < 3:\n    state["n"] = state["n"] + 1\n  return workflow\n' in code
        assert "continue" not in code

    def test_continue_before_end_of_body(self, builder):
        inner = {"cases": [{"output_port_id": "skip", "predicate": {"expression": "state.skip"}}]}
        outer = {"cases": [{"output_port_id": "check", "predicate": {"expression": "state.n == 1"}}]}
        builder.node("start", "start").node("w", "while", condition={"expression": "state.n < 3"})
        builder.node("a", "if-else", **outer).node("b", "if-else", **inner)
        builder.node("c", "set-state", assignments=[{"name": "n", "expression": {"expression": "state.n + 1"}}])
        builder.node("end", "end")
        builder.edge("start", "out", "w").edge("w", "out", "a")
        builder.edge("a", "check", "b").edge("a", "fallback", "c")
        builder.edge("b", "skip", "w", target_handle="dummy-in").edge("b", "fallback", "c")
        builder.edge("c", "out", "w", target_handle="dummy-in").edge("w", "exit", "end")

        code = emit_code(builder)
        expected = (
            '  while state["n"] < 3:\n'
            '    if state["n"] == 1:\n'
            '      if state["skip"]:\n'
            "        continue\n"
            "      else:\n"
            "        pass\n"
            "    else:\n"
            "      pass\n"
            '    state["n"] = state["n"] + 1\n'
            "  return workflow\n"
        )
        assert code.endswith(expected)

    def test_nested_loops_indent_per_level(self, builder):
        builder.node("start", "start")
        builder.node("w1", "while", condition={"expression": "state.i < 2"})
        builder.node("w2", "while", condition={"expression": "state.j < 2"})
        builder.node("t", "transform", expr={"expression": "state.j"}).node("end", "end")
        builder.edge("start", "out", "w1").edge("w1", "out", "w2").edge("w2", "out", "t")
        builder.edge("t", "out", "w2", target_handle="dummy-in")
        builder.edge("w2", "exit", "w1", target_handle="dummy-in")
        builder.edge("w1", "exit", "end")

        code = emit_code(builder)
        assert '  while state["i"] < 2:\n    while state["j"] < 2:\n      transform_result = state["j"]\n  return workflow\n' in code

    def test_empty_condition(self, builder):
        builder.node("start", "start").node("w", "while").node("t", "transform").node("end", "end")
        builder.edge("start", "out", "w").edge("w", "out", "t").edge("t", "out", "w", target_handle="dummy-in")
        builder.edge("w", "exit", "end")

        with pytest.raises(MissingConfigError, match="empty condition"):
            emit_code(builder)


# ============================================================================
# DATA FLOW NODES
# ============================================================================

class TestDataFlow:
    def test_transform_expression_reads_previous_result(self, builder):
        builder.node("start", "start").node("a", "agent", model="gpt-5")
        builder.node("t", "transform", expr={"expression": "input.output_text"}).node("end", "end")
        builder.edge("start", "out", "a").edge("a", "on_result", "t").edge("t", "out", "end")

        code = emit_code(builder)
        assert '  transform_result = agent_result["output_text"]\n  return transform_result\n' in code

    def test_transform_key_value_mapping(self, builder):
        expressions = [
            {"key": "title", "expression": {"expression": "input.output_text"}},
            {"key": "count", "expression": "1"},
        ]
        chain(builder, "t", "transform", outputKind="expressions", expressions=expressions)
        code = emit_code(builder)
        assert '  transform_result = {\n    "title": workflow["output_text"],\n    "count": 1\n  }\n' in code

    def test_set_state_keeps_provenance(self, builder):
        chain(builder, "s", "set-state", assignments=[
            {"name": "a", "expression": {"expression": "true"}},
            {"name": "b", "expression": {"expression": "input.input_as_text"}},
        ])
        code = emit_code(builder)
        assert '  state["a"] = True\n  state["b"] = workflow["input_as_text"]\n  return workflow\n' in code

    def test_set_state_without_name(self, builder):
        chain(builder, "s", "set-state", assignments=[{"expression": {"expression": "1"}}])
        with pytest.raises(MissingConfigError, match="no variable name"):
            emit_code(builder)

    def test_set_state_without_expression(self, builder):
        chain(builder, "s", "set-state", assignments=[{"name": "a"}])
        with pytest.raises(MissingConfigError, match="without an expression"):
            emit_code(builder)

    def test_file_search(self, builder):
        chain(builder, "f", "file-search", port="on_result", vector_store_id="vs_1", query="docs")
        code = emit_code(builder)

        assert "from openai import AsyncOpenAI" in code
        assert "# Shared client for guardrails and file search\nclient = AsyncOpenAI()" in code
        assert 'vector_store_id="vs_1", query="docs", max_num_results=10' in code
        assert code.endswith("  return filesearch_result\n")

    def test_mcp_stdio(self, builder):
        chain(builder, "m", "mcp", transportType="stdio", serverUrl="server.py", toolName="echo")
        code = emit_code(builder)

        assert "from mcp.client import Client, StdioClientTransport, SSEClientTransport" in code
        assert "  # MCP Client initialization (Stdio)\n  mcp_transport = StdioClientTransport(" in code
        assert '"server.py"' in code
        assert '    name="echo",\n    arguments={}\n' in code

    def test_mcp_custom_headers(self, builder):
        chain(builder, "m", "mcp", url="http://x", toolName="echo", authType="custom",
              customHeaders='{"X-Key": "abc"}')
        assert '"X-Key": "abc"' in emit_code(builder)

    def test_mcp_api_key(self, builder):
        chain(builder, "m", "mcp", url="http://x", toolName="echo", authType="api_key", apiKey="k1")
        assert '"Authorization": "Api-Key k1"' in emit_code(builder)

    def test_mcp_without_tool_name(self, builder):
        chain(builder, "m", "mcp", url="http://x")
        with pytest.raises(MissingConfigError, match="toolName"):
            emit_code(builder)

    def test_mcp_invalid_parameters(self, builder):
        chain(builder, "m", "mcp", url="http://x", toolName="echo", parameters="{not json")
        with pytest.raises(MissingConfigError, match="not valid JSON"):
            emit_code(builder)

    def test_end_expression(self, builder):
        chain(builder, "s", "set-state", assignments=[{"name": "x", "expression": {"expression": "1"}}])
        builder.nodes[-1]["config"] = {"expr": {"expression": "state.x"}}
        assert emit_code(builder).endswith('  return state["x"]\n')
