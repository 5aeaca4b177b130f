"""jinja2 template catalog for the generated Agents SDK module.

Templates render at indentation level 0 with two-space units. A line made of
a single ``{NAME}`` placeholder marks where an already-indented child block is
spliced in by ``indentation.replace_placeholders``.
"""

import json
from typing import Any

import jinja2

from workflow_compiler.codegen.indentation import INDENT_UNIT


class Raw(str):
    """Python source that ``py`` must emit verbatim."""


def quote(value: Any) -> str:
    """Double-quoted Python string literal."""
    return json.dumps("" if value is None else str(value), ensure_ascii=False)


def python_value(value: Any, level: int = 0) -> str:
    """Render JSON-like data as a Python literal, one item per line."""
    if isinstance(value, Raw):
        return str(value)
    if isinstance(value, bool):
        return "True" if value else "False"
    if value is None:
        return "None"
    if isinstance(value, str):
        return quote(value)
    if isinstance(value, (int, float)):
        return json.dumps(value)

    inner = " " * ((level + 1) * INDENT_UNIT)
    outer = " " * (level * INDENT_UNIT)
    if isinstance(value, dict):
        if not value:
            return "{}"
        items = [f"{inner}{quote(key)}: {python_value(item, level + 1)}" for key, item in value.items()]
        return "{\n" + ",\n".join(items) + f"\n{outer}}}"
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        items = [f"{inner}{python_value(item, level + 1)}" for item in value]
        return "[\n" + ",\n".join(items) + f"\n{outer}]"
    return quote(value)


TEMPLATES = {
    # ------------------------------------------------------------------
    # Module level
    # ------------------------------------------------------------------
    "function_tool": """\
@function_tool
def {{ name }}({{ params|join(", ") }}):
  pass
""",
    "web_search_tool": """\
{{ var }} = WebSearchTool(
  search_context_size={{ search_context_size|quote }},
  user_location={{ user_location|py(1) }}
)
""",
    "shared_client": """\
# Shared client for guardrails and file search
client = AsyncOpenAI()
ctx = SimpleNamespace(guardrail_llm=client)
""",
    "guardrails_config": """\
{{ var }} = {{ bundle|py }}
""",
    "guardrails_utils": """\
# Guardrails utils
def guardrails_has_tripwire(results):
  return any(getattr(r, "tripwire_triggered", False) is True for r in (results or []))


def get_guardrail_checked_text(results, fallback_text):
  for r in (results or []):
    info = getattr(r, "info", None) or {}
    if isinstance(info, dict) and ("checked_text" in info):
      return info.get("checked_text") or fallback_text
  return fallback_text


def build_guardrail_fail_output(results):
  failures = []
  for r in (results or []):
    if getattr(r, "tripwire_triggered", False):
      info = getattr(r, "info", None) or {}
      failure = {
        "guardrail_name": info.get("guardrail_name"),
      }
      for key in ("flagged", "confidence", "threshold", "hallucination_type", "hallucinated_statements", "verified_statements"):
        if key in (info or {}):
          failure[key] = info.get(key)
      failures.append(failure)
  return {"failed": len(failures) > 0, "failures": failures}
""",
    "model_class": """\
class {{ name }}(BaseModel):
{% for field in fields %}
  {{ field.name }}: {{ field.type }}
{% else %}
  pass
{% endfor %}
""",
    "agent_declaration": """\
{{ var }} = Agent(
  name={{ name|quote }},
  instructions={{ instructions|quote }},
  model={{ model|quote }},
{% if tools %}
  tools=[
{% for tool in tools %}
    {{ tool }}{{ "," if not loop.last else "" }}
{% endfor %}
  ],
{% endif %}
{% if output_type %}
  output_type={{ output_type }},
{% endif %}
  model_settings=ModelSettings(
{% if tools %}
    parallel_tool_calls={{ parallel_tool_calls|py }},
{% endif %}
    store=True,
    reasoning=Reasoning(
{% for arg in reasoning %}
      {{ arg }}{{ "," if not loop.last else "" }}
{% endfor %}
    )
  )
)
""",
    "approval_request": """\
def {{ name }}(message: str):
  # TODO: Implement
  return True
""",
    "entrypoint": """\
# Main code entrypoint
async def {{ entrypoint }}(workflow_input: {{ input_model }}):
{BODY}
""",

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------
    "start": """\
state = {{ state|py }}
workflow = workflow_input.model_dump()
{% if input_text %}
conversation_history: list[TResponseInputItem] = [
  {
    "role": "user",
    "content": [
      {
        "type": "input_text",
        "text": workflow["input_as_text"]
      }
    ]
  }
]
{% else %}
conversation_history: list[TResponseInputItem] = []
{% endif %}
""",
    "agent": """\
{{ temp }} = await Runner.run(
  {{ var }},
  input=[
    *conversation_history{{ "," if messages else "" }}
{% for message in messages %}
    {{ message|py(2) }}{{ "," if not loop.last else "" }}
{% endfor %}
  ]
)

conversation_history.extend([item.to_input_item() for item in {{ temp }}.new_items])

{{ result }} = {
{% if structured %}
  "output_text": {{ temp }}.final_output.json(),
  "output_parsed": {{ temp }}.final_output.model_dump()
{% else %}
  "output_text": {{ temp }}.final_output_as(str)
{% endif %}
}
""",
    "conditional": """\
{% for arm in arms %}
{{ arm.header }}
{{ "{" ~ arm.slot ~ "}" }}
{% endfor %}
""",
    "user_approval": """\
{{ message_var }} = {{ message|quote }}

{CONDITIONAL}
""",
    "while": """\
while {{ condition }}:
{BODY}
""",
    "guardrails_checks": """\
{{ n.inputtext }} = {{ input_expr }}
{{ n.result }} = await run_guardrails(ctx, {{ n.inputtext }}, "text/plain", instantiate_guardrails(load_config_bundle({{ config_var }})), suppress_tripwire=True)
{{ n.hastripwire }} = guardrails_has_tripwire({{ n.result }})
{{ n.anonymizedtext }} = get_guardrail_checked_text({{ n.result }}, {{ n.inputtext }})
{{ n.output }} = ({{ n.hastripwire }} and build_guardrail_fail_output({{ n.result }} or [])) or ({{ n.anonymizedtext }} or {{ n.inputtext }})
""",
    "guardrails_guarded": """\
{{ n.errorresult }} = None
try:
{CHECKS}
except Exception as {{ n.error }}:
  {{ n.errorresult }} = {
    "message": getattr({{ n.error }}, "message", "Unknown error"),
  }
""",
    "file_search": """\
{{ result }} = { "results": [
  {
    "id": result.file_id,
    "filename": result.filename,
    "score": result.score,
  } for result in (await client.vector_stores.search(vector_store_id={{ vector_store_id|quote }}, query={{ query|quote }}, max_num_results={{ max_results }})).data
]}
""",
    "mcp": """\
{% if transport_type == "stdio" %}
# MCP Client initialization (Stdio)
{{ transport }} = StdioClientTransport(
  command="python",
  args={{ [server_url]|py(1) }}
)
{% else %}
# MCP Client initialization (HTTP/SSE)
{{ transport }} = SSEClientTransport(
  url={{ url|quote }},
  headers={{ headers|py(1) }}
)
{% endif %}
{{ client }} = Client(transport={{ transport }})
await {{ client }}.initialize()

# Call MCP tool
{{ result }} = await {{ client }}.call_tool(
  name={{ tool_name|quote }},
  arguments={{ arguments|py(1) }}
)

# Close connection
await {{ client }}.close()
""",
    "transform": """\
{{ result }} = {{ value }}
""",
    "set_state": """\
{% for name, value in assignments %}
state[{{ name|quote }}] = {{ value }}
{% endfor %}
""",
    "end": """\
return {{ value }}
""",
}


def create_environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.DictLoader(TEMPLATES),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
        undefined=jinja2.StrictUndefined,
        autoescape=False,
    )
    env.filters["quote"] = quote
    env.filters["py"] = python_value
    return env
