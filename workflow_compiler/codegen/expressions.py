"""Translate the canvas' CEL-style expressions into Python source."""

import re

from workflow_compiler.errors import ExpressionError

_STRING = re.compile(r'"(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\\n])*\'')
_ACCESS = re.compile(r"(?<![\w.\]])(workflow|state|input)\b((?:\s*\.\s*[A-Za-z_]\w*)*)")
_MEMBER = re.compile(r"\.\s*([A-Za-z_]\w*)")
_LITERALS = {
    "true": "True",
    "false": "False",
    "null": "None",
    "undefined": "None",
}
_LITERAL = re.compile(r"(?<![\w.])(true|false|null|undefined)\b")


def to_python(expression, input_var: str = "workflow") -> str:
    """Rewrite ``expression``; ``input.*`` reads from ``input_var``.

    String literals are copied unchanged.
    """
    if expression is None:
        return ""
    if not isinstance(expression, str):
        expression = str(expression)
    expression = expression.strip()
    if not expression:
        return ""

    parts = []
    position = 0
    for match in _STRING.finditer(expression):
        parts.append(_convert_code(expression[position:match.start()], input_var, expression))
        parts.append(match.group(0))
        position = match.end()
    parts.append(_convert_code(expression[position:], input_var, expression))
    return "".join(parts).strip()


def _convert_code(code: str, input_var: str, expression: str) -> str:
    if not code:
        return code
    if '"' in code or "'" in code:
        raise ExpressionError(f"Unterminated string literal in expression: {expression}")

    code = re.sub(r"\s*&&\s*", " and ", code)
    code = re.sub(r"\s*\|\|\s*", " or ", code)
    code = re.sub(r"!(?!=)\s*", "not ", code)
    code = _LITERAL.sub(lambda m: _LITERALS[m.group(1)], code)
    code = re.sub(r"(?<![\w.])size\s*\(", "len(", code)

    def access(match):
        root = input_var if match.group(1) == "input" else match.group(1)
        members = _MEMBER.findall(match.group(2))
        trailing = ""
        # obj.method(...) keeps its last member as a call
        if members and code[match.end():].lstrip().startswith("("):
            trailing = "." + members.pop()
        return root + "".join(f'["{name}"]' for name in members) + trailing

    return _ACCESS.sub(access, code)


def is_trivial(expression) -> bool:
    """Empty or an empty-object placeholder."""
    if expression is None:
        return True
    text = str(expression).strip()
    return text in ("", "{}")
