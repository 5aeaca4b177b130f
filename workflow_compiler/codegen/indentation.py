"""Indentation bookkeeping for nested template output.

Emission threads an explicit ``IndentationContext`` through its recursion.
Child blocks are rendered at ``context.nested()`` and arrive already
indented; ``replace_placeholders`` splices them in verbatim.
"""

import re
from dataclasses import dataclass
from typing import Mapping

INDENT_UNIT = 2

_PLACEHOLDER_LINE = re.compile(r"^[ \t]*\{([A-Z][A-Z0-9_]*)\}[ \t]*$")


@dataclass(frozen=True)
class IndentationContext:
    base_level: int = 0
    relative_level: int = 0

    @property
    def total_level(self) -> int:
        return self.base_level + self.relative_level

    @property
    def base_indent(self) -> int:
        return self.base_level * INDENT_UNIT

    @property
    def relative_indent(self) -> int:
        return self.relative_level * INDENT_UNIT

    @property
    def total_indent(self) -> int:
        return self.base_indent + self.relative_indent

    def nested(self, levels: int = 1) -> "IndentationContext":
        return IndentationContext(self.base_level, self.relative_level + levels)


def get_context(base_level: int, relative_level: int = 0) -> IndentationContext:
    return IndentationContext(base_level, relative_level)


def indent_string(level: int) -> str:
    return " " * (level * INDENT_UNIT)


def apply(text: str, level: int, skip_first_line: bool = False, preserve_empty_lines: bool = True) -> str:
    """Prefix every non-blank line of ``text`` with ``level`` indent units.

    Blank lines stay empty; with ``preserve_empty_lines=False`` they are
    dropped instead.
    """
    if not text.strip():
        return text
    if text.startswith("\n"):
        text = text[1:]

    prefix = indent_string(level)
    lines = []
    for index, line in enumerate(text.split("\n")):
        if not line.strip():
            if preserve_empty_lines:
                lines.append("")
            continue
        if skip_first_line and index == 0:
            lines.append(line)
        else:
            lines.append(prefix + line)
    return "\n".join(lines)


def remove_base_indent(text: str, level: int) -> str:
    if not text.strip():
        return text
    prefix = indent_string(level)
    return "\n".join(
        line[len(prefix):] if line.startswith(prefix) else line
        for line in text.split("\n")
    )


def replace_placeholders(template: str, values: Mapping[str, str]) -> str:
    """Swap each ``{NAME}`` line of ``template`` for ``values[NAME]``.

    Only lines consisting of nothing but the placeholder are candidates, and
    substituted text is not scanned again, so braces inside injected code are
    never mistaken for placeholders. An empty value removes the line.
    """
    lines = []
    for line in template.split("\n"):
        match = _PLACEHOLDER_LINE.match(line)
        if match and match.group(1) in values:
            content = values[match.group(1)]
            if content:
                lines.append(content)
            continue
        lines.append(line)
    return "\n".join(lines)
