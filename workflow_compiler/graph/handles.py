"""Port (handle) definitions per node type.

Static ports are fixed per type; branching types derive their outbound ports
from configuration. Everything here is a pure function of ``(type, config)``.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

IN = "in"
OUT = "out"
ON_RESULT = "on_result"
LOOP_BACK = "dummy-in"
LOOP_EXIT = "exit"
DEFAULT_FALLBACK = "fallback"

NODE_HANDLES: Dict[str, Dict[str, Any]] = {
    "start": {"in": None, "out": (OUT,)},
    "end": {"in": IN, "out": ()},
    "agent": {"in": IN, "out": (ON_RESULT,)},
    "transform": {"in": IN, "out": (OUT,)},
    "set-state": {"in": IN, "out": (OUT,)},
    "mcp": {"in": IN, "out": (OUT,)},
    "file-search": {"in": IN, "out": (ON_RESULT,)},
    "if-else": {"in": IN, "out": None},
    "while": {"in": IN, "out": (OUT, LOOP_EXIT), "loop_back": LOOP_BACK},
    "user-approval": {"in": IN, "out": ("approval", "reject")},
    "guardrails": {"in": IN, "out": None},
    "note": {"in": None, "out": ()},
}

NODE_TYPES = frozenset(NODE_HANDLES)


def _if_else_ports(config: Mapping[str, Any]) -> Tuple[str, ...]:
    ports = []
    for case in config.get("cases") or []:
        port = (case or {}).get("output_port_id")
        if port:
            ports.append(port)
    fallback = (config.get("fallback") or {}).get("output_port_id") or DEFAULT_FALLBACK
    ports.append(fallback)
    return tuple(ports)


def _guardrails_ports(config: Mapping[str, Any]) -> Tuple[str, ...]:
    ports = ["pass"]
    if config.get("continue_on_error"):
        ports.append("error")
    if config.get("guardrails"):
        ports.append("fail")
    return tuple(ports)


def outbound_ports(node_type: str, config: Optional[Mapping[str, Any]] = None) -> Tuple[str, ...]:
    """Ordered outbound ports; the order is the branch emission order."""
    config = config or {}
    if node_type == "if-else":
        return _if_else_ports(config)
    if node_type == "guardrails":
        return _guardrails_ports(config)
    handles = NODE_HANDLES.get(node_type)
    if handles is None:
        return ()
    return handles["out"]


def inbound_port(node_type: str) -> Optional[str]:
    handles = NODE_HANDLES.get(node_type)
    return handles["in"] if handles else None


def loop_back_port(node_type: str) -> Optional[str]:
    handles = NODE_HANDLES.get(node_type) or {}
    return handles.get("loop_back")


def is_branching(node_type: str, config: Optional[Mapping[str, Any]] = None) -> bool:
    if node_type == "while":
        return False
    return len(outbound_ports(node_type, config)) > 1
