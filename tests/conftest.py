"""
Pytest configuration and fixtures for the workflow-compiler project.
"""

import json
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from workflow_compiler.config import Settings


class WorkflowBuilder:
    """Fluent helper for assembling canvas documents in tests."""

    def __init__(self):
        self.nodes = []
        self.edges = []

    def node(self, node_id, node_type, label=None, **config):
        entry = {"id": node_id, "type": node_type, "config": config}
        if label is not None:
            entry["label"] = label
        self.nodes.append(entry)
        return self

    def edge(self, source, source_handle, target, target_handle="in", edge_id=None):
        self.edges.append({
            "id": edge_id or f"e{len(self.edges)}",
            "source": source,
            "sourceHandle": source_handle,
            "target": target,
            "targetHandle": target_handle,
        })
        return self

    def to_dict(self):
        return {"nodes": list(self.nodes), "edges": list(self.edges)}

    def to_json(self):
        return json.dumps(self.to_dict())


@pytest.fixture
def builder():
    return WorkflowBuilder()


@pytest.fixture
def minimal(builder):
    """start -> end."""
    return builder.node("start", "start").node("end", "end").edge("start", "out", "end")


@pytest.fixture
def if_else_config():
    return {
        "cases": [
            {"label": "first", "output_port_id": "case-0", "predicate": {"expression": "workflow.input_as_text == \"a\""}},
            {"label": "second", "output_port_id": "case-1", "predicate": {"expression": "workflow.input_as_text == \"b\""}},
        ],
        "fallback": {"output_port_id": "fallback"},
    }


@pytest.fixture
def settings():
    return Settings()
