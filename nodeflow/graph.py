"""Graph loading and validation.

Graphs are plain data: a start node and a map of nodes, each with
instructions, outcomes pointing at successor nodes (or ``None`` to end the
conversation), and optional actions. The serialized form is::

    {
        "start_node": "identify_issue",
        "nodes": {
            "identify_issue": {
                "name": "Identify issue",
                "instructions": "Greet the customer and ask what went wrong.",
                "actions": {"on_enter": [{"type": "db_write", "table": "conversations"}]},
                "outcomes": {
                    "issue_identified": {"description": "...", "next": "determine_type"},
                },
            },
        },
    }

Validation runs once at load time; a graph that passes is never re-checked
during execution.
"""

from __future__ import annotations

import json
import logging
import tomllib
from collections import deque
from pathlib import Path
from typing import Any

from nodeflow.errors import DanglingReference, GraphError, MissingStartNode
from nodeflow.models import Action, Graph, Node, NodeActions, Outcome

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_action(raw: Any, where: str) -> Action:
    if not isinstance(raw, dict) or not raw.get("type"):
        raise GraphError(f"{where}: every action needs a 'type'")
    config = {k: v for k, v in raw.items() if k != "type"}
    # Also accept an explicit nested config block
    if set(config) == {"config"} and isinstance(config["config"], dict):
        config = dict(config["config"])
    return Action(type=str(raw["type"]), config=config)


def _parse_actions(raw: Any, node_id: str) -> NodeActions:
    if not raw:
        return NodeActions()
    if not isinstance(raw, dict):
        raise GraphError(f"Node '{node_id}': 'actions' must be a mapping")

    on_enter = tuple(
        _parse_action(a, f"Node '{node_id}' on_enter") for a in raw.get("on_enter") or []
    )
    on_outcome: dict[str, tuple[Action, ...]] = {}
    for key, actions in (raw.get("on_outcome") or {}).items():
        on_outcome[key] = tuple(
            _parse_action(a, f"Node '{node_id}' on_outcome.{key}") for a in actions or []
        )
    return NodeActions(on_enter=on_enter, on_outcome=on_outcome)


def _parse_node(node_id: str, raw: Any) -> Node:
    if not isinstance(raw, dict):
        raise GraphError(f"Node '{node_id}' must be a mapping")

    declared_id = raw.get("id", node_id)
    if declared_id != node_id:
        raise GraphError(f"Node key '{node_id}' does not match its id '{declared_id}'")

    outcomes: dict[str, Outcome] = {}
    for key, out in (raw.get("outcomes") or {}).items():
        if isinstance(out, str) or out is None:
            # shorthand: "outcome_key": "next_node"
            outcomes[key] = Outcome(key=key, next=out)
            continue
        if not isinstance(out, dict):
            raise GraphError(f"Node '{node_id}': outcome '{key}' must be a mapping")
        outcomes[key] = Outcome(
            key=key,
            description=str(out.get("description", "")),
            next=out.get("next"),
        )

    return Node(
        id=node_id,
        name=str(raw.get("name", "")),
        instructions=str(raw.get("instructions", "")),
        outcomes=outcomes,
        actions=_parse_actions(raw.get("actions"), node_id),
        requires_user_input=bool(raw.get("requires_user_input", False)),
    )


def parse_graph(data: dict) -> Graph:
    """Build a Graph from its serialized form without validating references."""
    if not isinstance(data, dict):
        raise GraphError("Graph definition must be a mapping")
    raw_nodes = data.get("nodes")
    if not isinstance(raw_nodes, dict):
        raise GraphError("Graph definition needs a 'nodes' mapping")

    start = data.get("start_node", data.get("start_node_id"))
    nodes = {node_id: _parse_node(node_id, raw) for node_id, raw in raw_nodes.items()}
    return Graph(start_node_id=start, nodes=nodes)


def load_graph(data: dict) -> Graph:
    """Parse and validate a graph. Warnings are logged, errors raised."""
    graph = parse_graph(data)
    for warning in validate(graph):
        logger.warning(f"Graph: {warning}")
    return graph


def read_graph_data(path: str | Path) -> dict:
    """Read the raw graph mapping from a .json or .toml file."""
    path = Path(path)
    if not path.exists():
        raise GraphError(f"Graph file not found: {path}")

    if path.suffix == ".toml":
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise GraphError(f"Invalid TOML in {path}: {e}") from e
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise GraphError(f"Invalid JSON in {path}: {e}") from e


def load_graph_file(path: str | Path) -> Graph:
    """Load and validate a graph from a .json or .toml file."""
    logger.info(f"Loading graph from {path}")
    return load_graph(read_graph_data(path))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def reachable_nodes(graph: Graph) -> set[str]:
    """Node ids reachable from the start node by following outcomes."""
    if graph.start_node_id not in graph.nodes:
        return set()
    seen = {graph.start_node_id}
    queue = deque([graph.start_node_id])
    while queue:
        node = graph.nodes[queue.popleft()]
        for outcome in node.outcomes.values():
            if outcome.next is not None and outcome.next in graph.nodes and outcome.next not in seen:
                seen.add(outcome.next)
                queue.append(outcome.next)
    return seen


def validate(graph: Graph) -> list[str]:
    """Check structural invariants. Raises GraphError; returns non-fatal warnings.

    Errors: missing start node, an outcome pointing at an unknown node, or
    on_outcome actions bound to an outcome the node does not define.
    Warnings: nodes with no outcomes (a conversation entering one can never
    progress) and nodes unreachable from the start node.
    """
    if not graph.start_node_id or graph.start_node_id not in graph.nodes:
        raise MissingStartNode(graph.start_node_id)

    warnings: list[str] = []
    for node_id, node in graph.nodes.items():
        for key, outcome in node.outcomes.items():
            if outcome.next is not None and outcome.next not in graph.nodes:
                raise DanglingReference(node_id, key, outcome.next)

        for key in node.actions.on_outcome:
            if key not in node.outcomes:
                raise GraphError(
                    f"Node '{node_id}' binds actions to undefined outcome '{key}'"
                )

        if not node.outcomes:
            warnings.append(f"node '{node_id}' has no outcomes and can never progress")

    reachable = reachable_nodes(graph)
    for node_id in graph.nodes:
        if node_id not in reachable:
            warnings.append(f"node '{node_id}' is unreachable from '{graph.start_node_id}'")

    return warnings
