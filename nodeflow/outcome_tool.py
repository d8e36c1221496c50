"""Build the per-node select_outcome tool."""

from __future__ import annotations

import json

from nodeflow.models import Node, ToolCall, ToolDef

SELECT_OUTCOME = "select_outcome"


def build_outcome_tool(node: Node) -> ToolDef:
    """Return a select_outcome tool whose enum is exactly the node's outcome keys.

    Providers enforce enum membership on structured tool arguments, so the
    model can only pick a transition that is legal at this node.
    """
    keys = list(node.outcomes)
    lines = [f"- {key}: {outcome.description}" for key, outcome in node.outcomes.items()]
    return ToolDef(
        name=SELECT_OUTCOME,
        description="Select the result of the current step:\n" + "\n".join(lines),
        parameters={
            "type": "object",
            "properties": {
                "outcome": {
                    "type": "string",
                    "enum": keys,
                    "description": "The selected outcome",
                },
            },
            "required": ["outcome"],
        },
        guidance="Reply to the user first, then call select_outcome once the current step is done.",
    )


def selected_outcome(tool_call: ToolCall) -> object:
    """Pull the outcome argument out of a select_outcome call (may be any type)."""
    args = tool_call.args
    if isinstance(args, str):
        # some providers hand back the raw JSON string
        try:
            args = json.loads(args)
        except json.JSONDecodeError:
            return None
    if not isinstance(args, dict):
        return None
    return args.get("outcome")
