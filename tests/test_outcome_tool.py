"""Test select_outcome tool construction."""

from pathlib import Path

from nodeflow.graph import load_graph_file
from nodeflow.models import Node, Outcome, ToolCall
from nodeflow.outcome_tool import SELECT_OUTCOME, build_outcome_tool, selected_outcome

EXAMPLE_GRAPH = Path(__file__).resolve().parent.parent / "examples" / "support_desk.json"


def test_enum_is_exactly_the_node_outcomes():
    graph = load_graph_file(EXAMPLE_GRAPH)
    for node in graph.nodes.values():
        tool = build_outcome_tool(node)
        assert tool.name == SELECT_OUTCOME
        assert tool.parameters["properties"]["outcome"]["enum"] == list(node.outcomes)
        assert tool.parameters["required"] == ["outcome"]


def test_description_lists_each_outcome():
    node = Node(
        id="n",
        outcomes={
            "yes": Outcome(key="yes", description="Customer agreed", next="n"),
            "no": Outcome(key="no", description="Customer declined"),
        },
    )
    tool = build_outcome_tool(node)
    assert "- yes: Customer agreed" in tool.description
    assert "- no: Customer declined" in tool.description


def test_tool_parameters_valid():
    tool = build_outcome_tool(Node(id="n", outcomes={"a": Outcome(key="a")}))
    assert tool.parameters.get("type") == "object"
    assert "properties" in tool.parameters


def test_selected_outcome():
    assert selected_outcome(ToolCall(name=SELECT_OUTCOME, args={"outcome": "go"})) == "go"
    assert selected_outcome(ToolCall(name=SELECT_OUTCOME, args={})) is None
    assert selected_outcome(ToolCall(name=SELECT_OUTCOME, args='{"outcome": "go"}')) == "go"
    assert selected_outcome(ToolCall(name=SELECT_OUTCOME, args="not json")) is None
