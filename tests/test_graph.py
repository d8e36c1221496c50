"""Test graph parsing and validation."""

import json
from pathlib import Path

import pytest

from nodeflow.errors import DanglingReference, GraphError, MissingStartNode
from nodeflow.graph import load_graph, load_graph_file, parse_graph, reachable_nodes, validate

from tests.fakes import two_step_graph

EXAMPLE_GRAPH = Path(__file__).resolve().parent.parent / "examples" / "support_desk.json"


def test_load_example_graph():
    graph = load_graph_file(EXAMPLE_GRAPH)
    assert graph.start_node_id == "identify_issue"
    assert len(graph.nodes) == 7
    assert graph["handoff"].outcomes["end"].next is None
    assert [a.type for a in graph["handoff"].actions.on_enter] == ["transfer", "webhook"]
    assert validate(graph) == []


def test_action_config_is_flattened():
    graph = load_graph_file(EXAMPLE_GRAPH)
    action = graph["resolve_login"].actions.on_enter[0]
    assert action.type == "api_call"
    assert action.config == {"url": "https://api.example.com/user/lookup", "method": "GET"}


def test_nested_action_config_block():
    data = two_step_graph()
    data["nodes"]["A"]["actions"] = {"on_enter": [{"type": "log", "config": {"message": "hi"}}]}
    graph = load_graph(data)
    assert graph["A"].actions.on_enter[0].config == {"message": "hi"}


def test_missing_start_node():
    data = two_step_graph()
    data["start_node"] = "Z"
    with pytest.raises(MissingStartNode):
        load_graph(data)


def test_dangling_reference_identifies_node_and_outcome():
    data = {
        "start_node": "X",
        "nodes": {
            "X": {"instructions": "...", "outcomes": {"onward": {"description": "", "next": "Y"}}},
        },
    }
    with pytest.raises(DanglingReference) as exc:
        load_graph(data)
    assert exc.value.node_id == "X"
    assert exc.value.outcome_key == "onward"
    assert exc.value.target == "Y"
    assert isinstance(exc.value, GraphError)


def test_actions_bound_to_undefined_outcome():
    data = two_step_graph()
    data["nodes"]["A"]["actions"] = {"on_outcome": {"typo": [{"type": "email"}]}}
    with pytest.raises(GraphError, match="typo"):
        load_graph(data)


def test_action_without_type():
    data = two_step_graph()
    data["nodes"]["A"]["actions"] = {"on_enter": [{"url": "https://example.com"}]}
    with pytest.raises(GraphError):
        parse_graph(data)


def test_node_id_mismatch():
    data = two_step_graph()
    data["nodes"]["A"]["id"] = "not-a"
    with pytest.raises(GraphError):
        parse_graph(data)


def test_zero_outcome_node_is_a_warning():
    data = two_step_graph()
    data["nodes"]["B"]["outcomes"] = {}
    graph = parse_graph(data)
    warnings = validate(graph)
    assert any("'B'" in w and "no outcomes" in w for w in warnings)


def test_unreachable_node_is_a_warning():
    data = two_step_graph()
    data["nodes"]["orphan"] = {"outcomes": {"end": {"next": None}}}
    warnings = validate(parse_graph(data))
    assert any("orphan" in w and "unreachable" in w for w in warnings)
    assert reachable_nodes(parse_graph(data)) == {"A", "B"}


def test_outcome_shorthand():
    data = {"start_node": "A", "nodes": {"A": {"outcomes": {"again": "A", "stop": None}}}}
    graph = load_graph(data)
    assert graph["A"].outcomes["again"].next == "A"
    assert graph["A"].outcomes["stop"].next is None


def test_requires_user_input_flag():
    data = two_step_graph()
    data["nodes"]["B"]["requires_user_input"] = True
    graph = load_graph(data)
    assert graph["B"].requires_user_input
    assert not graph["A"].requires_user_input


def test_load_toml_graph(tmp_path):
    path = tmp_path / "flow.toml"
    path.write_text(
        'start_node = "ask"\n'
        "[nodes.ask]\n"
        'name = "Ask"\n'
        'instructions = "Ask for a name."\n'
        "[nodes.ask.outcomes.done]\n"
        'description = "Got the name"\n'
    )
    graph = load_graph_file(path)
    assert graph["ask"].outcomes["done"].next is None


def test_invalid_json_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(GraphError):
        load_graph_file(path)


def test_missing_file(tmp_path):
    with pytest.raises(GraphError):
        load_graph_file(tmp_path / "nope.json")


def test_to_dict_reloads_to_same_graph():
    graph = load_graph_file(EXAMPLE_GRAPH)
    reloaded = load_graph(json.loads(json.dumps(graph.to_dict())))
    assert reloaded == graph
