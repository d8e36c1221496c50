"""Test the command-line interface."""

import json
from pathlib import Path

from nodeflow.cli import main

from tests.fakes import two_step_graph

EXAMPLE_GRAPH = Path(__file__).resolve().parent.parent / "examples" / "support_desk.json"


def test_validate_example_graph(capsys):
    assert main(["validate", str(EXAMPLE_GRAPH)]) == 0
    out = capsys.readouterr().out
    assert "OK" in out
    assert "start at 'identify_issue'" in out


def test_validate_reports_warnings(tmp_path, capsys):
    data = two_step_graph()
    data["nodes"]["orphan"] = {"instructions": "Never reached.", "outcomes": {"x": None}}
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(data))

    assert main(["validate", str(path)]) == 0
    assert "unreachable" in capsys.readouterr().out


def test_validate_rejects_dangling_reference(tmp_path, capsys):
    data = two_step_graph()
    data["nodes"]["A"]["outcomes"]["go"]["next"] = "Z"
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(data))

    assert main(["validate", str(path)]) == 1
    assert "Invalid graph" in capsys.readouterr().out


def test_validate_missing_file(tmp_path):
    assert main(["validate", str(tmp_path / "nope.json")]) == 1
