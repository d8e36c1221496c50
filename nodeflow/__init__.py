"""nodeflow — a graph-driven engine for conversational agents."""

from nodeflow.actions import ActionDispatcher, ActionRegistry, create_default_registry
from nodeflow.engine import GraphEngine
from nodeflow.errors import (
    ActionError,
    ActionHandlerFailed,
    CompletionFailed,
    DanglingReference,
    EngineError,
    GraphError,
    InvalidOutcome,
    MissingStartNode,
    NodeflowError,
    StepLimitExceeded,
    UnknownActionType,
)
from nodeflow.graph import load_graph, load_graph_file, validate
from nodeflow.models import Action, ExecutionState, Graph, Message, Node, NodeActions, Outcome, TurnResult
from nodeflow.outcome_tool import SELECT_OUTCOME, build_outcome_tool

__version__ = "0.1.0"

__all__ = [
    "Action",
    "ActionDispatcher",
    "ActionError",
    "ActionHandlerFailed",
    "ActionRegistry",
    "CompletionFailed",
    "DanglingReference",
    "EngineError",
    "ExecutionState",
    "Graph",
    "GraphEngine",
    "GraphError",
    "InvalidOutcome",
    "Message",
    "MissingStartNode",
    "Node",
    "NodeActions",
    "NodeflowError",
    "Outcome",
    "SELECT_OUTCOME",
    "StepLimitExceeded",
    "TurnResult",
    "UnknownActionType",
    "build_outcome_tool",
    "create_default_registry",
    "load_graph",
    "load_graph_file",
    "validate",
]
