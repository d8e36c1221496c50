"""Exception hierarchy for graph loading, turn execution, and action dispatch."""

from __future__ import annotations


class NodeflowError(Exception):
    """Base class for all nodeflow errors."""


# ---------------------------------------------------------------------------
# Graph (construction-time, fatal)
# ---------------------------------------------------------------------------


class GraphError(NodeflowError):
    """The graph definition is malformed and cannot be executed."""


class MissingStartNode(GraphError):
    def __init__(self, start_node_id: str | None):
        self.start_node_id = start_node_id
        super().__init__(f"Start node '{start_node_id}' is not defined in the graph")


class DanglingReference(GraphError):
    def __init__(self, node_id: str, outcome_key: str, target: str):
        self.node_id = node_id
        self.outcome_key = outcome_key
        self.target = target
        super().__init__(
            f"Outcome '{outcome_key}' of node '{node_id}' points to unknown node '{target}'"
        )


# ---------------------------------------------------------------------------
# Engine (per turn)
# ---------------------------------------------------------------------------


class EngineError(NodeflowError):
    """A turn could not be completed as requested."""


class CompletionFailed(EngineError):
    """The completion service failed or timed out. State is unchanged; retry is safe."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)


class InvalidOutcome(EngineError):
    def __init__(self, node_id: str, outcome_key: object, allowed: list[str]):
        self.node_id = node_id
        self.outcome_key = outcome_key
        self.allowed = allowed
        super().__init__(
            f"Outcome {outcome_key!r} is not valid at node '{node_id}' (allowed: {', '.join(allowed)})"
        )


class StepLimitExceeded(EngineError):
    def __init__(self, node_id: str | None, max_steps: int):
        self.node_id = node_id
        self.max_steps = max_steps
        super().__init__(f"Turn stopped at node '{node_id}' after {max_steps} model calls")


# ---------------------------------------------------------------------------
# Actions (per action)
# ---------------------------------------------------------------------------


class ActionError(NodeflowError):
    def __init__(self, action_type: str, message: str):
        self.action_type = action_type
        super().__init__(message)


class UnknownActionType(ActionError):
    def __init__(self, action_type: str):
        super().__init__(action_type, f"No handler registered for action type '{action_type}'")


class ActionHandlerFailed(ActionError):
    def __init__(self, action_type: str, cause: BaseException):
        self.cause = cause
        super().__init__(action_type, f"Action '{action_type}' failed: {cause}")
