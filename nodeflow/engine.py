"""Graph engine — walks a conversation graph one user turn at a time.

The engine holds a pointer to the current node, the transcript, and a
context dict of action results. Each ``submit()`` appends the user's text,
asks the model for a reply while offering a ``select_outcome`` tool limited
to the current node's outcomes, and follows selected outcomes from node to
node until the model answers without selecting one, a node that waits for
the user is entered, or the graph ends.

A turn is staged on a copy of the state and committed only when it
completes, so a failed completion call leaves the conversation exactly as
it was before ``submit()``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from nodeflow.actions.registry import ActionDispatcher, ActionRegistry
from nodeflow.config import (
    ACTION_ERROR_POLICY,
    COMPLETION_TIMEOUT,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    MAX_STEPS_PER_TURN,
)
from nodeflow.errors import CompletionFailed, EngineError, InvalidOutcome, StepLimitExceeded
from nodeflow.events import EventBus
from nodeflow.graph import validate
from nodeflow.models import (
    ActionResult,
    ExecutionState,
    Graph,
    Message,
    ModelResponse,
    Node,
    ToolCall,
    TurnResult,
    generate_id,
)
from nodeflow.outcome_tool import SELECT_OUTCOME, build_outcome_tool, selected_outcome
from nodeflow.providers import ModelProvider, create_provider

logger = logging.getLogger(__name__)

END = "END"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Follow the instructions of each step when talking with the user.\n"
    "When you consider the current step complete, call select_outcome to choose its result and move on.\n"
    "Important: reply to the user before selecting an outcome."
)


class GraphEngine:
    """Executes one conversation over a shared, read-only graph.

    Not reentrant: calls to ``submit()`` on the same engine must be
    serialized by the caller. Separate engines over the same graph and
    registry are fully independent.
    """

    def __init__(
        self,
        graph: Graph,
        registry: ActionRegistry,
        provider: ModelProvider | None = None,
        *,
        model: str | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        action_policy: str = ACTION_ERROR_POLICY,
        max_steps: int = MAX_STEPS_PER_TURN,
        completion_timeout: float | None = COMPLETION_TIMEOUT,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        event_bus: EventBus | None = None,
        conversation_id: str | None = None,
        state: ExecutionState | None = None,
    ):
        validate(graph)
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")

        self.graph = graph
        self.registry = registry
        self.provider = provider or create_provider(model or DEFAULT_MODEL)
        self.system_prompt = system_prompt
        self.dispatcher = ActionDispatcher(registry, policy=action_policy)
        self.max_steps = max_steps
        self.completion_timeout = completion_timeout or None
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.event_bus = event_bus
        self.id = conversation_id or generate_id()

        if state is not None:
            if state.current_node_id is not None and state.current_node_id not in graph:
                raise EngineError(f"Saved state points to unknown node '{state.current_node_id}'")
            self.state = state
            self._started = True
        else:
            self.state = ExecutionState(current_node_id=graph.start_node_id)
            self._started = False

        self.startup_action_errors: list[ActionResult] = []
        self._busy = False

    @classmethod
    async def create(cls, graph: Graph, registry: ActionRegistry, provider: ModelProvider | None = None, **kwargs: Any) -> GraphEngine:
        """Construct an engine and enter its start node."""
        engine = cls(graph, registry, provider, **kwargs)
        await engine.start()
        return engine

    @classmethod
    def restore(cls, graph: Graph, registry: ActionRegistry, snapshot: dict, provider: ModelProvider | None = None, **kwargs: Any) -> GraphEngine:
        """Rebuild an engine from the output of ``snapshot()``."""
        state = ExecutionState.from_dict(snapshot["state"])
        return cls(graph, registry, provider, conversation_id=snapshot.get("id"), state=state, **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def current_node(self) -> Node | None:
        if self.state.current_node_id is None:
            return None
        return self.graph[self.state.current_node_id]

    @property
    def transcript(self) -> list[Message]:
        return self.state.transcript

    @property
    def context(self) -> dict[str, Any]:
        return self.state.context

    def is_finished(self) -> bool:
        return self.state.finished

    def snapshot(self) -> dict:
        """Serializable copy of the conversation (id, node pointer, transcript, context)."""
        return {"id": self.id, "started": self._started, "state": self.state.to_dict()}

    async def start(self):
        """Enter the start node: run its on_enter actions and post its instructions."""
        if self._started:
            return
        work = self.state.copy()
        result = TurnResult()
        await self._enter_node(work, work.current_node_id, result)
        self._commit(work)
        self._started = True
        self.startup_action_errors = result.action_errors
        self._emit("conversation.started", start_node=self.graph.start_node_id)

    async def submit(self, user_text: str) -> TurnResult:
        """Run one user turn. May traverse several nodes before returning.

        Raises CompletionFailed when the model call fails or times out, and
        ActionError when an action fails under the abort policy; in both
        cases the state is left as it was before the call.
        """
        if self._busy:
            raise EngineError(f"Conversation {self.id} is already processing a turn")
        self._busy = True
        try:
            if not self._started:
                await self.start()

            if self.state.finished:
                logger.warning(f"[{self.id}] Input ignored: conversation already finished")
                return TurnResult(finished=True)

            result = TurnResult(current_node_id=self.state.current_node_id)
            try:
                work = self.state.copy()
                await self._run_turn(work, user_text, result)
            except Exception as e:
                self._emit("turn.failed", node_id=self.state.current_node_id, error=str(e))
                raise

            self._commit(work)
            result.current_node_id = work.current_node_id
            result.finished = work.finished
            self._emit(
                "turn.completed",
                node_id=work.current_node_id,
                finished=result.finished,
                visited=result.visited,
                usage=result.usage.to_dict(),
            )
            return result
        finally:
            self._busy = False

    # ------------------------------------------------------------------
    # Turn execution
    # ------------------------------------------------------------------

    async def _run_turn(self, work: ExecutionState, user_text: str, result: TurnResult):
        work.transcript.append(Message(role="user", content=user_text))
        work.context["user_input"] = user_text

        for _ in range(self.max_steps):
            node = self.graph[work.current_node_id]
            response = await self._complete(work, node)
            result.usage.add(response.usage)

            work.transcript.append(
                Message(role="assistant", content=response.text, tool_calls=tuple(response.tool_calls))
            )
            if response.text:
                result.reply = response.text
                logger.info(f"[{self.id}] ({node.id}) {response.text[:200]}")

            selection = self._pick_selection(response.tool_calls)
            if selection is None:
                self._answer_ignored_calls(work, response.tool_calls, None)
                return

            key = selected_outcome(selection)
            outcome = node.outcomes.get(key) if isinstance(key, str) else None
            if outcome is None:
                err = InvalidOutcome(node.id, key, list(node.outcomes))
                logger.warning(f"[{self.id}] {err}")
                result.errors.append(str(err))
                work.transcript.append(self._tool_message(
                    selection,
                    {"error": "invalid_outcome", "outcome": key, "allowed": list(node.outcomes)},
                ))
                self._answer_ignored_calls(work, response.tool_calls, selection)
                self._emit("outcome.invalid", node_id=node.id, outcome=key)
                return

            action_results = await self.dispatcher.run(node.actions.for_outcome(outcome.key), work.context)
            self._record_actions(action_results, result, node.id, "on_outcome")

            work.transcript.append(self._tool_message(
                selection,
                {"outcome": outcome.key, "transitioned_to": outcome.next or END},
            ))
            self._answer_ignored_calls(work, response.tool_calls, selection)
            logger.info(f"[{self.id}] {node.id} --{outcome.key}--> {outcome.next or END}")
            self._emit("outcome.selected", node_id=node.id, outcome=outcome.key, next=outcome.next)

            work.current_node_id = outcome.next
            if outcome.next is None:
                self._emit("conversation.finished", last_node=node.id)
                return

            entered = await self._enter_node(work, outcome.next, result)
            if entered.requires_user_input:
                return

        err = StepLimitExceeded(work.current_node_id, self.max_steps)
        logger.warning(f"[{self.id}] {err}")
        result.errors.append(str(err))
        self._emit("turn.step_limit", node_id=work.current_node_id, max_steps=self.max_steps)

    async def _complete(self, work: ExecutionState, node: Node) -> ModelResponse:
        """Request a completion with the node's outcome tool, wrapping failures."""
        tools = [build_outcome_tool(node)] if node.outcomes else None
        call = self.provider.generate(
            messages=[m.to_dict() for m in work.transcript],
            tools=tools,
            system=self.system_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        try:
            if self.completion_timeout:
                return await asyncio.wait_for(call, timeout=self.completion_timeout)
            return await call
        except asyncio.TimeoutError as e:
            logger.error(f"[{self.id}] Completion timed out after {self.completion_timeout}s at node {node.id}")
            raise CompletionFailed(f"Completion timed out after {self.completion_timeout}s", e) from e
        except Exception as e:
            logger.error(f"[{self.id}] Completion failed at node {node.id}: {e}")
            raise CompletionFailed(f"Completion failed: {e}", e) from e

    async def _enter_node(self, work: ExecutionState, node_id: str, result: TurnResult) -> Node:
        node = self.graph[node_id]
        result.visited.append(node_id)

        action_results = await self.dispatcher.run(node.actions.on_enter, work.context)
        self._record_actions(action_results, result, node_id, "on_enter")

        content = f"[Current step: {node.display_name}]\nInstructions: {node.instructions}"
        succeeded = [r.to_dict() for r in action_results if r.ok]
        if succeeded:
            content += (
                "\n\nData retrieved by the system, for reference:\n"
                + json.dumps(succeeded, ensure_ascii=False, indent=2, default=str)
            )
        work.transcript.append(Message(role="system", content=content, name=node_id))

        if not node.outcomes:
            logger.warning(f"[{self.id}] Entered node '{node_id}' which has no outcomes")
        logger.info(f"[{self.id}] Entered node {node_id} ({node.display_name})")
        self._emit("node.entered", node_id=node_id, name=node.display_name)
        return node

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _pick_selection(tool_calls: list[ToolCall]) -> ToolCall | None:
        for tc in tool_calls:
            if tc.name == SELECT_OUTCOME:
                return tc
        return None

    def _answer_ignored_calls(self, work: ExecutionState, tool_calls: list[ToolCall], selection: ToolCall | None):
        # Every tool call needs a result entry or providers reject the next request
        for tc in tool_calls:
            if tc is selection:
                continue
            reason = "only one outcome can be selected per step" if tc.name == SELECT_OUTCOME else "unknown tool"
            work.transcript.append(self._tool_message(tc, {"error": "ignored", "reason": reason}))

    @staticmethod
    def _tool_message(tool_call: ToolCall, payload: dict) -> Message:
        return Message(
            role="tool",
            content=json.dumps(payload, ensure_ascii=False, default=str),
            tool_call_id=tool_call.id,
            name=tool_call.name,
        )

    def _record_actions(self, results: list[ActionResult], turn: TurnResult, node_id: str, trigger: str):
        for r in results:
            if r.ok:
                self._emit("action.executed", node_id=node_id, trigger=trigger, action=r.type)
            else:
                turn.action_errors.append(r)
                self._emit("action.failed", node_id=node_id, trigger=trigger, action=r.type, error=r.error)

    def _commit(self, work: ExecutionState):
        # Extend rather than replace so entries already handed out stay in place
        committed = len(self.state.transcript)
        self.state.transcript.extend(work.transcript[committed:])
        self.state.context = work.context
        self.state.current_node_id = work.current_node_id

    def _emit(self, event_type: str, **data: Any):
        if self.event_bus:
            self.event_bus.emit_simple(event_type, self.id, **data)
