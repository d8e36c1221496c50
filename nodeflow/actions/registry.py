"""Action registry — registers, resolves, and dispatches node actions."""

from __future__ import annotations

import copy
import logging
from typing import Any, Awaitable, Callable, Iterable, Protocol

from nodeflow.errors import ActionError, ActionHandlerFailed, UnknownActionType
from nodeflow.models import Action, ActionResult, copy_context

logger = logging.getLogger(__name__)

# Type for action handler functions: (config, context) -> result
ActionImpl = Callable[[dict[str, Any], dict[str, Any]], Awaitable[Any] | Any]

SKIP = "skip"
ABORT = "abort"
POLICIES = (SKIP, ABORT)


class ActionHandler(Protocol):
    """Object-style handler, for handlers that hold their own clients or settings."""

    def execute(self, config: dict[str, Any], context: dict[str, Any]) -> Any: ...


class ActionRegistry:
    """Registry of action-type names and their handlers."""

    def __init__(self):
        self._handlers: dict[str, ActionImpl] = {}

    def register(self, action_type: str, handler: ActionImpl | ActionHandler):
        """Register a handler for an action type. Re-registering replaces it."""
        impl = handler.execute if hasattr(handler, "execute") else handler
        if not callable(impl):
            raise TypeError(f"Handler for '{action_type}' is not callable")
        if action_type in self._handlers:
            logger.info(f"Replacing handler for action type '{action_type}'")
        self._handlers[action_type] = impl

    def handler(self, action_type: str) -> Callable[[ActionImpl], ActionImpl]:
        """Decorator form of register()."""

        def decorator(fn: ActionImpl) -> ActionImpl:
            self.register(action_type, fn)
            return fn

        return decorator

    def get(self, action_type: str) -> ActionImpl | None:
        return self._handlers.get(action_type)

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._handlers

    def names(self) -> list[str]:
        return list(self._handlers.keys())

    async def execute(self, action: Action, context: dict[str, Any]) -> Any:
        """Run one action. Raises UnknownActionType or ActionHandlerFailed."""
        impl = self._handlers.get(action.type)
        if impl is None:
            raise UnknownActionType(action.type)

        try:
            result = impl(dict(action.config), context)
            # Handle both sync and async implementations
            if hasattr(result, "__await__"):
                result = await result
            return result
        except Exception as e:
            raise ActionHandlerFailed(action.type, e) from e


class ActionDispatcher:
    """Runs action lists in order and folds results into the shared context."""

    def __init__(self, registry: ActionRegistry, policy: str = SKIP):
        if policy not in POLICIES:
            raise ValueError(f"Unknown action error policy '{policy}'. Use one of: {', '.join(POLICIES)}")
        self.registry = registry
        self.policy = policy

    async def run(self, actions: Iterable[Action], context: dict[str, Any]) -> list[ActionResult]:
        """Execute actions sequentially against ``context``, mutating it in place.

        Each handler sees a snapshot of the context as it stood after the
        previous action. A successful result is stored as ``last_<type>``.
        Under the skip policy failures are logged and recorded; under the
        abort policy the first failure is raised.

        Results must survive ``copy.deepcopy``; a result that does not (a
        lock, an open client) fails its action instead of entering the context.
        """
        results: list[ActionResult] = []
        for action in actions:
            try:
                result = await self.registry.execute(action, copy_context(context))
                self._check_copyable(action, result)
            except ActionError as e:
                if self.policy == ABORT:
                    logger.error(f"Action '{action.type}' failed, aborting transition: {e}")
                    raise
                logger.warning(f"Action '{action.type}' skipped: {e}")
                results.append(ActionResult(type=action.type, error=str(e)))
                continue

            context[f"last_{action.type}"] = result
            results.append(ActionResult(type=action.type, result=result))
            logger.debug(f"Action '{action.type}' -> {str(result)[:200]}")
        return results

    @staticmethod
    def _check_copyable(action: Action, result: Any):
        try:
            copy.deepcopy(result)
        except (TypeError, copy.Error) as e:
            raise ActionHandlerFailed(action.type, TypeError(f"result cannot be stored in context: {e}")) from e
