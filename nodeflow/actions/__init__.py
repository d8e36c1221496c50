"""Action registry and dispatch — side effects bound to graph nodes."""

from nodeflow.actions.builtin import create_default_registry, resolve_placeholders
from nodeflow.actions.registry import ABORT, SKIP, ActionDispatcher, ActionRegistry

__all__ = [
    "ABORT",
    "SKIP",
    "ActionDispatcher",
    "ActionRegistry",
    "create_default_registry",
    "resolve_placeholders",
]
