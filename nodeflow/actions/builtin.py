"""Built-in action handlers: HTTP calls, webhooks, and logging.

Graph authors reference context values in action configs with ``$key``
placeholders, e.g. ``{"type": "webhook", "payload": {"email": "$user_input"}}``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from nodeflow.actions.registry import ActionRegistry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


def resolve_placeholders(value: Any, context: dict[str, Any]) -> Any:
    """Replace ``$key`` strings with ``context[key]``, recursing into dicts and lists.

    Dotted keys walk nested mappings (``$last_api_call.status``). Unknown
    keys are left as the literal placeholder.
    """
    if isinstance(value, dict):
        return {k: resolve_placeholders(v, context) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_placeholders(v, context) for v in value]
    if isinstance(value, str) and value.startswith("$") and len(value) > 1:
        current: Any = context
        for part in value[1:].split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return value
        return current
    return value


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text[:5000]


class HttpActions:
    """api_call and webhook handlers sharing one httpx client."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = DEFAULT_TIMEOUT):
        self.client = client
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self.client

    async def api_call(self, config: dict[str, Any], context: dict[str, Any]) -> dict:
        """Call an HTTP endpoint and return its status and decoded body."""
        config = resolve_placeholders(config, context)
        url = config.get("url")
        if not url:
            raise ValueError("api_call needs a 'url'")
        method = str(config.get("method", "GET")).upper()

        resp = await self._client().request(
            method,
            url,
            params=config.get("params"),
            json=config.get("body"),
            headers=config.get("headers"),
        )
        logger.info(f"[api_call] {method} {url} -> {resp.status_code}")
        resp.raise_for_status()
        return {"status": resp.status_code, "data": _response_body(resp)}

    async def webhook(self, config: dict[str, Any], context: dict[str, Any]) -> dict:
        """POST the configured payload plus the conversation context."""
        config = resolve_placeholders(config, context)
        url = config.get("url")
        if not url:
            raise ValueError("webhook needs a 'url'")

        payload = {**(config.get("payload") or {}), "context": context}
        resp = await self._client().post(url, json=payload, headers=config.get("headers"))
        logger.info(f"[webhook] POST {url} -> {resp.status_code}")
        resp.raise_for_status()
        return {"delivered": True, "url": url, "status": resp.status_code}

    async def aclose(self):
        if self.client is not None:
            await self.client.aclose()


def log_action(config: dict[str, Any], context: dict[str, Any]) -> dict:
    """Write a message to the nodeflow log; useful for tracing graph flow."""
    message = resolve_placeholders(config.get("message", ""), context)
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    logger.log(level, f"[log] {message}")
    return {"logged": True, "message": message}


def register_builtin_actions(registry: ActionRegistry, client: httpx.AsyncClient | None = None) -> HttpActions:
    """Register api_call, webhook and log on ``registry``. Returns the HTTP handler owner."""
    http = HttpActions(client=client)
    registry.register("api_call", http.api_call)
    registry.register("webhook", http.webhook)
    registry.register("log", log_action)
    return http


def create_default_registry(client: httpx.AsyncClient | None = None) -> ActionRegistry:
    """Create a registry wired with all built-in actions."""
    registry = ActionRegistry()
    register_builtin_actions(registry, client=client)
    return registry
