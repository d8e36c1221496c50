#!/usr/bin/env python3
"""Run the support-desk graph through three scripted customer scenarios.

Action handlers here are simulations: they log what a real integration
would do and return canned data, so the flow of on_enter / on_outcome
actions and their results can be followed without any backend.

    OPENAI_API_KEY=... python examples/support_desk.py [--model openai/gpt-4o-mini]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
from datetime import datetime
from pathlib import Path
from urllib.parse import urlparse

from nodeflow import ActionRegistry, GraphEngine, load_graph_file
from nodeflow.actions import resolve_placeholders
from nodeflow.events import EventBus

logger = logging.getLogger("support_desk")

GRAPH_FILE = Path(__file__).with_name("support_desk.json")

MOCK_RESPONSES = {
    "/user/lookup": {"found": True, "status": "active"},
    "/password/reset": {"success": True, "reset_link_sent": True},
    "/billing/status": {"paid": True, "last_invoice": "2026-01-15"},
    "/system/health": {"status": "ok", "cache_cleared": True},
}

SCENARIOS = {
    "login (password reset)": [
        "Hi, I can't log in",
        "My account is john@example.com and it says the password is wrong",
        "Thanks, nothing else",
    ],
    "login (locked account)": [
        "My account is locked, it's mary@example.com",
        "OK, thanks",
    ],
    "billing": [
        "I need an invoice",
        "Thanks",
    ],
}


def mock_api_call(config: dict, context: dict) -> dict:
    method = config.get("method", "GET")
    url = config.get("url", "")
    response = dict(MOCK_RESPONSES.get(urlparse(url).path, {"status": "ok"}))
    if urlparse(url).path == "/user/lookup":
        response["username"] = context.get("user_input", "unknown")
    logger.info(f"[API] {method} {url} => {response}")
    return response


def mock_email(config: dict, context: dict) -> dict:
    template = config.get("template", "generic")
    to = config.get("to") or context.get("user_email", "customer@example.com")
    logger.info(f"[Email] sending '{template}' to {to}")
    return {"sent": True, "template": template, "to": to}


def mock_webhook(config: dict, context: dict) -> dict:
    url = config.get("url", "")
    logger.info(f"[Webhook] POST {url}")
    return {"delivered": True, "url": url}


def mock_db_write(config: dict, context: dict) -> dict:
    table = config.get("table", "logs")
    data = resolve_placeholders(config.get("data") or {}, context)
    data["timestamp"] = datetime.now().isoformat(timespec="seconds")
    logger.info(f"[DB] write {table}: {data}")
    return {"written": True, "table": table, "id": random.randint(1000, 9999)}


def mock_transfer(config: dict, context: dict) -> dict:
    department = config.get("department", "general")
    priority = config.get("priority", "normal")
    ticket_id = f"TKT-{datetime.now():%Y%m%d}-{random.randint(1000, 9999)}"
    logger.info(f"[Transfer] to {department} (priority {priority}), ticket {ticket_id}")
    return {"transferred": True, "department": department, "ticket_id": ticket_id}


def build_registry() -> ActionRegistry:
    registry = ActionRegistry()
    registry.register("api_call", mock_api_call)
    registry.register("email", mock_email)
    registry.register("webhook", mock_webhook)
    registry.register("db_write", mock_db_write)
    registry.register("transfer", mock_transfer)
    return registry


async def run(model: str):
    graph = load_graph_file(GRAPH_FILE)
    registry = build_registry()
    bus = EventBus()

    for title, messages in SCENARIOS.items():
        print(f"\n=== Scenario: {title} ===")
        engine = await GraphEngine.create(graph, registry, model=model, event_bus=bus)
        for text in messages:
            if engine.is_finished():
                break
            print(f"\nCustomer: {text}")
            result = await engine.submit(text)
            if result.reply:
                print(f"Assistant: {result.reply}")
            print(f"  [path: {' -> '.join(result.visited) or '(stayed)'}; now at {result.current_node_id or 'END'}]")
        print(f"\nFinished: {engine.is_finished()}")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--model", default="openai/gpt-4o-mini")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    asyncio.run(run(args.model))


if __name__ == "__main__":
    main()
