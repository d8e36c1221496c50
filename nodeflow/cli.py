"""Command-line interface: validate a graph, chat through it, or serve it."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from nodeflow.actions import create_default_registry
from nodeflow.config import DEFAULT_MODEL, SERVER_HOST, SERVER_PORT
from nodeflow.engine import GraphEngine
from nodeflow.errors import ActionError, CompletionFailed, GraphError
from nodeflow.events import EventBus
from nodeflow.graph import load_graph_file, parse_graph, read_graph_data, validate
from nodeflow.models import Event, Graph

console = Console()

EXIT_WORDS = {"exit", "quit", "/q"}


def print_graph(graph: Graph):
    """Print the nodes and their outcomes as a table."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Node", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Outcomes", style="yellow")
    table.add_column("Actions", style="blue")

    for node_id, node in graph.nodes.items():
        marker = " (start)" if node_id == graph.start_node_id else ""
        outcomes = "\n".join(f"{k} -> {o.next or 'END'}" for k, o in node.outcomes.items()) or "-"
        actions = []
        if node.actions.on_enter:
            actions.append("enter: " + ", ".join(a.type for a in node.actions.on_enter))
        for key, acts in node.actions.on_outcome.items():
            actions.append(f"{key}: " + ", ".join(a.type for a in acts))
        table.add_row(node_id + marker, node.display_name, outcomes, "\n".join(actions) or "-")

    console.print(table)


def cmd_validate(args) -> int:
    try:
        graph = parse_graph(read_graph_data(args.graph))
        warnings = validate(graph)
    except GraphError as e:
        console.print(f"[bold red]Invalid graph:[/bold red] {e}")
        return 1

    print_graph(graph)
    for w in warnings:
        console.print(f"[yellow]warning:[/yellow] {w}")
    console.print(f"[green]OK[/green] {len(graph.nodes)} nodes, start at '{graph.start_node_id}'")
    return 0


def _show_event(event: Event):
    if event.type == "node.entered":
        console.print(f"  [dim][enter {event.data['node_id']} ({event.data['name']})][/dim]")
    elif event.type == "outcome.selected":
        console.print(f"  [dim][{event.data['outcome']} -> {event.data['next'] or 'END'}][/dim]")
    elif event.type == "action.executed":
        console.print(f"  [dim][action {event.data['action']} ({event.data['trigger']})][/dim]")
    elif event.type == "action.failed":
        console.print(f"  [red][action {event.data['action']} failed: {event.data['error']}][/red]")


async def _chat(graph: Graph, model: str, verbose: bool) -> int:
    bus = EventBus()
    queue = bus.subscribe() if verbose else None
    registry = create_default_registry()
    engine = GraphEngine(graph, registry, model=model, event_bus=bus)

    def drain():
        while queue is not None and not queue.empty():
            _show_event(queue.get_nowait())

    try:
        await engine.start()
    except ActionError as e:
        console.print(f"[bold red]Start node actions failed:[/bold red] {e}")
        return 1
    drain()

    console.print(Panel(f"Chatting through [bold]{graph.start_node_id}[/bold] with {model}. Type 'exit' to leave."))
    while not engine.is_finished():
        text = Prompt.ask("[bold cyan]you[/bold cyan]")
        if text.strip().lower() in EXIT_WORDS:
            break
        try:
            result = await engine.submit(text)
        except CompletionFailed as e:
            console.print(f"[red]{e}. Try again.[/red]")
            continue
        drain()
        if result.reply:
            console.print(f"[bold green]assistant[/bold green]: {result.reply}")
        for err in result.errors:
            console.print(f"[yellow]{err}[/yellow]")
        if verbose:
            console.print(f"  [dim][tokens {result.usage.input_tokens} in / {result.usage.output_tokens} out][/dim]")

    if engine.is_finished():
        console.print("[dim]Conversation finished.[/dim]")
    return 0


def cmd_chat(args) -> int:
    try:
        graph = load_graph_file(args.graph)
    except GraphError as e:
        console.print(f"[bold red]Invalid graph:[/bold red] {e}")
        return 1
    return asyncio.run(_chat(graph, args.model, args.verbose))


def cmd_serve(args) -> int:
    import uvicorn

    from nodeflow.server import app, runtime

    try:
        runtime.configure(load_graph_file(args.graph))
    except GraphError as e:
        console.print(f"[bold red]Invalid graph:[/bold red] {e}")
        return 1
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="nodeflow", description="Graph-driven conversational agents")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", help="Check a graph file")
    p.add_argument("graph")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("chat", help="Talk through a graph in the terminal")
    p.add_argument("graph")
    p.add_argument("--model", default=DEFAULT_MODEL)
    p.add_argument("-v", "--verbose", action="store_true", help="Show node transitions and actions")
    p.set_defaults(func=cmd_chat)

    p = sub.add_parser("serve", help="Serve a graph over HTTP")
    p.add_argument("graph")
    p.add_argument("--host", default=SERVER_HOST)
    p.add_argument("--port", type=int, default=SERVER_PORT)
    p.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
