"""FastAPI server — hosts conversations over a loaded graph."""

from __future__ import annotations

import logging
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from nodeflow.actions import ActionRegistry, create_default_registry
from nodeflow.config import DEFAULT_MODEL, EVENT_LOG_DIR, GRAPH_PATH, SERVER_HOST, SERVER_PORT
from nodeflow.engine import GraphEngine
from nodeflow.errors import ActionError, CompletionFailed, EngineError, GraphError
from nodeflow.events import EventBus
from nodeflow.graph import load_graph_file
from nodeflow.models import Graph
from nodeflow.providers import ModelProvider, create_provider

logger = logging.getLogger(__name__)


class Runtime:
    """Process-wide objects shared by every conversation: graph, actions, events."""

    def __init__(self):
        self.graph: Graph | None = None
        self.registry: ActionRegistry | None = None
        self.event_bus = EventBus(log_file=EVENT_LOG_DIR / "events.jsonl" if EVENT_LOG_DIR else None)
        self.provider_factory = create_provider
        self.conversations: dict[str, GraphEngine] = {}

    def configure(
        self,
        graph: Graph,
        registry: ActionRegistry | None = None,
        provider_factory=None,
    ):
        self.graph = graph
        self.registry = registry or create_default_registry()
        if provider_factory is not None:
            self.provider_factory = provider_factory
        self.conversations.clear()

    def ensure_graph(self) -> Graph:
        if self.graph is None:
            try:
                self.configure(load_graph_file(GRAPH_PATH))
            except GraphError as e:
                logger.error(f"Could not load graph: {e}")
                raise HTTPException(status_code=500, detail=f"No usable graph loaded: {e}") from e
        return self.graph

    def provider(self, model: str) -> ModelProvider:
        return self.provider_factory(model)


runtime = Runtime()

app = FastAPI(title="nodeflow", version="0.1", description="Graph-driven conversational agent engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------


class CreateConversationRequest(BaseModel):
    model: str = DEFAULT_MODEL


class SubmitRequest(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


@app.get("/graph")
async def get_graph() -> dict:
    """Return the loaded graph definition."""
    return runtime.ensure_graph().to_dict()


# ---------------------------------------------------------------------------
# Conversation Lifecycle
# ---------------------------------------------------------------------------


@app.post("/conversations")
async def create_conversation(req: CreateConversationRequest) -> dict:
    """Start a conversation at the graph's start node."""
    graph = runtime.ensure_graph()
    engine = GraphEngine(
        graph,
        runtime.registry,
        runtime.provider(req.model),
        event_bus=runtime.event_bus,
    )
    try:
        await engine.start()
    except ActionError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    runtime.conversations[engine.id] = engine
    logger.info(f"Conversation {engine.id} started at {graph.start_node_id}")
    return _summary(engine)


@app.get("/conversations")
async def list_conversations() -> list[dict]:
    return [_summary(e) for e in runtime.conversations.values()]


@app.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str) -> dict:
    return _summary(_get_engine(conversation_id))


@app.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str) -> dict:
    _get_engine(conversation_id)
    runtime.conversations.pop(conversation_id, None)
    return {"status": "deleted", "id": conversation_id}


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


@app.post("/conversations/{conversation_id}/submit")
async def submit(conversation_id: str, req: SubmitRequest) -> dict:
    """Send the user's message and run one turn."""
    engine = _get_engine(conversation_id)
    if engine.is_finished():
        raise HTTPException(status_code=409, detail="Conversation has finished")

    try:
        result = await engine.submit(req.message)
    except CompletionFailed as e:
        # State is unchanged; the client may retry the same message
        raise HTTPException(status_code=503, detail=f"{e}. Please retry.") from e
    except ActionError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    except EngineError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    return result.to_dict()


@app.get("/conversations/{conversation_id}/transcript")
async def get_transcript(conversation_id: str, limit: int = 100, offset: int = 0) -> list[dict]:
    engine = _get_engine(conversation_id)
    transcript = engine.transcript
    start = max(0, len(transcript) - offset - limit)
    end = max(0, len(transcript) - offset)
    return [m.to_dict() for m in transcript[start:end]]


@app.get("/conversations/{conversation_id}/snapshot")
async def get_snapshot(conversation_id: str) -> dict:
    return _get_engine(conversation_id).snapshot()


# ---------------------------------------------------------------------------
# Events (WebSocket + Polling)
# ---------------------------------------------------------------------------


@app.websocket("/conversations/{conversation_id}/events")
async def event_stream(websocket: WebSocket, conversation_id: str):
    """WebSocket stream of one conversation's events."""
    await websocket.accept()
    if conversation_id not in runtime.conversations:
        await websocket.close(code=4004, reason="Conversation not found")
        return

    queue = runtime.event_bus.subscribe()
    try:
        while True:
            event = await queue.get()
            if event.conversation_id == conversation_id:
                await websocket.send_json(event.to_dict())
    except WebSocketDisconnect:
        pass
    finally:
        runtime.event_bus.unsubscribe(queue)


@app.get("/conversations/{conversation_id}/events")
async def get_events(conversation_id: str, limit: int = 50, offset: int = 0) -> list[dict]:
    """Get recent events (polling fallback)."""
    _get_engine(conversation_id)
    events = runtime.event_bus.recent(limit=limit, offset=offset, conversation_id=conversation_id)
    return [e.to_dict() for e in events]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_engine(conversation_id: str) -> GraphEngine:
    engine = runtime.conversations.get(conversation_id)
    if not engine:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
    return engine


def _summary(engine: GraphEngine) -> dict[str, Any]:
    node = engine.current_node
    return {
        "id": engine.id,
        "current_node_id": engine.state.current_node_id,
        "current_node_name": node.display_name if node else None,
        "finished": engine.is_finished(),
        "messages": len(engine.transcript),
        "context": engine.context,
    }


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def main():
    """Start the nodeflow server."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    runtime.configure(load_graph_file(GRAPH_PATH))
    print(f"Starting nodeflow server on {SERVER_HOST}:{SERVER_PORT}")
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT, log_level="info")


if __name__ == "__main__":
    main()
