"""Configuration loading and defaults.

Reads from config.toml at the project root, with environment variable overrides.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Look for .env in the package's parent directory (project root)
_project_root = Path(__file__).resolve().parent.parent
load_dotenv(_project_root / ".env")
load_dotenv()  # also check cwd

# ---------------------------------------------------------------------------
# Load config.toml
# ---------------------------------------------------------------------------

_toml_path = Path(os.getenv("NODEFLOW_CONFIG", str(_project_root / "config.toml")))
_cfg: dict = {}
if _toml_path.exists():
    with open(_toml_path, "rb") as f:
        _cfg = tomllib.load(f)

_server = _cfg.get("server", {})
_engine = _cfg.get("engine", {})
_model = _cfg.get("model", {})

# ---------------------------------------------------------------------------
# Provider API keys (env-only, never in toml)
# ---------------------------------------------------------------------------

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# ---------------------------------------------------------------------------
# Model defaults
# ---------------------------------------------------------------------------

DEFAULT_MODEL = os.getenv("NODEFLOW_DEFAULT_MODEL", _model.get("default_model", "openai/gpt-4o-mini"))
DEFAULT_TEMPERATURE = float(os.getenv("NODEFLOW_TEMPERATURE", _model.get("temperature", 0.3)))
DEFAULT_MAX_TOKENS = int(os.getenv("NODEFLOW_MAX_TOKENS", _model.get("max_tokens", 1024)))

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

# Model calls allowed inside one submit() before the turn is cut off
MAX_STEPS_PER_TURN = int(os.getenv("NODEFLOW_MAX_STEPS", _engine.get("max_steps_per_turn", 20)))
# Seconds; 0 disables the deadline
COMPLETION_TIMEOUT = float(os.getenv("NODEFLOW_COMPLETION_TIMEOUT", _engine.get("completion_timeout", 60)))
# skip | abort
ACTION_ERROR_POLICY = os.getenv("NODEFLOW_ACTION_POLICY", _engine.get("action_error_policy", "skip"))

_event_log_dir = os.getenv("NODEFLOW_EVENT_LOG_DIR", _engine.get("event_log_dir", ""))
EVENT_LOG_DIR = Path(_event_log_dir) if _event_log_dir else None

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

SERVER_HOST = os.getenv("NODEFLOW_HOST", _server.get("host", "0.0.0.0"))
SERVER_PORT = int(os.getenv("NODEFLOW_PORT", _server.get("port", 8000)))
GRAPH_PATH = os.getenv("NODEFLOW_GRAPH", _server.get("graph", str(_project_root / "examples" / "support_desk.json")))
