"""Anthropic (Claude) provider adapter."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from nodeflow.config import ANTHROPIC_API_KEY
from nodeflow.models import ModelResponse, ToolCall, ToolDef, TokenUsage
from nodeflow.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class AnthropicAdapter(ProviderAdapter):
    def __init__(self, model: str = "claude-sonnet-4-5", client: anthropic.AsyncAnthropic | None = None):
        self.model = model
        self.client = client or anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)

    def format_tools(self, tools: list[ToolDef]) -> list[dict]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.parameters,
            }
            for t in tools
        ]

    async def generate(
        self,
        messages: list[dict],
        tools: list[ToolDef] | None = None,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> ModelResponse:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self._format_messages(messages),
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        if system:
            kwargs["system"] = system

        if tools:
            kwargs["tools"] = self.format_tools(tools)

        try:
            raw = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise

        return self._parse_response(raw)

    def _format_messages(self, messages: list[dict]) -> list[dict]:
        """Convert our internal format to Anthropic's format.

        Mid-conversation system messages (node instructions) become text
        blocks on the user side, and consecutive same-role entries are merged
        so roles alternate.
        """
        formatted: list[dict] = []

        def append(role: str, blocks: list[dict]):
            if not blocks:
                return
            if formatted and formatted[-1]["role"] == role:
                formatted[-1]["content"].extend(blocks)
            else:
                formatted.append({"role": role, "content": blocks})

        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content")
            if role == "system":
                append("user", [{"type": "text", "text": f"[System]\n{content or ''}"}])
            elif role == "tool":
                append("user", [
                    {
                        "type": "tool_result",
                        "tool_use_id": msg.get("tool_use_id", msg.get("id", "unknown")),
                        "content": str(content or ""),
                    }
                ])
            elif role == "assistant":
                blocks: list[dict] = []
                if content:
                    blocks.append({"type": "text", "text": content})
                for tc in msg.get("tool_calls", []):
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.get("id", "unknown"),
                        "name": tc.get("name", ""),
                        "input": tc.get("args", tc.get("input", {})),
                    })
                append("assistant", blocks)
            else:
                append("user", [{"type": "text", "text": str(content or "")}])
        return formatted

    def _parse_response(self, raw: Any) -> ModelResponse:
        tool_calls = []
        text_parts = []

        for block in raw.content:
            if block.type == "tool_use":
                tool_calls.append(ToolCall(name=block.name, args=block.input, id=block.id))
            elif block.type == "text":
                text_parts.append(block.text)

        return ModelResponse(
            text="\n".join(text_parts) if text_parts else None,
            tool_calls=tool_calls,
            usage=TokenUsage(raw.usage.input_tokens, raw.usage.output_tokens),
            raw=raw,
        )
