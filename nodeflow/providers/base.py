"""Completion service interface — what the engine calls once per step."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from nodeflow.config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from nodeflow.models import ModelResponse, TokenUsage, ToolDef

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Speaks one vendor's API: tool schemas, message layout, response parsing."""

    model: str = ""

    @abstractmethod
    def format_tools(self, tools: list[ToolDef]) -> Any:
        """Convert canonical tool defs to provider's API format."""

    def format_tool_prompt(self, tools: list[ToolDef]) -> str:
        """Guidance for the offered tools, or "" when none carries any."""
        sections = [f"### {t.name}\n{t.guidance}" for t in tools if t.guidance]
        if not sections:
            return ""
        return "## Tool Usage Guide\n\n" + "\n\n".join(sections)

    @abstractmethod
    async def generate(
        self,
        messages: list[dict],
        tools: list[ToolDef] | None = None,
        system: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> ModelResponse:
        """Call the model and return a unified ModelResponse."""


class ModelProvider:
    """An adapter plus sampling defaults and a running token tally.

    One provider may be shared by several engines; ``usage`` then counts
    every call made through it.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.adapter = adapter
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.usage = TokenUsage()
        self.calls = 0

    @property
    def model(self) -> str:
        return self.adapter.model or type(self.adapter).__name__

    async def generate(
        self,
        messages: list[dict],
        tools: list[ToolDef] | None = None,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        response = await self.adapter.generate(
            messages=messages,
            tools=tools,
            system=self._system_prompt(system, tools),
            temperature=self.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.max_tokens,
        )
        self.calls += 1
        self.usage.add(response.usage)
        logger.debug(
            f"{self.model}: {response.usage.input_tokens} in / {response.usage.output_tokens} out, "
            f"{len(response.tool_calls)} tool call(s)"
        )
        return response

    def _system_prompt(self, system: str | None, tools: list[ToolDef] | None) -> str | None:
        guidance = self.adapter.format_tool_prompt(tools) if tools else ""
        if not guidance:
            return system
        if not system:
            return guidance
        return system + "\n\n" + guidance
