"""
OpenAI chat-completions backend with tool calling.

The AsyncOpenAI client is created on first use so importing the module
never needs an API key.
"""

import json
import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from agent_orchestrator.config import ModelConfig, settings
from agent_orchestrator.llm.base import LLMError, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


class OpenAIClient:
    """Tool-calling chat client.

    Example:
        client = OpenAIClient()
        response = await client.chat(
            [{"role": "system", "content": "..."}, {"role": "user", "content": "Hi"}],
            tools=[tool.openai_schema() for tool in allowed],
        )
    """

    def __init__(
        self,
        config: Optional[ModelConfig] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.config = config or settings.model
        self._api_key = api_key
        self._base_url = base_url
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self.config.request_timeout_sec,
                max_retries=0,
            )
        return self._client

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        params: dict[str, Any] = {
            "model": self.config.llm_model,
            "messages": messages,
            "temperature": self.config.llm_temperature,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"

        try:
            response = await self._get_client().chat.completions.create(**params)
        except openai.OpenAIError as exc:
            raise LLMError(f"Model request failed: {exc}") from exc

        if not response.choices:
            raise LLMError("Model returned no choices")
        message = response.choices[0].message

        tool_calls: list[ToolCall] = []
        for tc in message.tool_calls or []:
            try:
                arguments = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Model produced non-JSON arguments for '%s'", tc.function.name)
                arguments = None
            if arguments is not None and not isinstance(arguments, dict):
                arguments = None
            tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=arguments))

        return LLMResponse(content=message.content or "", tool_calls=tool_calls)
