"""Model gateway: one chat completion per call, text or tool calls out."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

from any_llm import acompletion  # type: ignore[import-untyped]
from loguru import logger

from desmond.errors import GatewayError, ModelNotConfiguredError

MODEL_NOT_CONFIGURED_ERROR = "Model not configured. Set DESMOND_MODEL (e.g., 'ollama:llama3.1:8b')."
PING_PROMPT = "Hello Desmond"


@dataclass(frozen=True)
class ToolCall:
    """One tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class ModelReply:
    text: str
    tool_calls: tuple[ToolCall, ...] = ()

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class ModelGateway(Protocol):
    """Black-box text/tool-call generator."""

    async def infer(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> ModelReply: ...

    async def ping(self) -> None: ...


def split_model(model: str) -> tuple[str, str]:
    provider, separator, model_id = model.partition(":")
    if not separator or not provider or not model_id:
        raise ModelNotConfiguredError(MODEL_NOT_CONFIGURED_ERROR)
    return provider, model_id


class AnyLLMGateway:
    """Gateway over any-llm's async completion API with bounded retries."""

    # Providers known to accept ``parallel_tool_calls``.
    SINGLE_TOOL_CALL_PROVIDERS: ClassVar[frozenset[str]] = frozenset(
        {"openai", "openrouter", "azure", "anthropic", "groq", "mistral", "deepseek", "xai"}
    )

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None = None,
        api_base: str | None = None,
        max_tokens: int = 1024,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
        max_retries: int = 2,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self._provider, self._model = split_model(model)
        self._api_key = api_key
        self._api_base = api_base
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._retry_delay_seconds = retry_delay_seconds

    @property
    def model(self) -> str:
        return f"{self._provider}:{self._model}"

    async def infer(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> ModelReply:
        kwargs = self._request_kwargs(messages, tools)
        last_error: Exception | None = None
        for attempt in range(1, self._max_retries + 2):
            try:
                async with asyncio.timeout(self._timeout_seconds):
                    response = await acompletion(**kwargs)
            except TimeoutError as exc:
                last_error = exc
                logger.warning("model.call.timeout attempt={} timeout={}s", attempt, self._timeout_seconds)
            except Exception as exc:
                last_error = exc
                logger.warning("model.call.error attempt={} error={!r}", attempt, exc)
            else:
                return parse_reply(response)
            if attempt <= self._max_retries:
                await asyncio.sleep(self._retry_delay_seconds)
        raise GatewayError(f"model call failed after {self._max_retries + 1} attempts") from last_error

    async def ping(self) -> None:
        reply = await self.infer([{"role": "user", "content": PING_PROMPT}], [])
        logger.info("model.ping.ok model={} chars={}", self.model, len(reply.text))

    def _request_kwargs(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "provider": self._provider,
            "messages": messages,
            "max_tokens": self._max_tokens,
        }
        if tools:
            kwargs["tools"] = tools
            if self._provider.casefold() in self.SINGLE_TOOL_CALL_PROVIDERS:
                kwargs["parallel_tool_calls"] = False
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        return kwargs


def parse_reply(response: Any) -> ModelReply:
    """Convert an OpenAI-style chat completion into a ``ModelReply``."""
    return ModelReply(text=_extract_text(response), tool_calls=tuple(_extract_tool_calls(response)))


def _first_message(response: Any) -> Any:
    choices = getattr(response, "choices", None)
    if not choices:
        return None
    return getattr(choices[0], "message", None)


def _extract_text(response: Any) -> str:
    if isinstance(response, str):
        return response
    message = _first_message(response)
    if message is None:
        return ""
    return getattr(message, "content", "") or ""


def _extract_tool_calls(response: Any) -> list[ToolCall]:
    message = _first_message(response)
    if message is None:
        return []
    calls: list[ToolCall] = []
    for idx, tool_call in enumerate(getattr(message, "tool_calls", None) or []):
        function = getattr(tool_call, "function", None)
        if function is None:
            continue
        name = getattr(function, "name", "") or ""
        calls.append(
            ToolCall(
                id=getattr(tool_call, "id", None) or f"call_{idx}",
                name=name,
                arguments=_decode_arguments(name, getattr(function, "arguments", None)),
            )
        )
    return calls


def _decode_arguments(name: str, raw: object) -> dict[str, Any]:
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("model.tool_call.bad_arguments name={} raw={}", name, raw[:100])
        return {}
    if not isinstance(decoded, dict):
        logger.warning("model.tool_call.bad_arguments name={} raw={}", name, raw[:100])
        return {}
    return decoded
