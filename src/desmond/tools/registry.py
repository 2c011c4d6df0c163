"""Capability registry: named, schema-validated tools the model may request."""

from __future__ import annotations

import asyncio
import builtins
import json
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError

from desmond.errors import ToolArgumentError, UnknownToolError
from desmond.session import Origin, Session

Handler = Callable[[Any, Session], Awaitable[str]]


class Effect(StrEnum):
    """Side-effect class of a capability.

    ``pure`` results are fed back to the model; selecting a ``proposal``
    capability ends the turn with the capability's own text.
    """

    PURE = "pure"
    PROPOSAL = "proposal"


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text

    available = width - len(placeholder)
    if available <= 0:
        return placeholder

    return text[:available] + placeholder


@dataclass(frozen=True)
class Capability:
    """Tool metadata and runtime handle."""

    name: str
    description: str
    schema: type[BaseModel]
    effect: Effect
    handler: Handler
    scopes: frozenset[Origin] = field(default_factory=lambda: frozenset(Origin))

    def declaration(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema.model_json_schema(),
            },
        }


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one capability invocation."""

    name: str
    ok: bool
    output: str

    @classmethod
    def failure(cls, name: str, message: str) -> ToolResult:
        return cls(name=name, ok=False, output=f"error: {message}")


class ToolRegistry:
    """Registry of capabilities, resolved once at startup."""

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._tools: dict[str, Capability] = {}
        self._timeout_seconds = timeout_seconds

    def add(self, capability: Capability) -> None:
        if capability.name in self._tools:
            raise ValueError(f"Duplicate tool name: {capability.name}")
        self._tools[capability.name] = capability

    def register(
        self,
        *,
        name: str,
        description: str,
        schema: type[BaseModel],
        effect: Effect = Effect.PURE,
        scopes: Iterable[Origin] | None = None,
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add(
                Capability(
                    name=name,
                    description=description,
                    schema=schema,
                    effect=effect,
                    handler=handler,
                    scopes=frozenset(scopes) if scopes is not None else frozenset(Origin),
                )
            )
            return handler

        return decorator

    def get(self, name: str) -> Capability | None:
        return self._tools.get(name)

    def descriptors(self) -> builtins.list[Capability]:
        return sorted(self._tools.values(), key=lambda item: item.name)

    def proposal_names(self) -> frozenset[str]:
        return frozenset(name for name, capability in self._tools.items() if capability.effect is Effect.PROPOSAL)

    def for_origin(self, origin: Origin) -> builtins.list[Capability]:
        return [capability for capability in self.descriptors() if origin in capability.scopes]

    def declarations(self, origin: Origin) -> builtins.list[dict[str, Any]]:
        return [capability.declaration() for capability in self.for_origin(origin)]

    def resolve(self, name: str, arguments: dict[str, Any], session: Session) -> tuple[Capability, BaseModel]:
        """Look up ``name`` and validate ``arguments`` against its schema."""
        capability = self.get(name)
        if capability is None or session.origin not in capability.scopes:
            raise UnknownToolError(name)
        try:
            params = capability.schema.model_validate(arguments)
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}" for error in exc.errors()
            )
            raise ToolArgumentError(f"invalid arguments for {name}: {details}") from exc
        return capability, params

    async def execute(self, name: str, arguments: dict[str, Any], session: Session) -> ToolResult:
        """Run one capability. Failures become a failed result, never an exception."""
        try:
            capability, params = self.resolve(name, arguments, session)
        except UnknownToolError:
            logger.warning("tool.call.unknown name={}", name)
            return ToolResult.failure(name, f"unknown tool {name}")
        except ToolArgumentError as exc:
            logger.warning("tool.call.invalid name={} error={}", name, exc)
            return ToolResult.failure(name, str(exc))

        self._log_tool_call(name, arguments)
        # Proposal tools deliver as they go; cutting one off midway leaves a partial send.
        timeout = self._timeout_seconds if capability.effect is Effect.PURE else None
        start = time.monotonic()
        try:
            async with asyncio.timeout(timeout):
                output = await capability.handler(params, session)
        except TimeoutError:
            logger.error("tool.call.timeout name={} timeout={}s", name, timeout)
            return ToolResult.failure(name, f"{name} timed out")
        except Exception as exc:
            logger.exception("tool.call.error name={}", name)
            return ToolResult.failure(name, f"{name} failed: {exc!s}")
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", name, duration * 1000)
        return ToolResult(name=name, ok=True, output=output)

    def _log_tool_call(self, name: str, kwargs: dict[str, Any]) -> None:
        params: list[str] = []
        for key, value in kwargs.items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            value = _shorten_text(rendered, width=30, placeholder="...")
            if value.startswith('"') and not value.endswith('"'):
                value = value + '"'
            params.append(f"{key}={value}")
        logger.info("tool.call.start name={} {{ {} }}", name, ", ".join(params))
