"""Tool-routing state machine for one turn."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from desmond.core.gateway import ModelGateway, ModelReply
from desmond.errors import GatewayError
from desmond.session import Session
from desmond.tape.service import TurnHistory
from desmond.tape.store import TurnStore
from desmond.tools.registry import ToolRegistry

MAX_ROUNDS_REPLY = "I couldn't finish working on that request. Please try asking in a different way."
MODEL_FAILURE_REPLY = "Sorry, I can't answer right now. Please try again in a moment."
PROPOSAL_FAILURE_REPLY = "I couldn't prepare that transaction. Please check the amount and recipient and try again."


class RouteState(StrEnum):
    MODEL = "model"
    TOOL = "tool"
    BYPASS = "bypass"
    DONE = "done"


class Outcome(StrEnum):
    """How a turn reached ``done``."""

    REPLY = "reply"
    BYPASS = "bypass"
    MAX_ROUNDS = "max_rounds"
    MODEL_ERROR = "model_error"


@dataclass(frozen=True)
class TurnResult:
    """Output of one routed turn."""

    reply: str
    outcome: Outcome
    rounds: int
    tools: tuple[str, ...] = ()

    @property
    def hit_round_limit(self) -> bool:
        return self.outcome is Outcome.MAX_ROUNDS


class ToolRouter:
    """Alternates model rounds and tool executions until a terminal state.

    Only the first tool call of a model response is acted on. Pure tools
    feed their result back to the model; proposal tools end the turn with
    their own text so the constructed payload reaches the user unmodified.
    """

    def __init__(
        self,
        *,
        gateway: ModelGateway,
        registry: ToolRegistry,
        store: TurnStore,
        system_prompt: str,
        max_rounds: int = 8,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self._gateway = gateway
        self._registry = registry
        self._store = store
        self._system_prompt = system_prompt.strip()
        self._max_rounds = max_rounds
        self._proposal_names = registry.proposal_names()

    @property
    def proposal_names(self) -> frozenset[str]:
        return self._proposal_names

    def next_state(self, reply: ModelReply) -> RouteState:
        if not reply.tool_calls:
            return RouteState.DONE
        if reply.tool_calls[0].name in self._proposal_names:
            return RouteState.BYPASS
        return RouteState.TOOL

    def history(self, session: Session) -> TurnHistory:
        return TurnHistory(self._store, session.thread_key)

    async def run(self, session: Session, text: str) -> TurnResult:
        with session.activate():
            history = self.history(session)
            if history.is_empty() and self._system_prompt:
                history.append_system(self._system_prompt)
            history.append_user(text)
            return await self._loop(session, history)

    async def _loop(self, session: Session, history: TurnHistory) -> TurnResult:
        declarations = self._registry.declarations(session.origin)
        executed: list[str] = []
        rounds = 0
        while rounds < self._max_rounds:
            rounds += 1
            logger.info("router.state state={} round={}", RouteState.MODEL, rounds)
            try:
                reply = await self._gateway.infer(history.messages(), declarations)
            except GatewayError:
                logger.exception("router.model.error round={}", rounds)
                history.append_event("turn.model_error", {"round": rounds})
                return TurnResult(MODEL_FAILURE_REPLY, Outcome.MODEL_ERROR, rounds, tuple(executed))

            state = self.next_state(reply)
            logger.info("router.transition state={} round={}", state, rounds)
            if state is RouteState.DONE:
                history.append_assistant(reply.text)
                return TurnResult(reply.text, Outcome.REPLY, rounds, tuple(executed))

            call = reply.tool_calls[0]
            if len(reply.tool_calls) > 1:
                dropped = [extra.name for extra in reply.tool_calls[1:]]
                logger.warning("router.tool_calls.dropped acted_on={} dropped={}", call.name, dropped)

            result = await self._registry.execute(call.name, call.arguments, session)
            executed.append(call.name)

            if state is RouteState.BYPASS:
                final = result.output if result.ok else PROPOSAL_FAILURE_REPLY
                history.append_event("turn.bypass", {"tool": call.name, "ok": result.ok})
                history.append_assistant(final)
                return TurnResult(final, Outcome.BYPASS, rounds, tuple(executed))

            history.append_assistant(reply.text, [call])
            history.append_tool_result(call.id, call.name, result.output)

        logger.warning("router.max_rounds max_rounds={}", self._max_rounds)
        history.append_event("turn.max_rounds", {"max_rounds": self._max_rounds})
        return TurnResult(MAX_ROUNDS_REPLY, Outcome.MAX_ROUNDS, rounds, tuple(executed))
