"""Orchestration core: model gateway, tool router, and payment fan-out."""

from desmond.core.fanout import FixedIntervalPacer, SplitPaymentOrchestrator, SplitReport, split_share
from desmond.core.gateway import AnyLLMGateway, ModelGateway, ModelReply, ToolCall
from desmond.core.router import Outcome, RouteState, ToolRouter, TurnResult

__all__ = [
    "AnyLLMGateway",
    "FixedIntervalPacer",
    "ModelGateway",
    "ModelReply",
    "Outcome",
    "RouteState",
    "SplitPaymentOrchestrator",
    "SplitReport",
    "ToolCall",
    "ToolRouter",
    "TurnResult",
    "split_share",
]
