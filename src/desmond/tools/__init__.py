"""Capability set exports."""

from desmond.tools.builtin import BalanceTools, WebSearch, register_builtin_tools
from desmond.tools.payments import PaymentTools, register_payment_tools
from desmond.tools.registry import Capability, Effect, ToolRegistry, ToolResult

__all__ = [
    "BalanceTools",
    "Capability",
    "Effect",
    "PaymentTools",
    "ToolRegistry",
    "ToolResult",
    "WebSearch",
    "register_builtin_tools",
    "register_payment_tools",
]
