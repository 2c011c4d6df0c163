"""DeSmond: a chat agent for balances, web search and payments on Base."""

from .app import AgentRuntime
from .config import Settings, get_settings

__version__ = "0.1.0"

__all__ = ["AgentRuntime", "Settings", "get_settings"]
