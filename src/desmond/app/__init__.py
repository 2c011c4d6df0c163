"""Application runtime package."""

from desmond.app.runtime import AgentRuntime, build_gateway, build_registry, build_store

__all__ = ["AgentRuntime", "build_gateway", "build_registry", "build_store"]
