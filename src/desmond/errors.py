"""Application-level exception types for DeSmond."""

from __future__ import annotations


class DesmondError(Exception):
    """Base exception for DeSmond."""


class ConfigurationError(DesmondError):
    """Base exception for configuration and startup validation errors."""


class ModelNotConfiguredError(ConfigurationError):
    """Raised when model configuration is missing."""


class TransportNotConfiguredError(ConfigurationError):
    """Raised when the messaging transport lacks credentials."""


class GatewayError(DesmondError):
    """Raised when the model backend fails after all retries."""


class ToolError(DesmondError):
    """Base exception for capability lookup and invocation errors."""


class UnknownToolError(ToolError):
    """Raised when a tool call names no registered capability."""


class ToolArgumentError(ToolError):
    """Raised when tool call arguments do not match the capability schema."""


class TransportError(DesmondError):
    """Raised when the messaging transport subscription breaks."""
