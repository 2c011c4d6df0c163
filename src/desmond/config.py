"""Configuration management for DeSmond."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "Act as DeSmond, a highly knowledgeable, perceptive, and approachable assistant. "
    "DeSmond is capable of providing accurate insights, answering complex inquiries, and offering "
    "thoughtful guidance in various domains. Embody professionalism and warmth, tailoring responses "
    "to meet the user's needs effectively while maintaining an engaging and helpful tone. "
    "Never return lines of code like Python or Node.js."
)

BASE_RPC_URLS = [
    "https://base-rpc.publicnode.com",
    "https://base.llamarpc.com",
    "https://base.drpc.org",
]

ETHEREUM_RPC_URLS = [
    "https://ethereum-rpc.publicnode.com",
    "https://eth.llamarpc.com",
    "https://eth-pokt.nodies.app",
    "https://eth.drpc.org",
]


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="DESMOND_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Model
    model: str = Field(default="ollama:llama3.1:8b", description="provider:model understood by any-llm")
    api_key: str | None = Field(default=None, description="API key for the model provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    max_tokens: int = Field(default=1024, ge=1)
    temperature: float = Field(default=0.1, ge=0.0)
    model_timeout_seconds: float | None = Field(default=90.0, description="Per-call model timeout")
    model_max_retries: int = Field(default=2, ge=0)
    keepalive_hours: float = Field(default=23.0, gt=0, description="Interval between model warm-up pings")

    # Agent
    agent_name: str = Field(default="DeSmond")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    mention_token: str = Field(default="@desmond", description="Token required in group messages")
    processing_text: str = Field(default="Processing...")
    max_rounds: int = Field(default=8, ge=1, description="Maximum model rounds per turn")
    tool_timeout_seconds: float | None = Field(default=60.0)
    thread_mode: Literal["turn", "conversation"] = Field(
        default="turn",
        description="'turn' gives every inbound message a fresh history, 'conversation' keeps one per chat",
    )
    home: Path = Field(default=Path.home() / ".desmond")

    # Consumer
    reconnect_backoff_seconds: float = Field(default=1.0, ge=0)
    split_interval_seconds: float = Field(default=1.0, ge=0)

    # Chain
    agent_address: str = Field(default="0xc69449f60de274ca80b6d115019436788df274df")
    chain_id: int = Field(default=8453)
    network_id: str = Field(default="base-mainnet")
    network_label: str = Field(default="Base Mainnet")
    rpc_urls: list[str] = Field(default_factory=lambda: list(BASE_RPC_URLS))
    ens_rpc_urls: list[str] = Field(default_factory=lambda: list(ETHEREUM_RPC_URLS))
    rpc_timeout_seconds: float = Field(default=20.0, gt=0)
    usdc_address: str = Field(default="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913")
    usdc_decimals: int = Field(default=6)
    basenames_resolver: str = Field(default="0xC6d566A56A1aFf6508b41f6c90ff131615583BCD")

    # Web search
    search_api_base: str = Field(default="https://ollama.com/api")
    search_api_key: str | None = Field(default=None)
    search_max_results: int = Field(default=10, ge=1, le=10)

    # Telegram transport
    telegram_token: str | None = Field(default=None)
    wallets: dict[str, str] = Field(default_factory=dict, description="Transport identity -> wallet address")

    # Logging
    log_level: str = Field(default="INFO")

    def resolve_home(self) -> Path:
        home = self.home.expanduser()
        home.mkdir(parents=True, exist_ok=True)
        return home


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment once per process."""
    return Settings()
