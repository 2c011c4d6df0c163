"""Application runtime: wires settings into the agent's collaborators."""

from __future__ import annotations

from contextlib import suppress
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from republic.tape import InMemoryTapeStore

from desmond.chain.client import ChainReader, FallbackRpc, Web3ChainReader
from desmond.chain.names import NameResolver, Web3NameResolver
from desmond.chain.proposals import ProposalBuilder, TokenInfo
from desmond.channels.consumer import MessageStreamConsumer
from desmond.config import Settings
from desmond.core.fanout import SplitPaymentOrchestrator
from desmond.core.gateway import AnyLLMGateway, ModelGateway
from desmond.core.router import ToolRouter
from desmond.errors import GatewayError
from desmond.tape.store import FileTurnStore, TurnStore
from desmond.tools.builtin import BalanceTools, WebSearch, register_builtin_tools
from desmond.tools.payments import PaymentTools, register_payment_tools
from desmond.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from desmond.channels.base import Transport

KEEPALIVE_JOB_ID = "desmond.keepalive"
TOKEN_SYMBOL = "USDC"


def build_store(settings: Settings) -> TurnStore:
    if settings.thread_mode == "conversation":
        return FileTurnStore(settings.resolve_home())
    return InMemoryTapeStore()


def build_gateway(settings: Settings) -> AnyLLMGateway:
    return AnyLLMGateway(
        model=settings.model,
        api_key=settings.api_key,
        api_base=settings.api_base,
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
        timeout_seconds=settings.model_timeout_seconds,
        max_retries=settings.model_max_retries,
    )


def build_registry(
    settings: Settings,
    *,
    chain: ChainReader,
    names: NameResolver,
    builder: ProposalBuilder,
    orchestrator: SplitPaymentOrchestrator,
) -> ToolRegistry:
    registry = ToolRegistry(timeout_seconds=settings.tool_timeout_seconds)
    register_builtin_tools(
        registry,
        balances=BalanceTools(chain, names, token=builder.token, network_label=settings.network_label),
        search=WebSearch(
            api_base=settings.search_api_base,
            api_key=settings.search_api_key,
            max_results=settings.search_max_results,
        ),
        token_symbol=builder.token.symbol,
    )
    register_payment_tools(
        registry,
        payments=PaymentTools(builder, orchestrator),
        token_symbol=builder.token.symbol,
    )
    return registry


class AgentRuntime:
    """Agent collaborators plus the model keep-alive schedule.

    Every collaborator can be injected; missing ones are built from settings.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        gateway: ModelGateway | None = None,
        chain: ChainReader | None = None,
        names: NameResolver | None = None,
        store: TurnStore | None = None,
    ) -> None:
        self.settings = settings
        if chain is None or names is None:
            l2_rpc = FallbackRpc(settings.rpc_urls, timeout_seconds=settings.rpc_timeout_seconds)
            if chain is None:
                chain = Web3ChainReader(l2_rpc, token_address=settings.usdc_address)
            if names is None:
                names = Web3NameResolver(
                    ens_rpc=FallbackRpc(settings.ens_rpc_urls, timeout_seconds=settings.rpc_timeout_seconds),
                    l2_rpc=l2_rpc,
                    l2_resolver=settings.basenames_resolver,
                    chain_id=settings.chain_id,
                )
        self.chain = chain
        self.names = names
        self.builder = ProposalBuilder(
            names,
            chain_id=settings.chain_id,
            network_id=settings.network_id,
            network_label=settings.network_label,
            token=TokenInfo(symbol=TOKEN_SYMBOL, address=settings.usdc_address, decimals=settings.usdc_decimals),
        )
        self.orchestrator = SplitPaymentOrchestrator(self.builder, interval_seconds=settings.split_interval_seconds)
        self.registry = build_registry(
            settings, chain=chain, names=names, builder=self.builder, orchestrator=self.orchestrator
        )
        self.gateway = gateway or build_gateway(settings)
        self.store = store or build_store(settings)
        self.router = ToolRouter(
            gateway=self.gateway,
            registry=self.registry,
            store=self.store,
            system_prompt=settings.system_prompt,
            max_rounds=settings.max_rounds,
        )
        self.scheduler: AsyncIOScheduler | None = None

    def build_consumer(self, transport: Transport, *, max_reconnects: int | None = None) -> MessageStreamConsumer:
        return MessageStreamConsumer(
            transport,
            self.router,
            agent_address=self.settings.agent_address,
            mention_token=self.settings.mention_token,
            processing_text=self.settings.processing_text,
            reconnect_backoff_seconds=self.settings.reconnect_backoff_seconds,
            thread_mode=self.settings.thread_mode,
            max_reconnects=max_reconnects,
        )

    async def ping_model(self) -> bool:
        try:
            await self.gateway.ping()
        except GatewayError:
            logger.exception("runtime.keepalive.failed")
            return False
        logger.info("runtime.keepalive.ok")
        return True

    def start_keepalive(self) -> None:
        """Schedule a model ping every ``keepalive_hours``. Needs a running event loop."""
        if self.scheduler is not None and self.scheduler.running:
            return
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.ping_model,
            "interval",
            hours=self.settings.keepalive_hours,
            id=KEEPALIVE_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        scheduler.start()
        self.scheduler = scheduler
        logger.info("runtime.keepalive.scheduled hours={}", self.settings.keepalive_hours)

    def stop_keepalive(self) -> None:
        if self.scheduler is None:
            return
        if self.scheduler.running:
            with suppress(Exception):
                self.scheduler.shutdown(wait=False)
        self.scheduler = None

    async def serve(
        self, transport: Transport, *, keepalive: bool = True, max_reconnects: int | None = None
    ) -> None:
        """Run the consumer on ``transport`` until it stops or is cancelled."""
        consumer = self.build_consumer(transport, max_reconnects=max_reconnects)
        if keepalive:
            await self.ping_model()
            self.start_keepalive()
        try:
            await consumer.run()
        finally:
            self.stop_keepalive()
            await transport.close()
