"""Wires every component from Settings and owns their lifecycle."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import Settings
from src.commands import CommandDispatcher
from src.db.database import create_engine, create_session_factory
from src.db.notifier import RedisTokenNotifier
from src.db.stores import TokenStore, TradeStore
from src.parsers.dedup import Deduplicator
from src.parsers.jupiter.client import JupiterPriceOracle
from src.parsers.metadata import MetadataLookup
from src.parsers.pool_listener import LogStreamListener, PoolDiscoveryHandler
from src.parsers.raydium.pool_manager import PoolManager
from src.parsers.solana_rpc import SolanaRpcClient
from src.parsers.token_enricher import TokenEnricher
from src.trading.raydium_swap import RaydiumSwapClient
from src.trading.trade_executor import TradeExecutor
from src.trading.wallet import SolanaWallet


@dataclass
class RadarApp:
    engine: AsyncEngine
    rpc: SolanaRpcClient
    price_oracle: JupiterPriceOracle
    metadata_lookup: MetadataLookup
    notifier: RedisTokenNotifier
    token_store: TokenStore
    trade_store: TradeStore
    pool_manager: PoolManager
    enricher: TokenEnricher
    handler: PoolDiscoveryHandler
    listener: LogStreamListener
    dispatcher: CommandDispatcher
    wallet: SolanaWallet | None = None
    executor: TradeExecutor | None = None

    async def run(self) -> None:
        """Listen for new pools until stopped."""
        await self.listener.connect()

    async def close(self) -> None:
        await self.listener.stop()
        await self.rpc.close()
        await self.price_oracle.close()
        await self.metadata_lookup.close()
        await self.notifier.close()
        await self.engine.dispose()
        logger.info("Radar components closed")


def build_app(settings: Settings) -> RadarApp:
    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    token_store = TokenStore(session_factory)
    trade_store = TradeStore(session_factory)

    rpc = SolanaRpcClient(settings.solana_rpc_url, max_rps=settings.rpc_max_rps)
    pool_manager = PoolManager(
        rpc,
        settings.raydium_program_id,
        layout_version=settings.raydium_layout_version,
        call_delay=settings.rpc_call_delay_sec,
    )
    price_oracle = JupiterPriceOracle(settings.jupiter_api_key, max_rps=settings.jupiter_max_rps)
    metadata_lookup = MetadataLookup(rpc, settings.token_list_url)
    notifier = RedisTokenNotifier.from_url(settings.redis_url, settings.notify_channel)

    enricher = TokenEnricher(
        token_store,
        rpc,
        pool_manager,
        price_oracle,
        metadata_lookup,
        notifier,
        call_delay=settings.rpc_call_delay_sec,
    )
    handler = PoolDiscoveryHandler(
        Deduplicator(settings.dedup_max_entries),
        pool_manager,
        token_store,
        enricher,
        fetch_metadata=settings.enrich_fetch_metadata,
        gate_on_authority_flags=settings.enrich_gate_on_authorities,
    )
    listener = LogStreamListener(
        settings.solana_ws_url,
        settings.raydium_program_id,
        handler.handle_signature,
        commitment=settings.log_commitment,
    )

    wallet: SolanaWallet | None = None
    executor: TradeExecutor | None = None
    if settings.wallet_private_key:
        wallet = SolanaWallet(settings.wallet_private_key, rpc)
        swap_client = RaydiumSwapClient(
            rpc,
            wallet,
            pool_manager,
            slippage_pct=settings.trade_slippage_pct,
            priority_fee_micro_lamports=settings.trade_priority_fee_micro_lamports,
        )
        executor = TradeExecutor(
            token_store,
            trade_store,
            pool_manager,
            swap_client,
            rpc,
            wallet.pubkey_str,
            confirm_interval_sec=settings.trade_confirm_interval_sec,
            max_wait_sec=settings.trade_confirm_max_wait_sec,
        )
    else:
        logger.warning("[WALLET] No wallet key configured, trading commands disabled")

    dispatcher = CommandDispatcher(token_store, pool_manager, enricher, executor, wallet)

    return RadarApp(
        engine=engine,
        rpc=rpc,
        price_oracle=price_oracle,
        metadata_lookup=metadata_lookup,
        notifier=notifier,
        token_store=token_store,
        trade_store=trade_store,
        pool_manager=pool_manager,
        enricher=enricher,
        handler=handler,
        listener=listener,
        dispatcher=dispatcher,
        wallet=wallet,
        executor=executor,
    )
