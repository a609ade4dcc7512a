"""Token enrichment: authorities, holders, LP burn, pool valuation and metadata.

Every sub-fetch after the authority read degrades on its own: failed holders
are stored as an empty list, a failed pool or metadata branch keeps the stored
value, and enrichment carries on. Only a missing record or a failed authority
read aborts, and ``enrich`` never raises.
"""

import asyncio

from loguru import logger

from src.db.notifier import RedisTokenNotifier
from src.db.stores import TokenStore
from src.models.records import TokenMetadata, TokenRecord
from src.parsers.jupiter.client import JupiterPriceOracle
from src.parsers.metadata import MetadataLookup
from src.parsers.raydium.decoder import LiquidityState
from src.parsers.raydium.models import HolderBalance, ParsedPoolInfo
from src.parsers.raydium.pool_manager import PoolManager
from src.parsers.solana_rpc import SolanaRpcClient
from src.utils.keyed_lock import KeyedLock

TOP_HOLDERS = 10


def compute_burn_percentage(lp_reserve_raw: int, lp_decimals: int, lp_supply_raw: int) -> float | None:
    """Share of the initially minted LP that no longer exists, 0-100.

    None when the current LP supply is zero.
    """
    scale = 10**lp_decimals
    reserve = lp_reserve_raw / scale
    supply = lp_supply_raw / scale
    if not supply:
        return None
    max_supply = max(supply, reserve - 1)
    return (max_supply - supply) / max_supply * 100


def top_holders(accounts: list[dict], limit: int = TOP_HOLDERS) -> list[HolderBalance]:
    holders = [
        HolderBalance(
            address=a["address"],
            amount=int(a["amount"]),
            ui_amount=a.get("uiAmount"),
        )
        for a in accounts
    ]
    holders.sort(key=lambda h: h.amount, reverse=True)
    return holders[:limit]


class TokenEnricher:
    def __init__(
        self,
        token_store: TokenStore,
        rpc: SolanaRpcClient,
        pool_manager: PoolManager,
        price_oracle: JupiterPriceOracle,
        metadata_lookup: MetadataLookup,
        notifier: RedisTokenNotifier,
        *,
        call_delay: float = 0.5,
        locks: KeyedLock | None = None,
    ) -> None:
        self._store = token_store
        self._rpc = rpc
        self._pool_manager = pool_manager
        self._price_oracle = price_oracle
        self._metadata_lookup = metadata_lookup
        self._notifier = notifier
        self._call_delay = call_delay
        self._locks = locks or KeyedLock()

    async def _pace(self) -> None:
        if self._call_delay > 0:
            await asyncio.sleep(self._call_delay)

    async def refresh(self, address: str) -> TokenRecord | None:
        """Manual refresh: metadata included, authority gate off."""
        return await self.enrich(address, fetch_metadata=True, gate_on_authority_flags=False)

    async def enrich(
        self,
        address: str,
        fetch_metadata: bool = False,
        gate_on_authority_flags: bool = True,
    ) -> TokenRecord | None:
        """Re-derive and persist the enrichable fields of one token.

        Returns the stored record, or None when nothing was persisted
        (unknown address, authority gate, or authority read failure).
        Concurrent calls for the same address run one after another.
        """
        async with self._locks.hold(address):
            try:
                return await self._enrich(address, fetch_metadata, gate_on_authority_flags)
            except Exception as e:
                logger.warning(f"[ENRICH] {address[:12]} aborted: {type(e).__name__}: {e}")
                return None

    async def _enrich(
        self, address: str, fetch_metadata: bool, gate_on_authority_flags: bool
    ) -> TokenRecord | None:
        record = await self._store.get(address)
        if record is None:
            logger.debug(f"[ENRICH] {address[:12]} not in store, nothing to enrich")
            return None

        mint = await self._pool_manager.get_mint_info(address)
        if gate_on_authority_flags and (mint.mint_authority or mint.freeze_authority):
            logger.info(f"[ENRICH] {address[:12]} skipped: mint or freeze authority enabled")
            return None

        holders = await self._fetch_holders(address)
        await self._pace()

        burned_pct, pool_info = await self._fetch_pool_economics(record)

        metadata = record.metadata
        if fetch_metadata:
            metadata = await self._fetch_metadata(record)

        updated = await self._store.update(
            address,
            {
                "mint_authority": mint.mint_authority,
                "freeze_authority": mint.freeze_authority,
                "supply": mint.supply,
                "decimals": mint.decimals,
                "holders_distribution": holders,
                "burned_lp_percentage": burned_pct,
                "parsed_pool_info": pool_info,
                "metadata": metadata,
            },
        )
        logger.info(
            f"[ENRICH] {address[:12]} updated: burn={burned_pct}, "
            f"quote_liq={pool_info.quote_liquidity if pool_info else None}"
        )
        await self._notifier.publish(address)
        return updated

    async def _fetch_holders(self, address: str) -> list[HolderBalance]:
        try:
            accounts = await self._rpc.get_token_largest_accounts(address)
            return top_holders(accounts)
        except Exception as e:
            logger.debug(f"[ENRICH] Holders for {address[:12]} unavailable: {type(e).__name__}: {e}")
            return []

    async def _fetch_pool_economics(
        self, record: TokenRecord
    ) -> tuple[float | None, ParsedPoolInfo | None]:
        """(burn %, pool info). A branch that fails keeps the stored value."""
        burned_pct = record.burned_lp_percentage
        pool_info = record.parsed_pool_info
        pool_id = record.pool_id or (record.pool_state.id if record.pool_state else None)
        if pool_id is None:
            return burned_pct, pool_info

        try:
            state = await self._pool_manager.get_liquidity_state(pool_id)
        except Exception as e:
            logger.debug(f"[ENRICH] Pool state {pool_id[:12]} unavailable: {type(e).__name__}: {e}")
            return burned_pct, pool_info
        await self._pace()

        if record.lp_reserve is not None:
            try:
                lp_mint = await self._pool_manager.get_mint_info(state.lp_mint)
                burned_pct = compute_burn_percentage(record.lp_reserve, lp_mint.decimals, lp_mint.supply)
            except Exception as e:
                logger.debug(f"[ENRICH] LP mint {state.lp_mint[:12]} unavailable: {type(e).__name__}: {e}")
            await self._pace()

        try:
            pool_info = await self._value_pool(state)
        except Exception as e:
            logger.debug(f"[ENRICH] Pool valuation {pool_id[:12]} failed: {type(e).__name__}: {e}")

        return burned_pct, pool_info

    async def _value_pool(self, state: LiquidityState) -> ParsedPoolInfo:
        base, quote = await self._pool_manager.get_vault_amounts(state)
        base_price = await self._price_oracle.price(state.base_mint)
        await self._pace()
        quote_price = await self._price_oracle.price(state.quote_mint)
        return ParsedPoolInfo(
            base_token_amount=base,
            quote_token_amount=quote,
            base_price_usd=base_price,
            quote_price_usd=quote_price,
            base_liquidity=base * base_price,
            quote_liquidity=quote * quote_price,
        )

    async def _fetch_metadata(self, record: TokenRecord) -> TokenMetadata | None:
        """Fresh metadata, or the stored one when neither source resolves."""
        address = record.token_address
        try:
            metadata = await self._metadata_lookup.lookup(address)
        except Exception as e:
            logger.debug(f"[META] Lookup for {address[:12]} failed: {type(e).__name__}: {e}")
            return record.metadata
        return metadata if metadata is not None else record.metadata
