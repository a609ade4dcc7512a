"""Pool-key resolution and pool account reads for Raydium AMM v4."""

import asyncio

from loguru import logger
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from src.parsers.errors import NotFoundError
from src.parsers.raydium.constants import RAYDIUM_AMM_V4_PROGRAM_ID
from src.parsers.raydium.decoder import (
    LIQUIDITY_BASE_MINT_OFFSET,
    LIQUIDITY_QUOTE_MINT_OFFSET,
    LIQUIDITY_STATE_SIZE,
    LiquidityState,
    MarketState,
    MintInfo,
    decode_liquidity_state,
    decode_market_state,
    decode_mint,
    decode_open_orders,
    derive_amm_authority,
    derive_market_authority,
)
from src.parsers.raydium.models import PoolInitInfo, PoolKeys
from src.parsers.raydium.tx_parser import parse_pool_init_transaction
from src.parsers.solana_rpc import AccountInfo, SolanaRpcClient


class PoolManager:
    """Resolves complete PoolKeys, either from an init transaction or by mint pair."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        program_id: str = RAYDIUM_AMM_V4_PROGRAM_ID,
        *,
        layout_version: int = 4,
        call_delay: float = 0.5,
    ) -> None:
        self._rpc = rpc
        self._program_id = program_id
        self._layout_version = layout_version
        self._call_delay = call_delay

    @property
    def program_id(self) -> str:
        return self._program_id

    async def _pace(self) -> None:
        if self._call_delay > 0:
            await asyncio.sleep(self._call_delay)

    async def _require_account(self, address: str, what: str) -> AccountInfo:
        account = await self._rpc.get_account_info(address)
        if account is None:
            raise NotFoundError(f"{what} account {address} not found")
        return account

    # ─── Discovery path ──────────────────────────────────────────────

    async def fetch_pool_keys_for_init_tx(self, signature: str) -> PoolInitInfo:
        """Fetch an initialize2 transaction, parse it and attach the market accounts.

        Raises NotFoundError if the transaction or market is absent and
        ParseError if the transaction is not a pool initialisation.
        """
        tx = await self._rpc.get_parsed_transaction(signature)
        if tx is None:
            raise NotFoundError(f"Transaction {signature} not found")

        info = parse_pool_init_transaction(tx, self._program_id, self._layout_version)
        keys = info.pool_keys
        logger.debug(f"[POOL] Init tx {signature[:16]} -> pool {keys.id[:12]}, market {keys.market_id[:12]}")

        market = await self.load_market(keys.market_id)
        return info.model_copy(update={"pool_keys": self._with_market(keys, market)})

    async def load_market(self, market_id: str) -> MarketState:
        account = await self._require_account(market_id, "Market")
        return decode_market_state(account.data)

    @staticmethod
    def _with_market(keys: PoolKeys, market: MarketState) -> PoolKeys:
        return keys.model_copy(
            update={
                "market_authority": derive_market_authority(
                    keys.market_id, market.vault_signer_nonce, keys.market_program_id
                ),
                "market_base_vault": market.base_vault,
                "market_quote_vault": market.quote_vault,
                "market_bids": market.bids,
                "market_asks": market.asks,
                "market_event_queue": market.event_queue,
            }
        )

    # ─── Lookup by mint pair ─────────────────────────────────────────

    async def find_pool_accounts(self, base_mint: str, quote_mint: str) -> list[AccountInfo]:
        """AMM accounts whose base and quote mints equal the given pair (in that order)."""
        filters = [
            {"dataSize": LIQUIDITY_STATE_SIZE},
            {"memcmp": {"offset": LIQUIDITY_BASE_MINT_OFFSET, "bytes": base_mint}},
            {"memcmp": {"offset": LIQUIDITY_QUOTE_MINT_OFFSET, "bytes": quote_mint}},
        ]
        return await self._rpc.get_program_accounts(self._program_id, filters)

    async def get_pool_keys(self, token_mint: str, quote_mint: str) -> PoolKeys:
        """Keys of the first pool pairing the two mints, trying both orientations."""
        accounts = await self.find_pool_accounts(token_mint, quote_mint)
        if not accounts:
            await self._pace()
            accounts = await self.find_pool_accounts(quote_mint, token_mint)
        if not accounts:
            raise NotFoundError(f"No pool for {token_mint[:12]}/{quote_mint[:12]}")
        return await self.format_amm_keys(accounts[0])

    async def format_amm_keys(self, account: AccountInfo) -> PoolKeys:
        """Build complete PoolKeys from an AMM account plus its market and LP mint."""
        state = decode_liquidity_state(account.data)
        market = await self.load_market(state.market_id)
        await self._pace()
        lp_mint = await self.get_mint_info(state.lp_mint)

        program_id = account.owner or self._program_id
        keys = PoolKeys(
            id=account.address,
            base_mint=state.base_mint,
            quote_mint=state.quote_mint,
            lp_mint=state.lp_mint,
            base_decimals=state.base_decimals,
            quote_decimals=state.quote_decimals,
            lp_decimals=lp_mint.decimals,
            program_id=program_id,
            authority=derive_amm_authority(program_id),
            open_orders=state.open_orders,
            target_orders=state.target_orders,
            base_vault=state.base_vault,
            quote_vault=state.quote_vault,
            withdraw_queue=state.withdraw_queue,
            lp_vault=state.lp_vault,
            market_program_id=state.market_program_id,
            market_id=state.market_id,
        )
        return self._with_market(keys, market)

    # ─── Account reads used by enrichment and swaps ──────────────────

    async def get_liquidity_state(self, pool_id: str) -> LiquidityState:
        account = await self._require_account(pool_id, "Pool")
        return decode_liquidity_state(account.data)

    async def get_mint_info(self, mint: str) -> MintInfo:
        account = await self._require_account(mint, "Mint")
        return decode_mint(account.data)

    async def get_vault_amounts(self, state: LiquidityState) -> tuple[float, float]:
        """Pool-owned base and quote amounts in UI units.

        vault balance + open-orders total - pending PnL, for each side.
        """
        oo_account = await self._require_account(state.open_orders, "Open orders")
        open_orders = decode_open_orders(oo_account.data)

        base_scale = 10**state.base_decimals
        quote_scale = 10**state.quote_decimals

        base_balance = await self._rpc.get_token_account_balance(state.base_vault)
        await self._pace()
        quote_balance = await self._rpc.get_token_account_balance(state.quote_vault)

        base = (
            (base_balance.get("uiAmount") or 0)
            + open_orders.base_token_total / base_scale
            - state.base_need_take_pnl / base_scale
        )
        quote = (
            (quote_balance.get("uiAmount") or 0)
            + open_orders.quote_token_total / quote_scale
            - state.quote_need_take_pnl / quote_scale
        )
        logger.debug(f"[POOL] Vaults base={base} quote={quote}")
        return base, quote


def is_valid_address(address: str) -> bool:
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True
