"""Shared test fixtures."""

import time
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.database import create_engine, create_session_factory
from src.db.stores import TokenStore, TradeStore
from src.models import Base
from src.models.records import TokenRecord
from src.parsers.raydium.constants import RAYDIUM_AMM_V4_PROGRAM_ID, SOL_MINT
from src.parsers.raydium.decoder import LiquidityState
from src.parsers.raydium.models import HolderBalance, ParsedPoolInfo, PoolKeys


def _key() -> str:
    return str(Pubkey.new_unique())


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite file per test; same engine factory the app uses."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'radar.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def token_store(session_factory: async_sessionmaker[AsyncSession]) -> TokenStore:
    return TokenStore(session_factory)


@pytest.fixture
def trade_store(session_factory: async_sessionmaker[AsyncSession]) -> TradeStore:
    return TradeStore(session_factory)


@pytest.fixture
def token_mint() -> str:
    return _key()


@pytest.fixture
def make_pool_keys() -> Callable[..., PoolKeys]:
    """PoolKeys with real-looking pubkeys; SOL is the quote side unless ``sol_is_base``."""

    def _make(token_mint: str, *, sol_is_base: bool = False, with_market: bool = True) -> PoolKeys:
        base_mint, quote_mint = (SOL_MINT, token_mint) if sol_is_base else (token_mint, SOL_MINT)
        base_decimals, quote_decimals = (9, 6) if sol_is_base else (6, 9)
        market = {}
        if with_market:
            market = {
                "market_authority": _key(),
                "market_base_vault": _key(),
                "market_quote_vault": _key(),
                "market_bids": _key(),
                "market_asks": _key(),
                "market_event_queue": _key(),
            }
        return PoolKeys(
            id=_key(),
            base_mint=base_mint,
            quote_mint=quote_mint,
            lp_mint=_key(),
            base_decimals=base_decimals,
            quote_decimals=quote_decimals,
            lp_decimals=9,
            program_id=RAYDIUM_AMM_V4_PROGRAM_ID,
            authority=_key(),
            open_orders=_key(),
            target_orders=_key(),
            base_vault=_key(),
            quote_vault=_key(),
            lp_vault=_key(),
            market_program_id=_key(),
            market_id=_key(),
            **market,
        )

    return _make


@pytest.fixture
def make_token_record(make_pool_keys: Callable[..., PoolKeys]) -> Callable[..., TokenRecord]:
    """A fully enriched record that raises no risk flag; override any field."""

    def _make(token_mint: str, **overrides) -> TokenRecord:
        keys = make_pool_keys(token_mint)
        fields = {
            "token_address": token_mint,
            "init_tx": "5" * 88,
            "pool_id": keys.id,
            "pool_state": keys,
            "lp_reserve": 1_000_000_000,
            "supply": 1_000_000_000_000,
            "decimals": 6,
            "holders_distribution": [
                HolderBalance(address=_key(), amount=100_000_000_000, ui_amount=100_000.0),
                HolderBalance(address=_key(), amount=50_000_000_000, ui_amount=50_000.0),
            ],
            "burned_lp_percentage": 100.0,
            "parsed_pool_info": ParsedPoolInfo(
                base_token_amount=800_000.0,
                quote_token_amount=20.0,
                base_price_usd=0.00375,
                quote_price_usd=150.0,
                base_liquidity=3000.0,
                quote_liquidity=3000.0,
            ),
            "pool_created_at": int(time.time()),
        }
        fields.update(overrides)
        return TokenRecord(**fields)

    return _make


@pytest.fixture
def make_liquidity_state() -> Callable[..., LiquidityState]:
    def _make(keys: PoolKeys, **overrides) -> LiquidityState:
        fields = {
            "base_decimals": keys.base_decimals,
            "quote_decimals": keys.quote_decimals,
            "swap_fee_numerator": 25,
            "swap_fee_denominator": 10_000,
            "base_need_take_pnl": 0,
            "quote_need_take_pnl": 0,
            "pool_open_time": 1_700_000_000,
            "base_vault": keys.base_vault,
            "quote_vault": keys.quote_vault,
            "base_mint": keys.base_mint,
            "quote_mint": keys.quote_mint,
            "lp_mint": keys.lp_mint,
            "open_orders": keys.open_orders,
            "market_id": keys.market_id,
            "market_program_id": keys.market_program_id,
            "target_orders": keys.target_orders,
            "withdraw_queue": keys.withdraw_queue,
            "lp_vault": keys.lp_vault,
            "owner": _key(),
            "lp_reserve": 1_000_000_000,
        }
        fields.update(overrides)
        return LiquidityState(**fields)

    return _make
