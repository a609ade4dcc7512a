"""Pydantic v2 models for Raydium AMM v4 pools."""

from pydantic import BaseModel


class PoolKeys(BaseModel):
    """Every account a v4 swap instruction needs, plus pool decimals.

    Market fields stay None until the OpenBook market account is loaded.
    """

    id: str
    base_mint: str
    quote_mint: str
    lp_mint: str
    base_decimals: int
    quote_decimals: int
    lp_decimals: int
    version: int = 4
    program_id: str
    authority: str
    open_orders: str
    target_orders: str
    base_vault: str
    quote_vault: str
    withdraw_queue: str = "11111111111111111111111111111111"
    lp_vault: str
    market_version: int = 3
    market_program_id: str
    market_id: str
    market_authority: str | None = None
    market_base_vault: str | None = None
    market_quote_vault: str | None = None
    market_bids: str | None = None
    market_asks: str | None = None
    market_event_queue: str | None = None

    model_config = {"extra": "ignore"}

    @property
    def has_market(self) -> bool:
        return None not in (
            self.market_authority,
            self.market_base_vault,
            self.market_quote_vault,
            self.market_bids,
            self.market_asks,
            self.market_event_queue,
        )


class PoolInitInfo(BaseModel):
    """Result of parsing one initialize2 transaction."""

    pool_keys: PoolKeys
    open_time: int
    lp_reserve: int
    base_reserve: int
    quote_reserve: int


class HolderBalance(BaseModel):
    """One entry of getTokenLargestAccounts."""

    address: str
    amount: int  # raw, not divided by decimals
    ui_amount: float | None = None

    model_config = {"extra": "ignore"}


class ParsedPoolInfo(BaseModel):
    """Pool economics: vault amounts (UI units) and their USD valuation."""

    base_token_amount: float
    quote_token_amount: float
    base_price_usd: float
    quote_price_usd: float
    base_liquidity: float
    quote_liquidity: float
