"""Domain records persisted by TokenStore and TradeStore."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.parsers.raydium.models import HolderBalance, ParsedPoolInfo, PoolKeys


def utcnow() -> datetime:
    return datetime.now(UTC)


class TokenMetadata(BaseModel):
    """Descriptive token metadata (Metaplex or token list)."""

    name: str | None = None
    symbol: str | None = None
    image: str | None = None
    is_mutable: bool | None = None
    description: str | None = None
    extensions: dict[str, str] | None = None  # website, twitter, telegram...

    model_config = {"extra": "ignore"}


class TokenRecord(BaseModel):
    """Everything known about one discovered token, keyed by mint address.

    All enrichable fields are optional: a partially enriched record is valid.
    """

    token_address: str
    init_tx: str | None = None
    pool_id: str | None = None
    pool_state: PoolKeys | None = None
    lp_reserve: int | None = None
    mint_authority: str | None = None
    freeze_authority: str | None = None
    supply: int | None = None
    decimals: int | None = None
    holders_distribution: list[HolderBalance] | None = None
    burned_lp_percentage: float | None = None
    parsed_pool_info: ParsedPoolInfo | None = None
    metadata: TokenMetadata | None = None
    pool_created_at: int | None = None  # epoch seconds, pool open time
    first_seen_at: datetime = Field(default_factory=utcnow)
    last_updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"extra": "ignore"}


class TradeStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class TradeRecord(BaseModel):
    """One swap attempt, keyed by transaction signature (or a UUID for simulations)."""

    tx_id: str
    token_address: str
    input_mint: str
    output_mint: str
    input_amount: float | None = None
    output_amount: float | None = None
    status: TradeStatus = TradeStatus.PENDING
    elapsed_sec: float | None = None
    is_simulation: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"extra": "ignore"}

    @property
    def is_terminal(self) -> bool:
        return self.status is not TradeStatus.PENDING
