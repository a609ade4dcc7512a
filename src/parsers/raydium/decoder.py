"""Decode Raydium AMM v4, OpenBook v3 and SPL mint account data.

LIQUIDITY_STATE_LAYOUT_V4: 752 bytes
  0:256    32 x u64 (status .. orderbookToInitTime)
    32     baseDecimal          40  quoteDecimal
   176     swapFeeNumerator    184  swapFeeDenominator
   192     baseNeedTakePnl     200  quoteNeedTakePnl
   224     poolOpenTime
  256:336  swap counters (u128 / u64)
  336:720  12 x Pubkey (baseVault .. owner)
  720      lpReserve (u64)

MARKET_STATE_LAYOUT_V3: 388 bytes
   13 ownAddress   45 vaultSignerNonce (u64)   53 baseMint   85 quoteMint
  117 baseVault   165 quoteVault   221 requestQueue   253 eventQueue
  285 bids        317 asks

OPEN_ORDERS_LAYOUT_V2: baseTokenFree/Total at 77/85, quoteTokenFree/Total at 93/101.
"""

import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from src.parsers.errors import ParseError
from src.parsers.raydium.constants import (
    AMM_AUTHORITY_SEED,
    METAPLEX_METADATA_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
)

LIQUIDITY_STATE_SIZE = 752
MARKET_STATE_SIZE = 388
OPEN_ORDERS_MIN_SIZE = 109
SPL_MINT_SIZE = 82

# Pubkey fields of the liquidity state, in order from offset 336
_LIQUIDITY_PUBKEYS = (
    "base_vault",
    "quote_vault",
    "base_mint",
    "quote_mint",
    "lp_mint",
    "open_orders",
    "market_id",
    "market_program_id",
    "target_orders",
    "withdraw_queue",
    "lp_vault",
    "owner",
)
_LIQUIDITY_PUBKEYS_OFFSET = 336
LIQUIDITY_BASE_MINT_OFFSET = 400
LIQUIDITY_QUOTE_MINT_OFFSET = 432


@dataclass
class LiquidityState:
    base_decimals: int
    quote_decimals: int
    swap_fee_numerator: int
    swap_fee_denominator: int
    base_need_take_pnl: int
    quote_need_take_pnl: int
    pool_open_time: int
    base_vault: str
    quote_vault: str
    base_mint: str
    quote_mint: str
    lp_mint: str
    open_orders: str
    market_id: str
    market_program_id: str
    target_orders: str
    withdraw_queue: str
    lp_vault: str
    owner: str
    lp_reserve: int


@dataclass
class MarketState:
    own_address: str
    vault_signer_nonce: int
    base_mint: str
    quote_mint: str
    base_vault: str
    quote_vault: str
    request_queue: str
    event_queue: str
    bids: str
    asks: str


@dataclass
class OpenOrdersTotals:
    base_token_free: int
    base_token_total: int
    quote_token_free: int
    quote_token_total: int


@dataclass
class MintInfo:
    """SPL mint account. Authorities are None when renounced."""

    supply: int
    decimals: int
    mint_authority: str | None = None
    freeze_authority: str | None = None


def _pubkey_at(data: bytes, offset: int) -> str:
    return str(Pubkey.from_bytes(data[offset : offset + 32]))


def _require_size(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ParseError(f"{what} data too short: {len(data)} < {size}")


def decode_liquidity_state(data: bytes) -> LiquidityState:
    _require_size(data, LIQUIDITY_STATE_SIZE, "Liquidity state")
    u64s = struct.unpack_from("<32Q", data, 0)
    keys = {
        name: _pubkey_at(data, _LIQUIDITY_PUBKEYS_OFFSET + i * 32)
        for i, name in enumerate(_LIQUIDITY_PUBKEYS)
    }
    (lp_reserve,) = struct.unpack_from("<Q", data, 720)
    return LiquidityState(
        base_decimals=u64s[4],
        quote_decimals=u64s[5],
        swap_fee_numerator=u64s[22],
        swap_fee_denominator=u64s[23],
        base_need_take_pnl=u64s[24],
        quote_need_take_pnl=u64s[25],
        pool_open_time=u64s[28],
        lp_reserve=lp_reserve,
        **keys,
    )


def decode_market_state(data: bytes) -> MarketState:
    _require_size(data, MARKET_STATE_SIZE, "Market state")
    (nonce,) = struct.unpack_from("<Q", data, 45)
    return MarketState(
        own_address=_pubkey_at(data, 13),
        vault_signer_nonce=nonce,
        base_mint=_pubkey_at(data, 53),
        quote_mint=_pubkey_at(data, 85),
        base_vault=_pubkey_at(data, 117),
        quote_vault=_pubkey_at(data, 165),
        request_queue=_pubkey_at(data, 221),
        event_queue=_pubkey_at(data, 253),
        bids=_pubkey_at(data, 285),
        asks=_pubkey_at(data, 317),
    )


def decode_open_orders(data: bytes) -> OpenOrdersTotals:
    _require_size(data, OPEN_ORDERS_MIN_SIZE, "Open orders")
    base_free, base_total, quote_free, quote_total = struct.unpack_from("<4Q", data, 77)
    return OpenOrdersTotals(
        base_token_free=base_free,
        base_token_total=base_total,
        quote_token_free=quote_free,
        quote_token_total=quote_total,
    )


def decode_mint(data: bytes) -> MintInfo:
    _require_size(data, SPL_MINT_SIZE, "Mint")

    # COption<Pubkey>: 4 bytes option tag + 32 bytes key
    mint_authority: str | None = None
    if struct.unpack_from("<I", data, 0)[0] == 1:
        mint_authority = _pubkey_at(data, 4)
        if mint_authority == SYSTEM_PROGRAM_ID:
            mint_authority = None

    supply = struct.unpack_from("<Q", data, 36)[0]
    decimals = data[44]

    freeze_authority: str | None = None
    if struct.unpack_from("<I", data, 46)[0] == 1:
        freeze_authority = _pubkey_at(data, 50)
        if freeze_authority == SYSTEM_PROGRAM_ID:
            freeze_authority = None

    return MintInfo(
        supply=supply,
        decimals=decimals,
        mint_authority=mint_authority,
        freeze_authority=freeze_authority,
    )


# ─── Program-derived addresses ────────────────────────────────────────


def derive_amm_authority(program_id: str) -> str:
    pda, _bump = Pubkey.find_program_address(
        [AMM_AUTHORITY_SEED], Pubkey.from_string(program_id)
    )
    return str(pda)


def derive_market_authority(market_id: str, vault_signer_nonce: int, market_program_id: str) -> str:
    """OpenBook vault signer: seeds are the market address and the u64 nonce."""
    seeds = [bytes(Pubkey.from_string(market_id)), vault_signer_nonce.to_bytes(8, "little")]
    return str(Pubkey.create_program_address(seeds, Pubkey.from_string(market_program_id)))


def derive_metadata_address(mint: str) -> str:
    program = Pubkey.from_string(METAPLEX_METADATA_PROGRAM_ID)
    pda, _bump = Pubkey.find_program_address(
        [b"metadata", bytes(program), bytes(Pubkey.from_string(mint))], program
    )
    return str(pda)
