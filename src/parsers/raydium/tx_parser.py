"""Parse a Raydium AMM v4 ``initialize2`` transaction into pool keys.

Input is the ``result`` of ``getTransaction`` with ``jsonParsed`` encoding.
Any deviation from the expected shape raises ParseError; the caller drops
the event.
"""

import json
import re
from typing import Any

from src.parsers.errors import ParseError
from src.parsers.raydium.constants import (
    AMM_INIT_ACCOUNT_LAYOUTS,
    OPEN_TIME_MARKER,
    SOL_DECIMALS,
    SOL_MINT,
    TOKEN_PROGRAM_ID,
)
from src.parsers.raydium.models import PoolInitInfo, PoolKeys

# Bare identifier keys of a relaxed object literal: `{nonce: 254, open_time: 1}`
_BARE_KEY_RE = re.compile(r"([{,])\s*([A-Za-z_]\w*)\s*:")


def repair_relaxed_json(text: str) -> str:
    """Quote bare identifier keys so the text becomes strict JSON."""
    return _BARE_KEY_RE.sub(r'\1"\2":', text)


def parse_open_time_log(log_messages: list[str]) -> int:
    """Return ``open_time`` from the ``init_pc_amount`` log line."""
    line = next((m for m in log_messages if OPEN_TIME_MARKER in m), None)
    if line is None:
        raise ParseError(f"No log line containing {OPEN_TIME_MARKER}")
    start = line.find("{")
    if start < 0:
        raise ParseError(f"No object literal in log line: {line[:80]}")
    try:
        payload = json.loads(repair_relaxed_json(line[start:]))
        return int(payload["open_time"])
    except (ValueError, KeyError, TypeError) as e:
        raise ParseError(f"Bad init log entry: {e}") from e


def _iter_inner(tx: dict) -> list[dict]:
    meta = tx.get("meta") or {}
    return [
        ix
        for group in meta.get("innerInstructions") or []
        for ix in group.get("instructions", [])
    ]


def _find_parsed(
    inner: list[dict],
    ix_type: str,
    *,
    program_id: str | None = None,
    **info_match: str,
) -> dict | None:
    """First inner instruction of ``ix_type`` whose parsed info matches every kwarg."""
    for ix in inner:
        parsed = ix.get("parsed")
        if not isinstance(parsed, dict) or parsed.get("type") != ix_type:
            continue
        if program_id is not None and ix.get("programId") != program_id:
            continue
        info = parsed.get("info", {})
        if all(info.get(k) == v for k, v in info_match.items()):
            return info
    return None


def _decimals_from_balances(tx: dict, mint: str) -> int:
    meta = tx.get("meta") or {}
    for key in ("preTokenBalances", "postTokenBalances"):
        for balance in meta.get(key) or []:
            if balance.get("mint") == mint:
                return int(balance["uiTokenAmount"]["decimals"])
    raise ParseError(f"No token balance entry for {mint[:12]} to read decimals from")


def _side_decimals(tx: dict, mint: str) -> int:
    if mint == SOL_MINT:
        return SOL_DECIMALS
    return _decimals_from_balances(tx, mint)


def parse_pool_init_transaction(
    tx: dict[str, Any],
    program_id: str,
    layout_version: int = 4,
) -> PoolInitInfo:
    layout = AMM_INIT_ACCOUNT_LAYOUTS.get(layout_version)
    if layout is None:
        raise ParseError(f"Unknown AMM layout version {layout_version}")

    try:
        instructions = tx["transaction"]["message"]["instructions"]
    except (KeyError, TypeError) as e:
        raise ParseError("Transaction has no message instructions") from e

    init_ix = next((ix for ix in instructions if ix.get("programId") == program_id), None)
    if init_ix is None:
        raise ParseError(f"No instruction for program {program_id[:12]}")

    accounts: list[str] = init_ix.get("accounts") or []
    if len(accounts) <= max(layout.values()):
        raise ParseError(f"Init instruction has {len(accounts)} accounts, layout needs more")
    acc = {name: accounts[pos] for name, pos in layout.items()}

    inner = _iter_inner(tx)
    lp_mint = acc["lp_mint"]

    lp_init = _find_parsed(inner, "initializeMint", mint=lp_mint)
    if lp_init is None:
        raise ParseError("No initializeMint for the LP mint")
    lp_mint_to = _find_parsed(inner, "mintTo", mint=lp_mint)
    if lp_mint_to is None:
        raise ParseError("No mintTo for the LP mint")
    base_transfer = _find_parsed(
        inner, "transfer", program_id=TOKEN_PROGRAM_ID, destination=acc["base_vault"]
    )
    if base_transfer is None:
        raise ParseError("No transfer into the base vault")
    quote_transfer = _find_parsed(
        inner, "transfer", program_id=TOKEN_PROGRAM_ID, destination=acc["quote_vault"]
    )
    if quote_transfer is None:
        raise ParseError("No transfer into the quote vault")

    open_time = parse_open_time_log((tx.get("meta") or {}).get("logMessages") or [])

    base_mint, quote_mint = acc["base_mint"], acc["quote_mint"]
    # When base is wrapped SOL the pair is swapped: SOL decimals go to the base side
    base_decimals = _side_decimals(tx, base_mint)
    quote_decimals = _side_decimals(tx, quote_mint)

    try:
        pool_keys = PoolKeys(
            id=acc["id"],
            base_mint=base_mint,
            quote_mint=quote_mint,
            lp_mint=lp_mint,
            base_decimals=base_decimals,
            quote_decimals=quote_decimals,
            lp_decimals=int(lp_init["decimals"]),
            version=layout_version,
            program_id=program_id,
            authority=acc["authority"],
            open_orders=acc["open_orders"],
            target_orders=acc["target_orders"],
            base_vault=acc["base_vault"],
            quote_vault=acc["quote_vault"],
            lp_vault=lp_mint_to["account"],
            market_program_id=acc["market_program_id"],
            market_id=acc["market_id"],
        )
        return PoolInitInfo(
            pool_keys=pool_keys,
            open_time=open_time,
            lp_reserve=int(lp_mint_to["amount"]),
            base_reserve=int(base_transfer["amount"]),
            quote_reserve=int(quote_transfer["amount"]),
        )
    except (KeyError, ValueError, TypeError) as e:
        raise ParseError(f"Bad pool init field: {e}") from e


def token_address_of(pool_keys: PoolKeys) -> str:
    """The non-native mint of the pool; the key a TokenRecord is stored under."""
    return pool_keys.quote_mint if pool_keys.base_mint == SOL_MINT else pool_keys.base_mint
