"""Risk flags for a TokenRecord. Pure: no I/O, deterministic for a given ``now``."""

import time
from enum import Enum

from src.models.records import TokenRecord

MIN_QUOTE_LIQUIDITY_USD = 2000.0
MAX_TOKEN_AGE_SEC = 30
MIN_BURNED_LP_PCT = 80.0
MAX_TOP_HOLDERS_SHARE_PCT = 80.0
MAX_SINGLE_HOLDER_SHARE_PCT = 50.0


class RiskFlag(str, Enum):
    MINT_AUTHORITY_ENABLED = "mintAuthorityEnabled"
    FREEZE_AUTHORITY_ENABLED = "freezeAuthorityEnabled"
    QUOTE_LIQUIDITY_BELOW_THRESHOLD = "quoteLiquidityBelowThreshold"
    NOT_NEW_TOKEN = "notNewToken"
    LIQUIDITY_POOL_NOT_LOCKED = "liquidityPoolNotLocked"
    LIQUIDITY_DISTRIBUTION_ISSUE = "liquidityDistributionIssue"


def _quote_liquidity(record: TokenRecord) -> float:
    """USD liquidity of the pool's quote side; 0 when the pool was never valued."""
    info = record.parsed_pool_info
    if info is None:
        return 0.0
    return info.quote_liquidity


def _has_distribution_issue(record: TokenRecord) -> bool:
    holders = record.holders_distribution or []
    if not holders:
        return False

    decimals = record.decimals or 0
    true_supply = (record.supply or 0) / 10**decimals
    if true_supply <= 0:
        return any(h.amount > 0 for h in holders)

    shares = [(h.amount / 10**decimals) / true_supply * 100 for h in holders[:10]]
    return sum(shares) > MAX_TOP_HOLDERS_SHARE_PCT or any(
        s > MAX_SINGLE_HOLDER_SHARE_PCT for s in shares
    )


def evaluate_risk_flags(record: TokenRecord, now: float | None = None) -> set[RiskFlag]:
    """Return every risk flag that applies to ``record``.

    ``now`` is epoch seconds (defaults to the current time).
    """
    if now is None:
        now = time.time()
    flags: set[RiskFlag] = set()

    if record.mint_authority:
        flags.add(RiskFlag.MINT_AUTHORITY_ENABLED)
    if record.freeze_authority:
        flags.add(RiskFlag.FREEZE_AUTHORITY_ENABLED)

    if _quote_liquidity(record) < MIN_QUOTE_LIQUIDITY_USD:
        flags.add(RiskFlag.QUOTE_LIQUIDITY_BELOW_THRESHOLD)

    if record.pool_created_at is not None and now - record.pool_created_at > MAX_TOKEN_AGE_SEC:
        flags.add(RiskFlag.NOT_NEW_TOKEN)

    burned = record.burned_lp_percentage if record.burned_lp_percentage is not None else 0.0
    if burned < MIN_BURNED_LP_PCT:
        flags.add(RiskFlag.LIQUIDITY_POOL_NOT_LOCKED)

    if _has_distribution_issue(record):
        flags.add(RiskFlag.LIQUIDITY_DISTRIBUTION_ISSUE)

    return flags
