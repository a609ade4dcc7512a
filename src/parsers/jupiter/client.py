"""Jupiter Price API v2 client used as the USD price oracle for pool valuation.

A missing price is reported as 0.0, so the liquidity computed from it is 0 and
the quote-liquidity risk flag trips.
"""

import asyncio
from decimal import Decimal

import httpx
from loguru import logger

from src.parsers.jupiter.models import JupiterPrice
from src.parsers.rate_limiter import RateLimiter

BASE_URL = "https://api.jup.ag/price/v2"
MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]


class JupiterPriceOracle:
    """Async HTTP client for Jupiter prices (free tier: 1 RPS, API key optional)."""

    def __init__(self, api_key: str = "", max_rps: float = 1.0) -> None:
        self._rate_limiter = RateLimiter(max_rps)
        headers: dict[str, str] = {}
        if api_key:
            headers["x-api-key"] = api_key
        self._client = httpx.AsyncClient(timeout=10.0, headers=headers)

    async def close(self) -> None:
        await self._client.aclose()

    async def price(self, mint: str) -> float:
        """USD price of ``mint``; 0.0 when Jupiter has none, is unreachable or answers garbage."""
        result = await self.get_price(mint)
        if result is None or result.price is None:
            return 0.0
        return float(result.price)

    async def get_price(self, mint: str) -> JupiterPrice | None:
        params = {"ids": mint}

        for attempt in range(MAX_RETRIES + 1):
            delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
            try:
                await self._rate_limiter.acquire()
                resp = await self._client.get(BASE_URL, params=params)

                if resp.status_code == 429 or resp.status_code >= 500:
                    if attempt < MAX_RETRIES:
                        logger.debug(f"[PRICE] HTTP {resp.status_code}, waiting {delay}s")
                        await asyncio.sleep(delay)
                        continue
                    return None
                if resp.status_code != 200:
                    logger.debug(f"[PRICE] HTTP {resp.status_code} for {mint[:12]}")
                    return None

                return _parse_price(resp.json(), mint)

            except httpx.TransportError as e:
                if attempt < MAX_RETRIES:
                    logger.debug(f"[PRICE] {type(e).__name__}, retry in {delay}s")
                    await asyncio.sleep(delay)
                else:
                    logger.warning(f"[PRICE] Failed after {MAX_RETRIES + 1} attempts: {e}")
                    return None
            except (httpx.HTTPError, ValueError, ArithmeticError) as e:
                logger.debug(f"[PRICE] Bad answer for {mint[:12]}: {type(e).__name__}: {e}")
                return None

        return None


def _parse_price(data: object, mint: str) -> JupiterPrice | None:
    if not isinstance(data, dict) or not isinstance(data.get("data"), dict):
        return None
    token_data = data["data"].get(mint)
    if not isinstance(token_data, dict):
        return None

    price_str = token_data.get("price")
    if price_str is None:
        return None

    price = Decimal(str(price_str))
    if not price.is_finite() or price < 0:
        return None

    return JupiterPrice(
        id=mint,
        mint_symbol=token_data.get("mintSymbol", ""),
        vs_token=token_data.get("vsToken", ""),
        price=price,
    )
