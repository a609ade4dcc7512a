"""Pydantic models for Jupiter Price API v2 responses."""

from decimal import Decimal

from pydantic import BaseModel


class JupiterPrice(BaseModel):
    """USD price of a single token from Jupiter."""

    id: str  # mint address
    mint_symbol: str = ""
    vs_token: str = ""
    price: Decimal | None = None

    model_config = {"extra": "ignore"}
