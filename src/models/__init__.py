from src.models.base import Base
from src.models.token import Token
from src.models.trade import Trade

__all__ = [
    "Base",
    "Token",
    "Trade",
]
