from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class Trade(Base):
    """Stored TradeRecord (live swap or simulation)."""

    __tablename__ = "trades"

    tx_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    token_address: Mapped[str] = mapped_column(String(64))
    input_mint: Mapped[str] = mapped_column(String(64))
    output_mint: Mapped[str] = mapped_column(String(64))
    input_amount: Mapped[float | None] = mapped_column(Float)
    output_amount: Mapped[float | None] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(10), default="pending")
    elapsed_sec: Mapped[float | None] = mapped_column(Float)
    is_simulation: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("idx_trades_token_created", "token_address", "created_at"),)
