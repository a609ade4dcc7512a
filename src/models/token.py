from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, BigInteger, DateTime, Float, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class Token(Base):
    """Stored TokenRecord. Nested structures live in JSON columns."""

    __tablename__ = "tokens"

    token_address: Mapped[str] = mapped_column(String(64), primary_key=True)
    init_tx: Mapped[str | None] = mapped_column(String(128))
    pool_id: Mapped[str | None] = mapped_column(String(64))
    pool_state: Mapped[dict | None] = mapped_column(JSON)
    # u64 amounts can exceed BIGINT
    lp_reserve: Mapped[Decimal | None] = mapped_column(Numeric(24, 0))
    mint_authority: Mapped[str | None] = mapped_column(String(64))
    freeze_authority: Mapped[str | None] = mapped_column(String(64))
    supply: Mapped[Decimal | None] = mapped_column(Numeric(24, 0))
    decimals: Mapped[int | None] = mapped_column()
    holders_distribution: Mapped[list | None] = mapped_column(JSON)
    burned_lp_percentage: Mapped[float | None] = mapped_column(Float)
    parsed_pool_info: Mapped[dict | None] = mapped_column(JSON)
    # "metadata" is reserved on declarative classes
    token_metadata: Mapped[dict | None] = mapped_column("metadata", JSON)
    pool_created_at: Mapped[int | None] = mapped_column(BigInteger)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("idx_tokens_first_seen", "first_seen_at"),)
