"""TokenStore and TradeStore on SQLAlchemy async sessions.

Records cross the store boundary as pydantic models; rows never leave it.
"""

from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.records import TokenRecord, TradeRecord, TradeStatus, utcnow
from src.models.token import Token
from src.models.trade import Trade
from src.parsers.errors import InvalidTradeTransition


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _token_to_columns(record: TokenRecord) -> dict[str, Any]:
    data = record.model_dump(mode="json", exclude={"metadata", "first_seen_at", "last_updated_at"})
    data["token_metadata"] = (
        record.metadata.model_dump(mode="json") if record.metadata is not None else None
    )
    data["first_seen_at"] = record.first_seen_at
    data["last_updated_at"] = record.last_updated_at
    return data


def _row_to_token(row: Token) -> TokenRecord:
    return TokenRecord(
        token_address=row.token_address,
        init_tx=row.init_tx,
        pool_id=row.pool_id,
        pool_state=row.pool_state,
        lp_reserve=int(row.lp_reserve) if row.lp_reserve is not None else None,
        mint_authority=row.mint_authority,
        freeze_authority=row.freeze_authority,
        supply=int(row.supply) if row.supply is not None else None,
        decimals=row.decimals,
        holders_distribution=row.holders_distribution,
        burned_lp_percentage=row.burned_lp_percentage,
        parsed_pool_info=row.parsed_pool_info,
        metadata=row.token_metadata,
        pool_created_at=row.pool_created_at,
        first_seen_at=_as_utc(row.first_seen_at),
        last_updated_at=_as_utc(row.last_updated_at),
    )


def _row_to_trade(row: Trade) -> TradeRecord:
    return TradeRecord(
        tx_id=row.tx_id,
        token_address=row.token_address,
        input_mint=row.input_mint,
        output_mint=row.output_mint,
        input_amount=row.input_amount,
        output_amount=row.output_amount,
        status=TradeStatus(row.status),
        elapsed_sec=row.elapsed_sec,
        is_simulation=row.is_simulation,
        created_at=_as_utc(row.created_at),
    )


class TokenStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, address: str) -> TokenRecord | None:
        async with self._session_factory() as session:
            row = await session.get(Token, address)
            return _row_to_token(row) if row is not None else None

    async def exists(self, address: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Token.token_address).where(Token.token_address == address)
            )
            return result.scalar_one_or_none() is not None

    async def insert(self, record: TokenRecord) -> bool:
        """Insert a new record. Returns False (and writes nothing) if the address exists."""
        async with self._session_factory() as session:
            if await session.get(Token, record.token_address) is not None:
                return False
            session.add(Token(**_token_to_columns(record)))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(f"[DB] Token {record.token_address[:12]} inserted concurrently")
                return False
        return True

    async def update(self, address: str, fields: dict[str, Any]) -> TokenRecord | None:
        """Overwrite the given fields and bump ``last_updated_at``.

        Returns the stored record, or None when the address is unknown.
        """
        if fields.get("token_address", address) != address:
            raise ValueError("token_address is immutable")

        async with self._session_factory() as session:
            row = await session.get(Token, address)
            if row is None:
                return None
            current = _row_to_token(row)
            merged = TokenRecord.model_validate(
                {
                    **dict(current),
                    **fields,
                    "token_address": address,
                    "first_seen_at": current.first_seen_at,
                    "last_updated_at": utcnow(),
                }
            )
            for column, value in _token_to_columns(merged).items():
                setattr(row, column, value)
            await session.commit()
            return merged


class TradeStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, record: TradeRecord) -> None:
        async with self._session_factory() as session:
            session.add(
                Trade(
                    tx_id=record.tx_id,
                    token_address=record.token_address,
                    input_mint=record.input_mint,
                    output_mint=record.output_mint,
                    input_amount=record.input_amount,
                    output_amount=record.output_amount,
                    status=record.status.value,
                    elapsed_sec=record.elapsed_sec,
                    is_simulation=record.is_simulation,
                    created_at=record.created_at,
                )
            )
            await session.commit()

    async def get(self, tx_id: str) -> TradeRecord | None:
        async with self._session_factory() as session:
            row = await session.get(Trade, tx_id)
            return _row_to_trade(row) if row is not None else None

    async def update(self, tx_id: str, fields: dict[str, Any]) -> TradeRecord:
        """Apply a patch. Status may only move pending→success|failed, once,
        and ``elapsed_sec`` is written together with that move and never again.
        """
        async with self._session_factory() as session:
            row = await session.get(Trade, tx_id)
            if row is None:
                raise KeyError(f"Trade {tx_id} not found")

            current = TradeStatus(row.status)
            if current is not TradeStatus.PENDING:
                raise InvalidTradeTransition(f"Trade {tx_id} is already {current.value}")

            new_status = TradeStatus(fields.get("status", current))
            if new_status is TradeStatus.PENDING and "elapsed_sec" in fields:
                raise InvalidTradeTransition("elapsed_sec is set only at the terminal transition")
            if new_status is not TradeStatus.PENDING and fields.get("elapsed_sec") is None:
                raise InvalidTradeTransition(f"{new_status.value} requires elapsed_sec")

            for key in ("input_amount", "output_amount", "elapsed_sec"):
                if key in fields:
                    setattr(row, key, fields[key])
            row.status = new_status.value
            await session.commit()
            return _row_to_trade(row)

    async def find_latest(self, token_address: str) -> TradeRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Trade)
                .where(Trade.token_address == token_address)
                .order_by(Trade.created_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _row_to_trade(row) if row is not None else None
