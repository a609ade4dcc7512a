"""Manual triggers: a closed set of command types and one dispatcher.

Each command maps to exactly one operation; unknown types are a TypeError,
never a lookup by name.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from loguru import logger

from src.db.stores import TokenStore
from src.models.records import TokenRecord, TradeRecord
from src.parsers.errors import NotFoundError, RadarError
from src.parsers.raydium.models import PoolKeys
from src.parsers.raydium.pool_manager import PoolManager, is_valid_address
from src.parsers.token_enricher import TokenEnricher
from src.trading.risk_evaluator import RiskFlag, evaluate_risk_flags
from src.trading.trade_executor import TradeExecutor, ensure_pool_keys
from src.trading.wallet import SolanaWallet, WalletInfo


@dataclass(frozen=True)
class RefreshToken:
    token_address: str


@dataclass(frozen=True)
class ExecuteTrade:
    token_address: str
    to_token: bool  # True: SOL -> token, False: token -> SOL
    amount: float
    check_risk: bool = True
    execute_swap: bool = False


@dataclass(frozen=True)
class GetRiskFlags:
    token_address: str


@dataclass(frozen=True)
class GetPoolKeys:
    token_address: str


@dataclass(frozen=True)
class GetWalletInfo:
    pass


@dataclass(frozen=True)
class ShouldSell:
    token_address: str


Command = Union[RefreshToken, ExecuteTrade, GetRiskFlags, GetPoolKeys, GetWalletInfo, ShouldSell]

CommandResult = Union[TokenRecord, TradeRecord, set[RiskFlag], PoolKeys, WalletInfo, bool, None]


class CommandDispatcher:
    """Routes a command to the enricher, executor, store or wallet.

    ``executor`` and ``wallet`` are None when no wallet key is configured;
    trade-related commands then raise RadarError.
    """

    def __init__(
        self,
        token_store: TokenStore,
        pool_manager: PoolManager,
        enricher: TokenEnricher,
        executor: TradeExecutor | None = None,
        wallet: SolanaWallet | None = None,
    ) -> None:
        self._token_store = token_store
        self._pool_manager = pool_manager
        self._enricher = enricher
        self._executor = executor
        self._wallet = wallet

    async def dispatch(self, command: Command) -> CommandResult:
        address = getattr(command, "token_address", None)
        if address is not None and not is_valid_address(address):
            raise ValueError(f"Invalid token address: {address!r}")

        logger.debug(f"[CMD] {type(command).__name__} {address or ''}")

        if isinstance(command, RefreshToken):
            return await self._enricher.refresh(command.token_address)

        if isinstance(command, GetRiskFlags):
            record = await self._token_store.get(command.token_address)
            if record is None:
                raise NotFoundError(f"Unknown token {command.token_address}")
            return evaluate_risk_flags(record)

        if isinstance(command, ExecuteTrade):
            if command.amount <= 0:
                raise ValueError(f"Trade amount must be positive, got {command.amount}")
            return await self._require_executor().execute(
                command.token_address,
                command.to_token,
                command.amount,
                check_risk=command.check_risk,
                execute_swap=command.execute_swap,
            )

        if isinstance(command, GetPoolKeys):
            record = await ensure_pool_keys(
                self._token_store, self._pool_manager, command.token_address
            )
            return record.pool_state

        if isinstance(command, ShouldSell):
            return await self._require_executor().should_sell(command.token_address)

        if isinstance(command, GetWalletInfo):
            if self._wallet is None:
                raise RadarError("No wallet configured")
            return await self._wallet.fetch_wallet_info()

        raise TypeError(f"Unsupported command: {type(command).__name__}")

    def _require_executor(self) -> TradeExecutor:
        if self._executor is None:
            raise RadarError("Trading disabled: no wallet configured")
        return self._executor
