"""Trade execution: pool keys → risk gate → swap → confirmation → persisted outcome.

Every exit path after the risk gate leaves a terminal TradeRecord behind:
``success`` with realised amounts, or ``failed``. No exception escapes
``execute``.
"""

from __future__ import annotations

import asyncio
import time
import uuid

from loguru import logger

from src.db.stores import TokenStore, TradeStore
from src.models.records import TokenRecord, TradeRecord, TradeStatus
from src.parsers.errors import NotFoundError, RadarError, RpcError, SwapError
from src.parsers.raydium.constants import SOL_MINT
from src.parsers.raydium.pool_manager import PoolManager
from src.parsers.solana_rpc import SolanaRpcClient
from src.trading.raydium_swap import RaydiumSwapClient, SwapResult
from src.trading.risk_evaluator import evaluate_risk_flags

CONFIRM_INTERVAL_SEC = 5.0
TAKE_PROFIT_PCT = 20.0
LAMPORTS_PER_SOL = 1_000_000_000


def confirmation_status(tx: dict | None) -> TradeStatus:
    """Map a getTransaction result to a trade status.

    Not visible yet (or no meta) is pending, ``meta.err`` null is success.
    """
    if not tx or tx.get("meta") is None:
        return TradeStatus.PENDING
    if tx["meta"].get("err") is None:
        return TradeStatus.SUCCESS
    return TradeStatus.FAILED


def _token_delta(meta: dict, owner: str, mint: str) -> float:
    def total(key: str) -> float:
        return sum(
            float(b["uiTokenAmount"].get("uiAmount") or 0)
            for b in meta.get(key) or []
            if b.get("owner") == owner and b.get("mint") == mint
        )

    return total("postTokenBalances") - total("preTokenBalances")


def _new_account_rent(pre: list[int], post: list[int]) -> int:
    """Lamports moved into accounts this transaction created and kept open (ATA rent)."""
    return sum(b for a, b in zip(pre[1:], post[1:]) if a == 0 and b > 0)


def _sol_delta(meta: dict) -> float:
    """Fee payer lamport change excluding the network fee and new-account rent, in SOL."""
    pre = meta.get("preBalances") or [0]
    post = meta.get("postBalances") or [0]
    fee = meta.get("fee", 0)
    return (post[0] - pre[0] + fee + _new_account_rent(pre, post)) / LAMPORTS_PER_SOL


def realised_amounts(tx: dict, owner: str, input_mint: str, output_mint: str) -> tuple[float, float]:
    """(input spent, output received) by ``owner`` in a confirmed swap, UI units."""
    meta = tx.get("meta") or {}

    def delta(mint: str) -> float:
        if mint == SOL_MINT:
            return _sol_delta(meta)
        return _token_delta(meta, owner, mint)

    return -delta(input_mint), delta(output_mint)


async def ensure_pool_keys(
    token_store: TokenStore, pool_manager: PoolManager, token_address: str
) -> TokenRecord:
    """Stored record with pool keys, fetching the SOL pool when missing."""
    record = await token_store.get(token_address)
    if record is not None and record.pool_state is not None:
        return record

    logger.info(f"[TRADE] Fetching pool keys for {token_address[:12]}")
    keys = await pool_manager.get_pool_keys(token_address, SOL_MINT)
    if record is None:
        await token_store.insert(
            TokenRecord(token_address=token_address, pool_id=keys.id, pool_state=keys)
        )
    else:
        await token_store.update(token_address, {"pool_id": keys.id, "pool_state": keys})

    stored = await token_store.get(token_address)
    if stored is None or stored.pool_state is None:
        raise NotFoundError(f"Token {token_address} has no pool state after insert")
    return stored


class TradeExecutor:
    def __init__(
        self,
        token_store: TokenStore,
        trade_store: TradeStore,
        pool_manager: PoolManager,
        swap_client: RaydiumSwapClient,
        rpc: SolanaRpcClient,
        owner: str,
        *,
        confirm_interval_sec: float = CONFIRM_INTERVAL_SEC,
        max_wait_sec: float = 0.0,
    ) -> None:
        self._token_store = token_store
        self._trade_store = trade_store
        self._pool_manager = pool_manager
        self._swap_client = swap_client
        self._rpc = rpc
        self._owner = owner
        self._confirm_interval = confirm_interval_sec
        self._max_wait = max_wait_sec

    async def execute(
        self,
        token_address: str,
        to_token: bool,
        amount: float,
        check_risk: bool = True,
        execute_swap: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> TradeRecord | None:
        """Swap ``amount`` SOL into the token (``to_token``) or ``amount`` tokens into SOL.

        Returns the terminal TradeRecord, or None when the risk gate blocked
        the trade (nothing is persisted then).
        """
        start = time.monotonic()
        input_mint, output_mint = (SOL_MINT, token_address) if to_token else (token_address, SOL_MINT)
        trade: TradeRecord | None = None

        try:
            record = await ensure_pool_keys(self._token_store, self._pool_manager, token_address)

            if check_risk:
                flags = evaluate_risk_flags(record)
                if flags:
                    names = sorted(f.value for f in flags)
                    logger.info(f"[TRADE] {token_address[:12]} blocked by risk flags: {names}")
                    return None

            logger.info(
                f"[TRADE] Swapping {amount} {input_mint[:8]}→{output_mint[:8]} "
                f"({'live' if execute_swap else 'simulation'})"
            )
            result = await self._swap_client.swap(
                record.pool_state, input_mint, output_mint, amount, execute=execute_swap
            )

            trade = TradeRecord(
                tx_id=result.tx_id,
                token_address=token_address,
                input_mint=input_mint,
                output_mint=output_mint,
                input_amount=result.quote.input_amount,
                is_simulation=result.is_simulation,
            )
            await self._trade_store.create(trade)

            input_amount, output_amount = await self._resolve(result, cancel, start)

            elapsed = time.monotonic() - start
            done = await self._trade_store.update(
                trade.tx_id,
                {
                    "status": TradeStatus.SUCCESS,
                    "input_amount": input_amount,
                    "output_amount": output_amount,
                    "elapsed_sec": elapsed,
                },
            )
            logger.info(f"[TRADE] {trade.tx_id[:16]} success in {elapsed:.1f}s")
            return done

        except Exception as e:
            logger.warning(f"[TRADE] {token_address[:12]} failed: {type(e).__name__}: {e}")
            return await self._record_failure(
                trade, token_address, input_mint, output_mint, amount, execute_swap, start
            )

    async def _resolve(
        self, result: SwapResult, cancel: asyncio.Event | None, start: float
    ) -> tuple[float, float]:
        """Wait for the terminal outcome; return realised (input, output) amounts."""
        if result.is_simulation:
            if result.simulation_error is not None:
                raise SwapError(f"Simulation failed: {result.simulation_error}")
            return result.quote.input_amount, result.quote.expected_output_amount

        tx = await self._wait_for_confirmation(result.tx_id, cancel, start)
        return realised_amounts(tx, self._owner, result.input_mint, result.output_mint)

    async def _wait_for_confirmation(
        self, signature: str, cancel: asyncio.Event | None, start: float
    ) -> dict:
        """Poll getTransaction every ``confirm_interval_sec`` until success or failure.

        Unbounded unless ``max_wait_sec`` > 0 or ``cancel`` is set.
        """
        while True:
            try:
                tx = await self._rpc.get_parsed_transaction(signature)
            except RpcError as e:
                logger.debug(f"[TRADE] Status poll for {signature[:16]} failed: {e}")
                tx = None

            status = confirmation_status(tx)
            if status is TradeStatus.SUCCESS:
                return tx
            if status is TradeStatus.FAILED:
                raise SwapError(f"Transaction {signature[:16]} failed: {tx['meta']['err']}")

            if self._max_wait > 0 and time.monotonic() - start >= self._max_wait:
                raise SwapError(f"Confirmation timeout after {self._max_wait}s")
            if await self._sleep_or_cancelled(cancel):
                raise SwapError("Confirmation cancelled")

    async def _sleep_or_cancelled(self, cancel: asyncio.Event | None) -> bool:
        if cancel is None:
            await asyncio.sleep(self._confirm_interval)
            return False
        try:
            await asyncio.wait_for(cancel.wait(), timeout=self._confirm_interval)
        except TimeoutError:
            return False
        return True

    async def _record_failure(
        self,
        trade: TradeRecord | None,
        token_address: str,
        input_mint: str,
        output_mint: str,
        amount: float,
        execute_swap: bool,
        start: float,
    ) -> TradeRecord | None:
        elapsed = time.monotonic() - start
        try:
            if trade is not None:
                return await self._trade_store.update(
                    trade.tx_id, {"status": TradeStatus.FAILED, "elapsed_sec": elapsed}
                )
            failed = TradeRecord(
                tx_id=str(uuid.uuid4()),
                token_address=token_address,
                input_mint=input_mint,
                output_mint=output_mint,
                input_amount=amount,
                status=TradeStatus.FAILED,
                elapsed_sec=elapsed,
                is_simulation=not execute_swap,
            )
            await self._trade_store.create(failed)
            return failed
        except Exception as e:
            logger.error(f"[TRADE] Could not record failed trade for {token_address[:12]}: {e}")
            return None

    async def should_sell(self, token_address: str) -> bool | None:
        """True once the pool price in SOL is more than 20% above the last buy price.

        None when there is no pool, no successful buy or the pool can't be read.
        """
        record = await self._token_store.get(token_address)
        if record is None or record.pool_state is None:
            logger.warning(f"[TRADE] {token_address[:12]} has no pool state")
            return None

        last = await self._trade_store.find_latest(token_address)
        if (
            last is None
            or last.status is not TradeStatus.SUCCESS
            or last.input_mint != SOL_MINT
            or not last.input_amount
            or not last.output_amount
        ):
            return None

        keys = record.pool_state
        try:
            state = await self._pool_manager.get_liquidity_state(keys.id)
            base, quote = await self._pool_manager.get_vault_amounts(state)
        except RadarError as e:
            logger.warning(f"[TRADE] Cannot read vaults for {token_address[:12]}: {e}")
            return None

        sol_amount, token_amount = (base, quote) if keys.base_mint == SOL_MINT else (quote, base)
        if token_amount <= 0:
            return None

        current_price = sol_amount / token_amount
        bought_price = last.input_amount / last.output_amount
        gain_pct = (current_price - bought_price) / bought_price * 100
        logger.debug(f"[TRADE] {token_address[:12]} gain since buy: {gain_pct:.1f}%")
        return gain_pct > TAKE_PROFIT_PCT
