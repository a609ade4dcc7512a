"""Tests for TradeExecutor: risk gate, confirmation state machine, failure records."""

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest

from src.models.records import TradeRecord, TradeStatus
from src.parsers.errors import RpcError, SwapError
from src.parsers.raydium.constants import SOL_MINT
from src.parsers.raydium.pool_manager import PoolManager
from src.parsers.solana_rpc import SolanaRpcClient
from src.trading.raydium_swap import RaydiumSwapClient, SwapQuote, SwapResult
from src.trading.trade_executor import (
    TradeExecutor,
    confirmation_status,
    realised_amounts,
)

OWNER = "Owner11111111111111111111111111111111111111"
SIGNATURE = "5" * 88


def _quote() -> SwapQuote:
    return SwapQuote(
        amount_in_raw=1_000_000_000,
        expected_out_raw=12_345_000_000,
        min_out_raw=11_727_750_000,
        in_decimals=9,
        out_decimals=6,
    )


def _confirmed_tx(token_mint: str, err: object = None) -> dict:
    return {
        "meta": {
            "err": err,
            "fee": 5000,
            "preBalances": [10_000_000_000, 0],
            "postBalances": [8_999_995_000, 0],
            "preTokenBalances": [],
            "postTokenBalances": [
                {"owner": OWNER, "mint": token_mint, "uiTokenAmount": {"uiAmount": 12_000.0}},
                {"owner": "Pool", "mint": token_mint, "uiTokenAmount": {"uiAmount": 5.0}},
            ],
        }
    }


class TestConfirmationStatus:
    def test_not_visible_is_pending(self):
        assert confirmation_status(None) is TradeStatus.PENDING

    def test_no_meta_is_pending(self):
        assert confirmation_status({"meta": None}) is TradeStatus.PENDING

    def test_null_err_is_success(self):
        assert confirmation_status({"meta": {"err": None}}) is TradeStatus.SUCCESS

    def test_err_is_failed(self):
        assert confirmation_status({"meta": {"err": {"InstructionError": [0, "X"]}}}) is TradeStatus.FAILED


class TestRealisedAmounts:
    def test_buy(self, token_mint):
        spent, received = realised_amounts(_confirmed_tx(token_mint), OWNER, SOL_MINT, token_mint)
        assert spent == pytest.approx(1.0)
        assert received == pytest.approx(12_000.0)

    def test_sell(self, token_mint):
        tx = {
            "meta": {
                "err": None,
                "fee": 5000,
                "preBalances": [1_000_000_000],
                "postBalances": [1_499_995_000],
                "preTokenBalances": [
                    {"owner": OWNER, "mint": token_mint, "uiTokenAmount": {"uiAmount": 1000.0}}
                ],
                "postTokenBalances": [
                    {"owner": OWNER, "mint": token_mint, "uiTokenAmount": {"uiAmount": None}}
                ],
            }
        }
        spent, received = realised_amounts(tx, OWNER, token_mint, SOL_MINT)
        assert spent == pytest.approx(1000.0)
        assert received == pytest.approx(0.5)

    def test_first_buy_excludes_ata_rent(self, token_mint):
        rent = 2_039_280
        tx = _confirmed_tx(token_mint)
        # payer, new token ATA (kept), WSOL ATA (created and closed), pool vault
        tx["meta"]["preBalances"] = [10_000_000_000, 0, 0, 50_000_000_000]
        tx["meta"]["postBalances"] = [10_000_000_000 - 1_000_000_000 - 5000 - rent, rent, 0, 51_000_000_000]

        spent, _ = realised_amounts(tx, OWNER, SOL_MINT, token_mint)
        assert spent == pytest.approx(1.0)


@pytest.fixture
def swap_client() -> AsyncMock:
    return AsyncMock(spec=RaydiumSwapClient)


@pytest.fixture
def pool_manager() -> AsyncMock:
    return AsyncMock(spec=PoolManager)


@pytest.fixture
def rpc() -> AsyncMock:
    return AsyncMock(spec=SolanaRpcClient)


@pytest.fixture
def executor(token_store, trade_store, pool_manager, swap_client, rpc) -> TradeExecutor:
    return TradeExecutor(
        token_store, trade_store, pool_manager, swap_client, rpc, OWNER, confirm_interval_sec=0
    )


@pytest.fixture
async def stored_token(token_store, token_mint, make_token_record):
    record = make_token_record(token_mint)
    await token_store.insert(record)
    return record


def _simulated(token_mint: str, error: object = None) -> SwapResult:
    return SwapResult(
        tx_id=str(uuid.uuid4()),
        input_mint=SOL_MINT,
        output_mint=token_mint,
        quote=_quote(),
        is_simulation=True,
        simulation_error=error,
    )


def _live(token_mint: str) -> SwapResult:
    return SwapResult(
        tx_id=SIGNATURE,
        input_mint=SOL_MINT,
        output_mint=token_mint,
        quote=_quote(),
        is_simulation=False,
    )


class TestRiskGate:
    async def test_flagged_token_blocked(self, executor, token_store, trade_store, swap_client,
                                         token_mint, make_token_record):
        await token_store.insert(make_token_record(token_mint, mint_authority="Minter"))

        result = await executor.execute(token_mint, True, 1.0)

        assert result is None
        swap_client.swap.assert_not_awaited()
        assert await trade_store.find_latest(token_mint) is None

    async def test_clean_token_passes(self, executor, stored_token, swap_client):
        swap_client.swap.return_value = _simulated(stored_token.token_address)
        result = await executor.execute(stored_token.token_address, True, 1.0)
        assert result is not None
        swap_client.swap.assert_awaited_once()

    async def test_check_risk_off_skips_gate(self, executor, token_store, swap_client,
                                             token_mint, make_token_record):
        await token_store.insert(make_token_record(token_mint, freeze_authority="Freezer"))
        swap_client.swap.return_value = _simulated(token_mint)
        result = await executor.execute(token_mint, True, 1.0, check_risk=False)
        assert result.status is TradeStatus.SUCCESS


class TestSimulation:
    async def test_success_uses_quote(self, executor, stored_token, swap_client, trade_store):
        token = stored_token.token_address
        swap_client.swap.return_value = _simulated(token)

        result = await executor.execute(token, True, 1.0, check_risk=False)

        assert result.status is TradeStatus.SUCCESS
        assert result.is_simulation
        assert result.input_mint == SOL_MINT
        assert result.output_mint == token
        assert result.input_amount == pytest.approx(1.0)
        assert result.output_amount == pytest.approx(12_345.0)
        assert result.elapsed_sec is not None
        stored = await trade_store.get(result.tx_id)
        assert stored.status is TradeStatus.SUCCESS
        swap_client.swap.assert_awaited_once_with(
            stored_token.pool_state, SOL_MINT, token, 1.0, execute=False
        )

    async def test_simulation_error_fails(self, executor, stored_token, swap_client, trade_store):
        token = stored_token.token_address
        swap_client.swap.return_value = _simulated(token, error={"InstructionError": [4, "Custom"]})

        result = await executor.execute(token, True, 1.0, check_risk=False)

        assert result.status is TradeStatus.FAILED
        assert result.elapsed_sec is not None
        assert (await trade_store.get(result.tx_id)).status is TradeStatus.FAILED


class TestLiveConfirmation:
    async def test_confirmed_after_pending_polls(self, executor, stored_token, swap_client, rpc):
        token = stored_token.token_address
        swap_client.swap.return_value = _live(token)
        rpc.get_parsed_transaction.side_effect = [None, RpcError("503"), _confirmed_tx(token)]

        result = await executor.execute(token, True, 1.0, check_risk=False, execute_swap=True)

        assert result.tx_id == SIGNATURE
        assert result.status is TradeStatus.SUCCESS
        assert not result.is_simulation
        assert result.input_amount == pytest.approx(1.0)
        assert result.output_amount == pytest.approx(12_000.0)
        assert rpc.get_parsed_transaction.await_count == 3

    async def test_on_chain_error_fails(self, executor, stored_token, swap_client, rpc, trade_store):
        token = stored_token.token_address
        swap_client.swap.return_value = _live(token)
        rpc.get_parsed_transaction.return_value = _confirmed_tx(token, err={"InstructionError": [3, "X"]})

        result = await executor.execute(token, True, 1.0, check_risk=False, execute_swap=True)

        assert result.status is TradeStatus.FAILED
        assert (await trade_store.get(SIGNATURE)).status is TradeStatus.FAILED

    async def test_timeout_fails(self, token_store, trade_store, pool_manager, swap_client, rpc, stored_token):
        executor = TradeExecutor(
            token_store, trade_store, pool_manager, swap_client, rpc, OWNER,
            confirm_interval_sec=0.01, max_wait_sec=0.05,
        )
        swap_client.swap.return_value = _live(stored_token.token_address)
        rpc.get_parsed_transaction.return_value = None

        result = await executor.execute(
            stored_token.token_address, True, 1.0, check_risk=False, execute_swap=True
        )
        assert result.status is TradeStatus.FAILED

    async def test_cancel_fails(self, token_store, trade_store, pool_manager, swap_client, rpc, stored_token):
        executor = TradeExecutor(
            token_store, trade_store, pool_manager, swap_client, rpc, OWNER, confirm_interval_sec=5.0
        )
        swap_client.swap.return_value = _live(stored_token.token_address)
        rpc.get_parsed_transaction.return_value = None
        cancel = asyncio.Event()
        cancel.set()

        result = await executor.execute(
            stored_token.token_address, True, 1.0, check_risk=False, execute_swap=True, cancel=cancel
        )
        assert result.status is TradeStatus.FAILED


class TestFailureBeforeSubmission:
    async def test_swap_error_creates_failed_record(self, executor, stored_token, swap_client, trade_store):
        token = stored_token.token_address
        swap_client.swap.side_effect = SwapError("no route")

        result = await executor.execute(token, True, 2.5, check_risk=False)

        assert result.status is TradeStatus.FAILED
        uuid.UUID(result.tx_id)
        assert result.input_amount == 2.5
        assert result.is_simulation
        assert result.elapsed_sec is not None
        assert (await trade_store.get(result.tx_id)).status is TradeStatus.FAILED

    async def test_sell_direction_mints(self, executor, stored_token, swap_client):
        token = stored_token.token_address
        swap_client.swap.side_effect = SwapError("no route")
        result = await executor.execute(token, False, 10.0, check_risk=False, execute_swap=True)
        assert result.input_mint == token
        assert result.output_mint == SOL_MINT
        assert not result.is_simulation


class TestPoolKeys:
    async def test_unknown_token_fetches_and_stores_keys(
        self, executor, token_store, pool_manager, swap_client, token_mint, make_pool_keys
    ):
        keys = make_pool_keys(token_mint)
        pool_manager.get_pool_keys.return_value = keys
        swap_client.swap.return_value = _simulated(token_mint)

        await executor.execute(token_mint, True, 1.0, check_risk=False)

        pool_manager.get_pool_keys.assert_awaited_once_with(token_mint, SOL_MINT)
        stored = await token_store.get(token_mint)
        assert stored.pool_state == keys
        assert stored.pool_id == keys.id

    async def test_known_keys_not_refetched(self, executor, stored_token, pool_manager, swap_client):
        swap_client.swap.return_value = _simulated(stored_token.token_address)
        await executor.execute(stored_token.token_address, True, 1.0, check_risk=False)
        pool_manager.get_pool_keys.assert_not_awaited()


class TestShouldSell:
    async def _bought(self, trade_store, token: str) -> None:
        await trade_store.create(
            TradeRecord(
                tx_id=SIGNATURE,
                token_address=token,
                input_mint=SOL_MINT,
                output_mint=token,
                input_amount=1.0,
                output_amount=1000.0,
                status=TradeStatus.SUCCESS,
                elapsed_sec=3.0,
            )
        )

    async def test_gain_over_threshold(self, executor, stored_token, trade_store, pool_manager,
                                       make_liquidity_state):
        token = stored_token.token_address
        await self._bought(trade_store, token)
        pool_manager.get_liquidity_state.return_value = make_liquidity_state(stored_token.pool_state)
        # token is base: 1000 tokens vs 1.5 SOL, bought at 0.001 SOL
        pool_manager.get_vault_amounts.return_value = (1000.0, 1.5)
        assert await executor.should_sell(token) is True

    async def test_gain_under_threshold(self, executor, stored_token, trade_store, pool_manager,
                                        make_liquidity_state):
        token = stored_token.token_address
        await self._bought(trade_store, token)
        pool_manager.get_liquidity_state.return_value = make_liquidity_state(stored_token.pool_state)
        pool_manager.get_vault_amounts.return_value = (1000.0, 1.1)
        assert await executor.should_sell(token) is False

    async def test_no_buy_is_none(self, executor, stored_token):
        assert await executor.should_sell(stored_token.token_address) is None

    async def test_unknown_token_is_none(self, executor, token_mint):
        assert await executor.should_sell(token_mint) is None
