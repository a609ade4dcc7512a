"""Tests for TokenStore and TradeStore against a real SQLite database."""

import asyncio
from datetime import timedelta

import pytest

from src.models.records import TokenMetadata, TokenRecord, TradeRecord, TradeStatus, utcnow
from src.parsers.errors import InvalidTradeTransition
from src.parsers.raydium.constants import SOL_MINT


def _trade(token: str, tx_id: str = "sig1", **overrides) -> TradeRecord:
    fields = {
        "tx_id": tx_id,
        "token_address": token,
        "input_mint": SOL_MINT,
        "output_mint": token,
        "input_amount": 1.0,
    }
    fields.update(overrides)
    return TradeRecord(**fields)


class TestTokenStore:
    async def test_insert_and_get(self, token_store, token_mint, make_token_record):
        record = make_token_record(token_mint)
        assert await token_store.insert(record) is True

        stored = await token_store.get(token_mint)
        assert stored.token_address == token_mint
        assert stored.pool_state == record.pool_state
        assert stored.holders_distribution == record.holders_distribution
        assert stored.parsed_pool_info == record.parsed_pool_info
        assert stored.supply == 1_000_000_000_000
        assert stored.first_seen_at.tzinfo is not None

    async def test_get_unknown(self, token_store, token_mint):
        assert await token_store.get(token_mint) is None
        assert await token_store.exists(token_mint) is False

    async def test_duplicate_insert_keeps_first(self, token_store, token_mint):
        assert await token_store.insert(TokenRecord(token_address=token_mint, init_tx="first"))
        assert await token_store.insert(TokenRecord(token_address=token_mint, init_tx="second")) is False
        assert (await token_store.get(token_mint)).init_tx == "first"
        assert await token_store.exists(token_mint)


class TestTokenStoreUpdate:
    async def test_merge_keeps_other_fields(self, token_store, token_mint):
        await token_store.insert(TokenRecord(token_address=token_mint, init_tx="tx", decimals=6))

        updated = await token_store.update(token_mint, {"mint_authority": None, "supply": 42})

        assert updated.init_tx == "tx"
        assert updated.decimals == 6
        assert updated.supply == 42
        assert (await token_store.get(token_mint)).supply == 42

    async def test_first_seen_kept_last_updated_bumped(self, token_store, token_mint):
        await token_store.insert(TokenRecord(token_address=token_mint))
        before = await token_store.get(token_mint)
        await asyncio.sleep(0.01)

        updated = await token_store.update(
            token_mint, {"first_seen_at": utcnow() + timedelta(days=1), "decimals": 9}
        )

        assert updated.first_seen_at == before.first_seen_at
        assert updated.last_updated_at > before.last_updated_at

    async def test_token_address_immutable(self, token_store, token_mint):
        await token_store.insert(TokenRecord(token_address=token_mint))
        with pytest.raises(ValueError, match="immutable"):
            await token_store.update(token_mint, {"token_address": "other"})

    async def test_unknown_address_returns_none(self, token_store, token_mint):
        assert await token_store.update(token_mint, {"decimals": 6}) is None

    async def test_nested_models_round_trip(self, token_store, token_mint, make_pool_keys):
        keys = make_pool_keys(token_mint)
        await token_store.insert(TokenRecord(token_address=token_mint))

        await token_store.update(
            token_mint,
            {
                "pool_id": keys.id,
                "pool_state": keys,
                "metadata": TokenMetadata(name="Radar", symbol="RDR", extensions={"x": "y"}),
            },
        )

        stored = await token_store.get(token_mint)
        assert stored.pool_state == keys
        assert stored.metadata.symbol == "RDR"
        assert stored.metadata.extensions == {"x": "y"}


class TestTradeStore:
    async def test_create_and_get(self, trade_store, token_mint):
        await trade_store.create(_trade(token_mint, is_simulation=True))
        stored = await trade_store.get("sig1")
        assert stored.status is TradeStatus.PENDING
        assert stored.is_simulation is True
        assert stored.elapsed_sec is None
        assert not stored.is_terminal

    async def test_pending_to_success(self, trade_store, token_mint):
        await trade_store.create(_trade(token_mint))
        done = await trade_store.update(
            "sig1",
            {"status": TradeStatus.SUCCESS, "output_amount": 500.0, "elapsed_sec": 4.2},
        )
        assert done.status is TradeStatus.SUCCESS
        assert done.output_amount == 500.0
        assert done.elapsed_sec == 4.2
        assert done.is_terminal

    async def test_pending_amount_patch_allowed(self, trade_store, token_mint):
        await trade_store.create(_trade(token_mint))
        patched = await trade_store.update("sig1", {"input_amount": 0.9})
        assert patched.status is TradeStatus.PENDING
        assert patched.input_amount == 0.9

    async def test_terminal_cannot_move(self, trade_store, token_mint):
        await trade_store.create(_trade(token_mint))
        await trade_store.update("sig1", {"status": TradeStatus.FAILED, "elapsed_sec": 1.0})

        with pytest.raises(InvalidTradeTransition):
            await trade_store.update("sig1", {"status": TradeStatus.SUCCESS, "elapsed_sec": 2.0})
        assert (await trade_store.get("sig1")).status is TradeStatus.FAILED

    async def test_terminal_requires_elapsed(self, trade_store, token_mint):
        await trade_store.create(_trade(token_mint))
        with pytest.raises(InvalidTradeTransition, match="elapsed_sec"):
            await trade_store.update("sig1", {"status": TradeStatus.SUCCESS})

    async def test_elapsed_only_with_terminal(self, trade_store, token_mint):
        await trade_store.create(_trade(token_mint))
        with pytest.raises(InvalidTradeTransition):
            await trade_store.update("sig1", {"elapsed_sec": 1.0})

    async def test_update_unknown_raises(self, trade_store):
        with pytest.raises(KeyError):
            await trade_store.update("missing", {"status": TradeStatus.FAILED, "elapsed_sec": 1.0})

    async def test_find_latest(self, trade_store, token_mint):
        now = utcnow()
        await trade_store.create(_trade(token_mint, "old", created_at=now - timedelta(minutes=5)))
        await trade_store.create(_trade(token_mint, "new", created_at=now))
        await trade_store.create(_trade("OtherToken", "other", created_at=now + timedelta(minutes=1)))

        latest = await trade_store.find_latest(token_mint)
        assert latest.tx_id == "new"

    async def test_find_latest_none(self, trade_store, token_mint):
        assert await trade_store.find_latest(token_mint) is None
