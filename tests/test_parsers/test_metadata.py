"""Tests for Metaplex metadata decoding and the token-list fallback."""

import struct
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.parsers.errors import ParseError
from src.parsers.metadata import MetadataLookup, decode_metadata_account
from src.parsers.raydium.decoder import derive_metadata_address
from src.parsers.solana_rpc import AccountInfo, SolanaRpcClient

MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def _borsh_string(value: str, padded_to: int) -> bytes:
    raw = value.encode().ljust(padded_to, b"\x00")
    return struct.pack("<I", len(raw)) + raw


def _metadata_account(
    name: str = "Radar Coin",
    symbol: str = "RDR",
    uri: str = "https://arweave.net/radar.json",
    *,
    creators: int = 1,
    is_mutable: bool = True,
) -> bytes:
    data = bytes([4]) + b"\x01" * 32 + b"\x02" * 32
    data += _borsh_string(name, 32) + _borsh_string(symbol, 10) + _borsh_string(uri, 200)
    data += struct.pack("<H", 500)
    if creators:
        data += b"\x01" + struct.pack("<I", creators) + b"\x03" * (34 * creators)
    else:
        data += b"\x00"
    data += b"\x00"  # primary sale
    data += bytes([1 if is_mutable else 0])
    return data + b"\x00" * 50


def _response(status: int, payload: object) -> MagicMock:
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status
    resp.json.return_value = payload
    return resp


class TestDecodeMetadataAccount:
    def test_strips_padding(self):
        meta = decode_metadata_account(_metadata_account())
        assert meta.name == "Radar Coin"
        assert meta.symbol == "RDR"
        assert meta.uri == "https://arweave.net/radar.json"
        assert meta.is_mutable is True

    def test_without_creators(self):
        meta = decode_metadata_account(_metadata_account(creators=0, is_mutable=False))
        assert meta.is_mutable is False

    def test_several_creators(self):
        meta = decode_metadata_account(_metadata_account(creators=3, is_mutable=False))
        assert meta.is_mutable is False

    def test_truncated_raises(self):
        with pytest.raises(ParseError):
            decode_metadata_account(_metadata_account()[:80])


@pytest.fixture
def rpc() -> AsyncMock:
    return AsyncMock(spec=SolanaRpcClient)


@pytest.fixture
def lookup(rpc: AsyncMock) -> MetadataLookup:
    lookup = MetadataLookup(rpc, token_list_url="https://tokens.example/list.json")
    lookup._http = AsyncMock(spec=httpx.AsyncClient)
    return lookup


class TestMetadataLookup:
    async def test_metaplex_with_off_chain_json(self, lookup, rpc):
        rpc.get_account_info.return_value = AccountInfo(
            address=derive_metadata_address(MINT), data=_metadata_account(), owner="meta", lamports=1
        )
        lookup._http.get.return_value = _response(
            200,
            {
                "name": "Radar Coin",
                "image": "https://arweave.net/radar.png",
                "description": "Pool radar",
                "twitter": "https://x.com/radar",
                "extensions": {"website": "https://radar.example"},
            },
        )

        meta = await lookup.lookup(MINT)

        rpc.get_account_info.assert_awaited_once_with(derive_metadata_address(MINT))
        assert meta.name == "Radar Coin"
        assert meta.symbol == "RDR"
        assert meta.image == "https://arweave.net/radar.png"
        assert meta.description == "Pool radar"
        assert meta.is_mutable is True
        assert meta.extensions == {
            "twitter": "https://x.com/radar",
            "website": "https://radar.example",
        }

    async def test_off_chain_failure_keeps_on_chain_fields(self, lookup, rpc):
        rpc.get_account_info.return_value = AccountInfo(
            address="pda", data=_metadata_account(), owner="meta", lamports=1
        )
        lookup._http.get.side_effect = httpx.ConnectError("offline")

        meta = await lookup.lookup(MINT)
        assert meta.name == "Radar Coin"
        assert meta.image is None

    async def test_token_list_fallback(self, lookup, rpc):
        rpc.get_account_info.return_value = None
        lookup._http.get.return_value = _response(
            200,
            {
                "tokens": [
                    {"chainId": 101, "address": MINT, "name": "USD Coin", "symbol": "USDC",
                     "logoURI": "https://logo/usdc.png", "extensions": {"website": "https://circle.com"}},
                    {"chainId": 103, "address": "devnet", "name": "Dev", "symbol": "DEV"},
                ]
            },
        )

        meta = await lookup.lookup(MINT)
        assert meta.symbol == "USDC"
        assert meta.image == "https://logo/usdc.png"
        assert meta.extensions == {"website": "https://circle.com"}

    async def test_token_list_cached(self, lookup, rpc):
        rpc.get_account_info.return_value = None
        lookup._http.get.return_value = _response(200, {"tokens": []})

        assert await lookup.lookup(MINT) is None
        assert await lookup.lookup(MINT) is None
        assert lookup._http.get.await_count == 1

    async def test_absent_everywhere(self, lookup, rpc):
        rpc.get_account_info.return_value = None
        lookup._http.get.side_effect = httpx.ConnectError("offline")
        assert await lookup.lookup(MINT) is None

    async def test_malformed_off_chain_fields_ignored(self, lookup, rpc):
        rpc.get_account_info.return_value = AccountInfo(
            address="pda", data=_metadata_account(name=""), owner="meta", lamports=1
        )
        lookup._http.get.return_value = _response(
            200,
            {"name": 42, "image": {"x": 1}, "description": ["a"], "twitter": None, "telegram": "  "},
        )

        meta = await lookup.lookup(MINT)
        assert meta.name is None
        assert meta.symbol == "RDR"
        assert meta.image is None
        assert meta.description is None
        assert meta.extensions is None

    async def test_token_list_body_not_an_object(self, lookup, rpc):
        rpc.get_account_info.return_value = None
        lookup._http.get.return_value = _response(200, [{"address": MINT}])
        assert await lookup.lookup(MINT) is None

    async def test_token_list_skips_malformed_entries(self, lookup, rpc):
        rpc.get_account_info.return_value = None
        lookup._http.get.return_value = _response(
            200,
            {"tokens": ["junk", {"chainId": 101}, {"chainId": 101, "address": MINT, "name": 7, "symbol": "USDC"}]},
        )

        meta = await lookup.lookup(MINT)
        assert meta.symbol == "USDC"
        assert meta.name is None
