"""Token metadata lookup: on-chain Metaplex metadata first, static token list second.

Metaplex metadata account (Borsh):
  0       key (u8)
  1:33    update authority
  33:65   mint
  65      name   (u32 len + bytes, NUL padded)
          symbol (u32 len + bytes)
          uri    (u32 len + bytes)
          seller_fee_basis_points (u16)
          creators: Option<Vec<Creator>> (u8 tag, u32 count, 34 bytes each)
          primary_sale_happened (u8)
          is_mutable (u8)
"""

import struct
from dataclasses import dataclass

import httpx
from loguru import logger

from src.models.records import TokenMetadata
from src.parsers.errors import ParseError
from src.parsers.raydium.decoder import derive_metadata_address
from src.parsers.solana_rpc import SolanaRpcClient

DEFAULT_TOKEN_LIST_URL = (
    "https://raw.githubusercontent.com/solana-labs/token-list/main/src/tokens/solana.tokenlist.json"
)
MAINNET_CHAIN_ID = 101
_CREATOR_SIZE = 34
# Off-chain JSON keys copied into TokenMetadata.extensions
_SOCIAL_KEYS = ("website", "twitter", "telegram", "discord")


@dataclass
class OnChainMetadata:
    name: str
    symbol: str
    uri: str
    is_mutable: bool


def _read_string(data: bytes, offset: int) -> tuple[str, int]:
    (length,) = struct.unpack_from("<I", data, offset)
    offset += 4
    raw = data[offset : offset + length]
    if len(raw) < length:
        raise ParseError("Metadata string runs past account end")
    return raw.decode("utf-8", errors="replace").rstrip("\x00").strip(), offset + length


def decode_metadata_account(data: bytes) -> OnChainMetadata:
    try:
        offset = 65
        name, offset = _read_string(data, offset)
        symbol, offset = _read_string(data, offset)
        uri, offset = _read_string(data, offset)
        offset += 2  # seller fee
        if data[offset] == 1:
            (count,) = struct.unpack_from("<I", data, offset + 1)
            offset += 5 + count * _CREATOR_SIZE
        else:
            offset += 1
        offset += 1  # primary sale
        is_mutable = data[offset] != 0
    except (struct.error, IndexError) as e:
        raise ParseError(f"Bad metadata account: {e}") from e
    return OnChainMetadata(name=name, symbol=symbol, uri=uri, is_mutable=is_mutable)


def _text(value: object) -> str | None:
    """Off-chain JSON is untrusted: only non-empty strings are kept."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _extensions_from(raw: object) -> dict[str, str] | None:
    if not isinstance(raw, dict):
        return None
    links = {k: str(v) for k, v in raw.items() if isinstance(v, (str, int, float))}
    return links or None


class MetadataLookup:
    """Resolves TokenMetadata for a mint. Absence in both sources returns None."""

    def __init__(self, rpc: SolanaRpcClient, token_list_url: str = DEFAULT_TOKEN_LIST_URL) -> None:
        self._rpc = rpc
        self._token_list_url = token_list_url
        self._http = httpx.AsyncClient(timeout=10.0, follow_redirects=True)
        self._token_list: dict[str, dict] | None = None

    async def close(self) -> None:
        await self._http.aclose()

    async def lookup(self, mint: str) -> TokenMetadata | None:
        metadata = await self._from_metaplex(mint)
        if metadata is not None:
            return metadata
        return await self._from_token_list(mint)

    async def _from_metaplex(self, mint: str) -> TokenMetadata | None:
        account = await self._rpc.get_account_info(derive_metadata_address(mint))
        if account is None:
            return None

        on_chain = decode_metadata_account(account.data)
        off_chain = await self._fetch_json(on_chain.uri) if on_chain.uri else {}

        extensions = _extensions_from(off_chain.get("extensions"))
        socials = {k: _text(off_chain.get(k)) for k in _SOCIAL_KEYS}
        socials = {k: v for k, v in socials.items() if v}
        if socials:
            extensions = {**socials, **(extensions or {})}

        return TokenMetadata(
            name=on_chain.name or _text(off_chain.get("name")),
            symbol=on_chain.symbol or _text(off_chain.get("symbol")),
            image=_text(off_chain.get("image")),
            is_mutable=on_chain.is_mutable,
            description=_text(off_chain.get("description")),
            extensions=extensions,
        )

    async def _fetch_json(self, uri: str) -> dict:
        """Off-chain JSON is best effort; any failure yields an empty dict."""
        try:
            resp = await self._http.get(uri)
            if resp.status_code != 200:
                logger.debug(f"[META] HTTP {resp.status_code} for {uri[:60]}")
                return {}
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"[META] Off-chain JSON failed for {uri[:60]}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    async def _load_token_list(self) -> dict[str, dict]:
        if self._token_list is None:
            resp = await self._http.get(self._token_list_url)
            resp.raise_for_status()
            body = resp.json()
            tokens = body.get("tokens") if isinstance(body, dict) else None
            if not isinstance(tokens, list):
                raise ValueError("Token list has no \"tokens\" array")
            self._token_list = {
                t["address"]: t
                for t in tokens
                if isinstance(t, dict)
                and t.get("chainId") == MAINNET_CHAIN_ID
                and isinstance(t.get("address"), str)
            }
            logger.info(f"[META] Token list loaded: {len(self._token_list)} entries")
        return self._token_list

    async def _from_token_list(self, mint: str) -> TokenMetadata | None:
        try:
            token_list = await self._load_token_list()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"[META] Token list unavailable: {e}")
            return None

        entry = token_list.get(mint)
        if entry is None:
            return None
        return TokenMetadata(
            name=_text(entry.get("name")),
            symbol=_text(entry.get("symbol")),
            image=_text(entry.get("logoURI")),
            extensions=_extensions_from(entry.get("extensions")),
        )
