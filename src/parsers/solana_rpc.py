"""Solana JSON-RPC client shared by discovery, enrichment, wallet and swap code.

Read calls retry on 429 / 5xx / transport errors. Transaction submission and
simulation are attempted exactly once: a failed trade is never re-sent.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from src.parsers.errors import RpcError
from src.parsers.rate_limiter import RateLimiter

MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]


@dataclass
class AccountInfo:
    """Raw account as returned by getAccountInfo (base64 encoding)."""

    address: str
    data: bytes
    owner: str
    lamports: int


class SolanaRpcClient:
    """Async HTTP JSON-RPC client for a Solana node."""

    def __init__(
        self,
        rpc_url: str,
        *,
        max_rps: float = 10.0,
        timeout: float = 15.0,
        commitment: str = "confirmed",
    ) -> None:
        if not rpc_url:
            raise ValueError("RPC URL is empty")
        self._rpc_url = rpc_url
        self._commitment = commitment
        self._rate_limiter = RateLimiter(max_rps)
        self._http = httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def close(self) -> None:
        await self._http.aclose()

    # ─── Transport ───────────────────────────────────────────────────

    async def _call(self, method: str, params: list[Any], *, retry: bool = True) -> Any:
        """POST one JSON-RPC request and return its ``result`` field.

        Raises RpcError on transport failure, a non-JSON body or an RPC-level
        error object.
        """
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        attempts = MAX_RETRIES + 1 if retry else 1

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
            try:
                await self._rate_limiter.acquire()
                resp = await self._http.post(self._rpc_url, json=payload)
            except httpx.TransportError as e:
                if last_attempt:
                    raise RpcError(f"{method}: {type(e).__name__}: {e}") from e
                logger.debug(f"[RPC] {method} {type(e).__name__}, retry in {delay}s")
                await asyncio.sleep(delay)
                continue
            except httpx.HTTPError as e:
                raise RpcError(f"{method}: {type(e).__name__}: {e}") from e

            if resp.status_code == 429 or resp.status_code >= 500:
                if last_attempt:
                    raise RpcError(f"{method}: HTTP {resp.status_code}")
                logger.debug(f"[RPC] {method} HTTP {resp.status_code}, retry in {delay}s")
                await asyncio.sleep(delay)
                continue

            if resp.status_code != 200:
                raise RpcError(f"{method}: HTTP {resp.status_code}")

            try:
                data = resp.json()
            except ValueError as e:
                raise RpcError(f"{method}: body is not JSON: {e}") from e
            if not isinstance(data, dict):
                raise RpcError(f"{method}: unexpected response {type(data).__name__}")
            if "error" in data:
                error = data["error"]
                if isinstance(error, dict):
                    raise RpcError(f"{method}: {error.get('code', '?')} {error.get('message', error)}")
                raise RpcError(f"{method}: {error}")
            return data.get("result")

        raise RpcError(f"{method}: retries exhausted")

    # ─── Transactions ────────────────────────────────────────────────

    async def get_parsed_transaction(self, signature: str) -> dict | None:
        """getTransaction (jsonParsed, v0 messages). None while not yet visible."""
        return await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._commitment,
                },
            ],
        )

    async def get_latest_blockhash(self) -> str:
        result = await self._call("getLatestBlockhash", [{"commitment": "finalized"}])
        return result["value"]["blockhash"]

    async def send_transaction(self, tx_b64: str, *, skip_preflight: bool = False) -> str:
        result = await self._call(
            "sendTransaction",
            [
                tx_b64,
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": self._commitment,
                },
            ],
            retry=False,
        )
        if not result:
            raise RpcError("sendTransaction returned no signature")
        return str(result)

    async def simulate_transaction(self, tx_b64: str) -> dict:
        """simulateTransaction; returns the ``value`` object ({err, logs, unitsConsumed})."""
        result = await self._call(
            "simulateTransaction",
            [tx_b64, {"encoding": "base64", "commitment": self._commitment}],
            retry=False,
        )
        return result["value"]

    # ─── Accounts ────────────────────────────────────────────────────

    async def get_account_info(self, address: str) -> AccountInfo | None:
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self._commitment}],
        )
        value = (result or {}).get("value")
        if not value:
            return None
        raw = value.get("data", [])
        data_b64 = raw[0] if isinstance(raw, list) else raw
        return AccountInfo(
            address=address,
            data=base64.b64decode(data_b64),
            owner=value.get("owner", ""),
            lamports=int(value.get("lamports", 0)),
        )

    async def get_parsed_account_info(self, address: str) -> dict | None:
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "jsonParsed", "commitment": self._commitment}],
        )
        return (result or {}).get("value")

    async def get_balance(self, address: str) -> int:
        """Lamport balance."""
        result = await self._call("getBalance", [address, {"commitment": self._commitment}])
        return int(result.get("value", 0))

    async def get_token_largest_accounts(self, mint: str) -> list[dict]:
        result = await self._call(
            "getTokenLargestAccounts", [mint, {"commitment": self._commitment}]
        )
        return list(result.get("value", []))

    async def get_token_account_balance(self, account: str) -> dict:
        """Returns the uiTokenAmount object: amount, decimals, uiAmount, uiAmountString."""
        result = await self._call(
            "getTokenAccountBalance", [account, {"commitment": self._commitment}]
        )
        return result["value"]

    async def get_token_accounts_by_owner(
        self,
        owner: str,
        *,
        mint: str | None = None,
        program_id: str | None = None,
    ) -> list[dict]:
        if (mint is None) == (program_id is None):
            raise ValueError("Exactly one of mint or program_id is required")
        account_filter = {"mint": mint} if mint else {"programId": program_id}
        result = await self._call(
            "getTokenAccountsByOwner",
            [owner, account_filter, {"encoding": "jsonParsed", "commitment": self._commitment}],
        )
        return list(result.get("value", []))

    async def get_program_accounts(
        self, program_id: str, filters: list[dict]
    ) -> list[AccountInfo]:
        result = await self._call(
            "getProgramAccounts",
            [
                program_id,
                {"encoding": "base64", "commitment": "finalized", "filters": filters},
            ],
        )
        accounts: list[AccountInfo] = []
        for item in result or []:
            account = item["account"]
            accounts.append(
                AccountInfo(
                    address=item["pubkey"],
                    data=base64.b64decode(account["data"][0]),
                    owner=account.get("owner", ""),
                    lamports=int(account.get("lamports", 0)),
                )
            )
        return accounts
