"""Raydium new-pool discovery via Solana logsSubscribe.

The listener only spots ``initialize2`` in a log batch and hands the
signature to a PoolDiscoveryHandler task; the handler does dedup, parse,
insert and the first enrichment pass. Handler failures never reach the
websocket loop.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import websockets
from loguru import logger
from websockets.asyncio.client import ClientConnection

from src.db.stores import TokenStore
from src.models.records import TokenRecord
from src.parsers.dedup import Deduplicator
from src.parsers.errors import NotFoundError, ParseError
from src.parsers.raydium.constants import POOL_INIT_MARKER
from src.parsers.raydium.pool_manager import PoolManager
from src.parsers.raydium.tx_parser import token_address_of
from src.parsers.token_enricher import TokenEnricher


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ACTIVE = "active"


class PoolDiscoveryHandler:
    """Turns one pool-init signature into a stored, enriched TokenRecord."""

    def __init__(
        self,
        dedup: Deduplicator,
        pool_manager: PoolManager,
        token_store: TokenStore,
        enricher: TokenEnricher,
        *,
        fetch_metadata: bool = False,
        gate_on_authority_flags: bool = True,
    ) -> None:
        self._dedup = dedup
        self._pool_manager = pool_manager
        self._token_store = token_store
        self._enricher = enricher
        self._fetch_metadata = fetch_metadata
        self._gate_on_authority_flags = gate_on_authority_flags

    async def handle_signature(self, signature: str) -> TokenRecord | None:
        if self._dedup.seen(signature):
            return None
        self._dedup.mark_seen(signature)

        try:
            info = await self._pool_manager.fetch_pool_keys_for_init_tx(signature)
            keys = info.pool_keys
            address = token_address_of(keys)
            record = TokenRecord(
                token_address=address,
                init_tx=signature,
                pool_id=keys.id,
                pool_state=keys,
                lp_reserve=info.lp_reserve,
                pool_created_at=info.open_time,
            )
            if not await self._token_store.insert(record):
                logger.debug(f"[POOL] {address[:12]} already known, skipping")
                return None

            logger.info(f"[POOL] New pool {keys.id[:12]} for token {address} (tx {signature[:16]})")
            return await self._enricher.enrich(
                address,
                fetch_metadata=self._fetch_metadata,
                gate_on_authority_flags=self._gate_on_authority_flags,
            )
        except (ParseError, NotFoundError) as e:
            logger.warning(f"[POOL] Dropped {signature[:16]}: {e}")
        except Exception as e:
            logger.error(f"[POOL] Handler error for {signature[:16]}: {type(e).__name__}: {e}")
        return None


class LogStreamListener:
    """WebSocket logsSubscribe client for one program, with auto-reconnect."""

    def __init__(
        self,
        ws_url: str,
        program_id: str,
        on_pool_init: Callable[[str], Awaitable[Any]],
        *,
        commitment: str = "finalized",
    ) -> None:
        self._ws_url = ws_url
        self._program_id = program_id
        self._on_pool_init = on_pool_init
        self._commitment = commitment
        self._ws: ClientConnection | None = None
        self._state = ConnectionState.DISCONNECTED
        self._running = False
        self._reconnect_delay = 5.0
        self._max_reconnect_delay = 60.0
        self._message_count = 0
        self._subscription_id: int | None = None
        self._pending_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def message_count(self) -> int:
        return self._message_count

    @property
    def pending_tasks(self) -> int:
        return len(self._pending_tasks)

    async def connect(self) -> None:
        """Connect and listen. Auto-reconnects on disconnect."""
        self._running = True
        while self._running:
            try:
                self._state = ConnectionState.CONNECTING
                async with websockets.connect(
                    self._ws_url,
                    ping_interval=30,
                    ping_timeout=10,
                    close_timeout=5,
                ) as ws:
                    self._ws = ws
                    self._state = ConnectionState.CONNECTED
                    self._reconnect_delay = 5.0
                    await self._subscribe()
                    self._state = ConnectionState.ACTIVE
                    logger.info(f"[LISTENER] logsSubscribe active for {self._program_id[:12]}")
                    await self._listen()
            except (
                websockets.ConnectionClosed,
                ConnectionError,
                OSError,
                TimeoutError,
            ) as e:
                logger.warning(f"[LISTENER] WS disconnected: {e}")
                self._state = ConnectionState.DISCONNECTED
                self._ws = None
                self._subscription_id = None
                if self._running:
                    logger.info(f"[LISTENER] Reconnecting in {self._reconnect_delay:.0f}s...")
                    await asyncio.sleep(self._reconnect_delay)
                    self._reconnect_delay = min(
                        self._reconnect_delay * 2, self._max_reconnect_delay
                    )

    async def _subscribe(self) -> None:
        if not self._ws:
            return
        subscribe_msg = json.dumps({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "logsSubscribe",
            "params": [
                {"mentions": [self._program_id]},
                {"commitment": self._commitment},
            ],
        })
        await self._ws.send(subscribe_msg)
        try:
            response = await asyncio.wait_for(self._ws.recv(), timeout=10.0)
            data = json.loads(response)
            if "result" in data:
                self._subscription_id = data["result"]
                logger.debug(f"[LISTENER] logsSubscribe id={self._subscription_id}")
        except (TimeoutError, json.JSONDecodeError) as e:
            logger.warning(f"[LISTENER] Subscribe confirmation failed: {e}")

    async def _listen(self) -> None:
        if not self._ws:
            return
        async for message in self._ws:
            self._message_count += 1
            try:
                data = json.loads(message)
            except json.JSONDecodeError:
                continue
            self.process_notification(data)

    def process_notification(self, data: dict) -> bool:
        """Spawn a handler task if the notification is a successful pool init.

        {"method": "logsNotification", "params": {"result": {"value": {signature, err, logs}}}}
        """
        params = data.get("params")
        if not params:
            return False

        value = params.get("result", {}).get("value", {})
        signature = value.get("signature")
        logs = value.get("logs") or []
        if not signature or not logs or value.get("err"):
            return False

        if not any(POOL_INIT_MARKER in line for line in logs):
            return False

        task = asyncio.create_task(self._safe_callback(signature))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        return True

    async def _safe_callback(self, signature: str) -> None:
        try:
            await self._on_pool_init(signature)
        except Exception as e:
            logger.error(f"[LISTENER] Callback error for {signature[:16]}: {e}")

    async def stop(self) -> None:
        self._running = False
        if self._ws:
            await self._ws.close()
            self._ws = None
        self._state = ConnectionState.DISCONNECTED
        for task in list(self._pending_tasks):
            task.cancel()
