"""Raydium AMM v4 swap: quote from pool reserves, build instructions, sign, send or simulate.

Instruction layout of one swap transaction:
  1. ComputeBudget setComputeUnitPrice
  2. ATA createIdempotent for input and output mints
  3. (SOL in)  system transfer into the WSOL ATA + syncNative
  4. Raydium swapBaseIn
  5. (SOL side) closeAccount on the WSOL ATA to unwrap leftovers

Submission is attempted once; there is no resend loop.
"""

from __future__ import annotations

import base64
import struct
import uuid
from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from solders.compute_budget import set_compute_unit_price  # type: ignore[import-untyped]
from solders.hash import Hash  # type: ignore[import-untyped]
from solders.instruction import AccountMeta, Instruction  # type: ignore[import-untyped]
from solders.message import MessageV0  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.system_program import TransferParams, transfer  # type: ignore[import-untyped]

from src.parsers.errors import SwapError
from src.parsers.raydium.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    ATA_IX_CREATE_IDEMPOTENT,
    SOL_MINT,
    SWAP_BASE_IN_INSTRUCTION,
    SYSTEM_PROGRAM_ID,
    TOKEN_IX_CLOSE_ACCOUNT,
    TOKEN_IX_SYNC_NATIVE,
    TOKEN_PROGRAM_ID,
)
from src.parsers.raydium.models import PoolKeys
from src.parsers.raydium.pool_manager import PoolManager
from src.parsers.solana_rpc import SolanaRpcClient
from src.trading.wallet import SolanaWallet, derive_ata

DEFAULT_SLIPPAGE_PCT = 5
DEFAULT_PRIORITY_FEE_MICRO_LAMPORTS = 500_000

_TOKEN_PROGRAM = Pubkey.from_string(TOKEN_PROGRAM_ID)


@dataclass
class SwapQuote:
    amount_in_raw: int
    expected_out_raw: int
    min_out_raw: int
    in_decimals: int
    out_decimals: int

    @property
    def input_amount(self) -> float:
        return self.amount_in_raw / 10**self.in_decimals

    @property
    def expected_output_amount(self) -> float:
        return self.expected_out_raw / 10**self.out_decimals


@dataclass
class SwapResult:
    """A submitted (or simulated) swap. ``tx_id`` is a UUID for simulations."""

    tx_id: str
    input_mint: str
    output_mint: str
    quote: SwapQuote
    is_simulation: bool
    simulation_error: object | None = None
    simulation_logs: list[str] | None = None


def compute_amount_out(
    amount_in: float,
    reserve_in: float,
    reserve_out: float,
    fee_numerator: int,
    fee_denominator: int,
) -> float:
    """Constant-product output for ``amount_in`` after the pool's swap fee."""
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0.0
    fee = fee_numerator / fee_denominator if fee_denominator else 0.0
    amount_in_after_fee = amount_in * (1 - fee)
    return reserve_out * amount_in_after_fee / (reserve_in + amount_in_after_fee)


def apply_slippage(amount_out: float, slippage_pct: float) -> float:
    return amount_out * (100 - slippage_pct) / 100


def _to_raw(amount: float, decimals: int) -> int:
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


def _meta(address: str | Pubkey, *, signer: bool = False, writable: bool = False) -> AccountMeta:
    pubkey = address if isinstance(address, Pubkey) else Pubkey.from_string(address)
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=writable)


def build_swap_base_in_instruction(
    keys: PoolKeys,
    user_source: Pubkey,
    user_destination: Pubkey,
    owner: Pubkey,
    amount_in: int,
    min_amount_out: int,
) -> Instruction:
    if not keys.has_market:
        raise SwapError(f"Pool {keys.id[:12]} has no market accounts")
    data = struct.pack("<BQQ", SWAP_BASE_IN_INSTRUCTION, amount_in, min_amount_out)
    accounts = [
        _meta(_TOKEN_PROGRAM),
        _meta(keys.id, writable=True),
        _meta(keys.authority),
        _meta(keys.open_orders, writable=True),
        _meta(keys.target_orders, writable=True),
        _meta(keys.base_vault, writable=True),
        _meta(keys.quote_vault, writable=True),
        _meta(keys.market_program_id),
        _meta(keys.market_id, writable=True),
        _meta(keys.market_bids, writable=True),
        _meta(keys.market_asks, writable=True),
        _meta(keys.market_event_queue, writable=True),
        _meta(keys.market_base_vault, writable=True),
        _meta(keys.market_quote_vault, writable=True),
        _meta(keys.market_authority),
        _meta(user_source, writable=True),
        _meta(user_destination, writable=True),
        _meta(owner, signer=True),
    ]
    return Instruction(Pubkey.from_string(keys.program_id), data, accounts)


def build_create_ata_idempotent(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    accounts = [
        _meta(payer, signer=True, writable=True),
        _meta(derive_ata(owner, mint), writable=True),
        _meta(owner),
        _meta(mint),
        _meta(SYSTEM_PROGRAM_ID),
        _meta(_TOKEN_PROGRAM),
    ]
    return Instruction(
        Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID), bytes([ATA_IX_CREATE_IDEMPOTENT]), accounts
    )


def build_sync_native(account: Pubkey) -> Instruction:
    return Instruction(_TOKEN_PROGRAM, bytes([TOKEN_IX_SYNC_NATIVE]), [_meta(account, writable=True)])


def build_close_account(account: Pubkey, destination: Pubkey, owner: Pubkey) -> Instruction:
    accounts = [
        _meta(account, writable=True),
        _meta(destination, writable=True),
        _meta(owner, signer=True),
    ]
    return Instruction(_TOKEN_PROGRAM, bytes([TOKEN_IX_CLOSE_ACCOUNT]), accounts)


class RaydiumSwapClient:
    """Builds and submits swapBaseIn transactions against one pool."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        wallet: SolanaWallet,
        pool_manager: PoolManager,
        *,
        slippage_pct: float = DEFAULT_SLIPPAGE_PCT,
        priority_fee_micro_lamports: int = DEFAULT_PRIORITY_FEE_MICRO_LAMPORTS,
    ) -> None:
        self._rpc = rpc
        self._wallet = wallet
        self._pool_manager = pool_manager
        self._slippage_pct = slippage_pct
        self._priority_fee = priority_fee_micro_lamports

    @property
    def slippage_pct(self) -> float:
        return self._slippage_pct

    async def quote(
        self, keys: PoolKeys, input_mint: str, output_mint: str, amount: float
    ) -> SwapQuote:
        """Expected and minimum output for ``amount`` (UI units) of ``input_mint``."""
        if {input_mint, output_mint} != {keys.base_mint, keys.quote_mint}:
            raise SwapError(f"Pool {keys.id[:12]} does not pair {input_mint[:12]}/{output_mint[:12]}")

        state = await self._pool_manager.get_liquidity_state(keys.id)
        base_amount, quote_amount = await self._pool_manager.get_vault_amounts(state)

        if input_mint == keys.base_mint:
            reserve_in, reserve_out = base_amount, quote_amount
            in_decimals, out_decimals = keys.base_decimals, keys.quote_decimals
        else:
            reserve_in, reserve_out = quote_amount, base_amount
            in_decimals, out_decimals = keys.quote_decimals, keys.base_decimals

        expected_out = compute_amount_out(
            amount, reserve_in, reserve_out, state.swap_fee_numerator, state.swap_fee_denominator
        )
        min_out = apply_slippage(expected_out, self._slippage_pct)
        return SwapQuote(
            amount_in_raw=_to_raw(amount, in_decimals),
            expected_out_raw=_to_raw(expected_out, out_decimals),
            min_out_raw=_to_raw(min_out, out_decimals),
            in_decimals=in_decimals,
            out_decimals=out_decimals,
        )

    def build_instructions(
        self, keys: PoolKeys, input_mint: str, output_mint: str, quote: SwapQuote
    ) -> list[Instruction]:
        owner = self._wallet.pubkey
        in_mint = Pubkey.from_string(input_mint)
        out_mint = Pubkey.from_string(output_mint)
        source = derive_ata(owner, in_mint)
        destination = derive_ata(owner, out_mint)

        ixs: list[Instruction] = [
            set_compute_unit_price(self._priority_fee),
            build_create_ata_idempotent(owner, owner, in_mint),
            build_create_ata_idempotent(owner, owner, out_mint),
        ]
        if input_mint == SOL_MINT:
            ixs.append(
                transfer(
                    TransferParams(from_pubkey=owner, to_pubkey=source, lamports=quote.amount_in_raw)
                )
            )
            ixs.append(build_sync_native(source))

        ixs.append(
            build_swap_base_in_instruction(
                keys, source, destination, owner, quote.amount_in_raw, quote.min_out_raw
            )
        )

        if input_mint == SOL_MINT:
            ixs.append(build_close_account(source, owner, owner))
        elif output_mint == SOL_MINT:
            ixs.append(build_close_account(destination, owner, owner))
        return ixs

    async def swap(
        self,
        keys: PoolKeys,
        input_mint: str,
        output_mint: str,
        amount: float,
        *,
        execute: bool,
    ) -> SwapResult:
        """Quote, build, sign and either send (``execute``) or simulate the swap.

        Raises SwapError or RpcError on failure.
        """
        quote = await self.quote(keys, input_mint, output_mint, amount)
        if quote.amount_in_raw <= 0:
            raise SwapError(f"Swap amount rounds to zero: {amount}")

        ixs = self.build_instructions(keys, input_mint, output_mint, quote)
        blockhash = Hash.from_string(await self._rpc.get_latest_blockhash())
        msg = MessageV0.try_compile(
            payer=self._wallet.pubkey,
            instructions=ixs,
            address_lookup_table_accounts=[],
            recent_blockhash=blockhash,
        )
        tx = self._wallet.sign(msg)
        tx_b64 = base64.b64encode(bytes(tx)).decode("ascii")
        logger.debug(
            f"[SWAP] TX built: {len(ixs)} instructions, in={quote.amount_in_raw} "
            f"min_out={quote.min_out_raw}, blockhash={str(blockhash)[:16]}..."
        )

        if execute:
            signature = await self._rpc.send_transaction(tx_b64)
            logger.info(f"[SWAP] Sent {input_mint[:8]}→{output_mint[:8]} tx={signature}")
            return SwapResult(
                tx_id=signature,
                input_mint=input_mint,
                output_mint=output_mint,
                quote=quote,
                is_simulation=False,
            )

        value = await self._rpc.simulate_transaction(tx_b64)
        tx_id = str(uuid.uuid4())
        logger.info(
            f"[SWAP] Simulated {input_mint[:8]}→{output_mint[:8]} id={tx_id} err={value.get('err')}"
        )
        return SwapResult(
            tx_id=tx_id,
            input_mint=input_mint,
            output_mint=output_mint,
            quote=quote,
            is_simulation=True,
            simulation_error=value.get("err"),
            simulation_logs=value.get("logs"),
        )
