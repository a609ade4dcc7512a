"""Solana wallet management: keypair loading, balance checks and ATA derivation.

Private key is loaded ONCE at startup and never logged or exposed.
Only the public key is shown in logs and __repr__.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.message import MessageV0  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.transaction import VersionedTransaction  # type: ignore[import-untyped]

from src.parsers.errors import RpcError
from src.parsers.raydium.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from src.parsers.solana_rpc import SolanaRpcClient

LAMPORTS_PER_SOL = 1_000_000_000


@dataclass
class WalletTokenBalance:
    mint: str
    account: str
    amount: int  # raw
    decimals: int


@dataclass
class WalletInfo:
    address: str
    sol_balance: float
    tokens: list[WalletTokenBalance] = field(default_factory=list)


def _parse_token_account(item: dict) -> WalletTokenBalance:
    info = item["account"]["data"]["parsed"]["info"]
    token_amount = info["tokenAmount"]
    return WalletTokenBalance(
        mint=info["mint"],
        account=item["pubkey"],
        amount=int(token_amount.get("amount", "0")),
        decimals=int(token_amount.get("decimals", 0)),
    )


class SolanaWallet:
    """The single trading keypair plus its on-chain balance queries.

    Security: the private key is only reachable through ``sign``.
    __repr__ and logging show only the public key.
    """

    def __init__(self, private_key_base58: str, rpc: SolanaRpcClient) -> None:
        if not private_key_base58:
            raise ValueError("Wallet private key is empty")

        self._keypair = Keypair.from_base58_string(private_key_base58)
        self._rpc = rpc
        logger.info(f"[WALLET] Loaded wallet: {self.pubkey_str}")

    def __repr__(self) -> str:
        return f"SolanaWallet(pubkey={self.pubkey_str})"

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    @property
    def pubkey_str(self) -> str:
        return str(self._keypair.pubkey())

    def sign(self, message: MessageV0) -> VersionedTransaction:
        return VersionedTransaction(message, [self._keypair])

    async def get_sol_balance(self) -> float:
        """SOL balance in SOL (not lamports). Returns 0.0 on error."""
        try:
            lamports = await self._rpc.get_balance(self.pubkey_str)
        except RpcError as e:
            logger.warning(f"[WALLET] getBalance failed: {e}")
            return 0.0
        return lamports / LAMPORTS_PER_SOL

    async def get_token_balance(self, mint: str) -> tuple[int, int]:
        """SPL token balance for a mint as (raw_amount, decimals).

        Returns (0, 0) on error or if the wallet holds no account for the mint.
        """
        try:
            accounts = await self._rpc.get_token_accounts_by_owner(self.pubkey_str, mint=mint)
            if not accounts:
                return 0, 0
            # Usually only one ATA per mint
            balance = _parse_token_account(accounts[0])
        except (RpcError, KeyError, IndexError, ValueError) as e:
            logger.warning(f"[WALLET] getTokenBalance failed for {mint[:12]}: {e}")
            return 0, 0
        return balance.amount, balance.decimals

    async def get_token_accounts(self) -> list[WalletTokenBalance]:
        """Every SPL token account owned by the wallet."""
        accounts = await self._rpc.get_token_accounts_by_owner(
            self.pubkey_str, program_id=TOKEN_PROGRAM_ID
        )
        balances: list[WalletTokenBalance] = []
        for item in accounts:
            try:
                balances.append(_parse_token_account(item))
            except (KeyError, ValueError) as e:
                logger.debug(f"[WALLET] Skipping unparsable token account: {e}")
        return balances

    async def fetch_wallet_info(self) -> WalletInfo:
        sol_balance = await self.get_sol_balance()
        tokens = await self.get_token_accounts()
        return WalletInfo(address=self.pubkey_str, sol_balance=sol_balance, tokens=tokens)

    def get_ata_address(self, mint_str: str) -> Pubkey:
        """Derive Associated Token Account address for a mint."""
        return derive_ata(self.pubkey, Pubkey.from_string(mint_str))


def derive_ata(owner: Pubkey, mint: Pubkey) -> Pubkey:
    ata, _bump = Pubkey.find_program_address(
        [bytes(owner), bytes(Pubkey.from_string(TOKEN_PROGRAM_ID)), bytes(mint)],
        Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID),
    )
    return ata
