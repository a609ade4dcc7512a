"""Raydium AMM v4 / OpenBook / SPL program constants."""

RAYDIUM_AMM_V4_PROGRAM_ID = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
OPENBOOK_PROGRAM_ID = "srmqPvymJeFKQ4zGQed1GFppgkRHL9kaELCbyksJtPX"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
METAPLEX_METADATA_PROGRAM_ID = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

SOL_MINT = "So11111111111111111111111111111111111111112"
SOL_DECIMALS = 9

# Log markers
POOL_INIT_MARKER = "initialize2"
OPEN_TIME_MARKER = "init_pc_amount"

# Seed of the AMM authority PDA
AMM_AUTHORITY_SEED = b"amm authority"

# Position of each account in the initialize2 instruction's account list,
# keyed by AMM program version.
AMM_INIT_ACCOUNT_LAYOUTS: dict[int, dict[str, int]] = {
    4: {
        "id": 4,
        "authority": 5,
        "open_orders": 6,
        "lp_mint": 7,
        "base_mint": 8,
        "quote_mint": 9,
        "base_vault": 10,
        "quote_vault": 11,
        "target_orders": 13,
        "market_program_id": 15,
        "market_id": 16,
    },
}

# Raydium swapBaseIn instruction tag
SWAP_BASE_IN_INSTRUCTION = 9

# SPL token instruction tags used around a swap
TOKEN_IX_CLOSE_ACCOUNT = 9
TOKEN_IX_SYNC_NATIVE = 17
# createIdempotent of the associated token program
ATA_IX_CREATE_IDEMPOTENT = 1
