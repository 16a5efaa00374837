from solders.pubkey import Pubkey

# Constants
LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"

# Venues
RAYDIUM_AMM_V4 = Pubkey.from_string("675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8")
PUMP_PROGRAM = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")

# Token programs
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
TOKEN_METADATA_PROGRAM = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

# Raydium initialize2 account layout
RAYDIUM_MIN_ACCOUNTS = 10
RAYDIUM_POOL_INDEX = 0
RAYDIUM_LP_MINT_INDEX = 5
RAYDIUM_BASE_MINT_INDEX = 6
RAYDIUM_QUOTE_MINT_INDEX = 7
RAYDIUM_QUOTE_VAULT_INDEX = 9

# Graduation deposits below this are not treated as pool liquidity
MIN_GRADUATION_DEPOSIT_LAMPORTS = 1_000_000_000
