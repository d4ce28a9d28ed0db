"""Program ids and well-known Solana addresses."""
from typing import Final

from solders.pubkey import Pubkey

# Omnisol program as declared by the on-chain crate.
OMNISOL_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string(
    "6sccaGNYx7RSjVgFD13UKE7dyUiNavr2KXgeqaQvZUz7"
)

# Core programs
SYSTEM_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string(
    "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
)
ASSOCIATED_TOKEN_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)
STAKE_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string(
    "Stake11111111111111111111111111111111111111"
)
UNSTAKE_IT_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string(
    "unpXTU2Ndrc7WWNyEhQWe4udTzSibLPi25SXv2xbCHQ"
)

# Sysvars
SYSVAR_CLOCK_ID: Final[Pubkey] = Pubkey.from_string(
    "SysvarC1ock11111111111111111111111111111111"
)

# Upper bound for every fee expressed in basis points.
MAX_FEE_BPS: Final[int] = 10_000

# Capacity of the oracle's on-chain priority queue.
PRIORITY_QUEUE_LENGTH: Final[int] = 255
