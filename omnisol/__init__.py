"""Client library for the Omnisol staking pool program."""
from .client import OmnisolClient, PreparedInstruction
from .codec import decode_account, encode_account
from .pda import find_program_address
from .units import lamports_to_sol, sol_to_lamports

__all__ = [
    "OmnisolClient",
    "PreparedInstruction",
    "decode_account",
    "encode_account",
    "find_program_address",
    "lamports_to_sol",
    "sol_to_lamports",
]
