"""Program-derived address (PDA) derivation and the Omnisol seed catalogue.

Derivation matches the Solana runtime:

    candidate = sha256(seed_0 || ... || seed_n || bump || program_id || "ProgramDerivedAddress")

The bump is searched from 255 down to 0 and the first candidate that is *not*
a valid ed25519 point wins, so no private key can ever sign for the address.

Seed catalogue (fixed wire format shared with the on-chain program):
    - Pool authority:   ["pool_authority", pool]
    - Mint authority:   ["mint_authority"]
    - User:             ["user", wallet]
    - Collateral:       ["collateral", source_stake, user_pda]
    - WithdrawInfo:     ["withdraw", wallet, index_le_u64]
    - Manager:          ["manager", wallet]
    - Liquidator:       ["liquidator", wallet]
    - Whitelist:        ["whitelist", token]
    - Oracle:           ["oracle"]
    - LiquidationFee:   ["liquidation_fee"]
"""
from __future__ import annotations

import hashlib
import struct
from functools import lru_cache
from typing import Sequence

from solders.pubkey import Pubkey

from .constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    OMNISOL_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    UNSTAKE_IT_PROGRAM_ID,
)
from .errors import ExhaustedBumpSeeds, InvalidSeeds

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LEN = 32
MAX_SEEDS = 16

POOL_AUTHORITY_SEED = b"pool_authority"
MINT_AUTHORITY_SEED = b"mint_authority"
USER_SEED = b"user"
COLLATERAL_SEED = b"collateral"
WITHDRAW_INFO_SEED = b"withdraw"
MANAGER_SEED = b"manager"
LIQUIDATOR_SEED = b"liquidator"
WHITELIST_SEED = b"whitelist"
ORACLE_SEED = b"oracle"
LIQUIDATION_FEE_SEED = b"liquidation_fee"


# ---------------------------------------------------------------------------
# Generic derivation
# ---------------------------------------------------------------------------


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise InvalidSeeds(f"Too many seeds: {len(seeds)} > {MAX_SEEDS}")
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise InvalidSeeds(
                f"Seed {bytes(seed).hex()} is {len(seed)} bytes, max {MAX_SEED_LEN}"
            )


def _hash_candidate(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    return Pubkey(hasher.digest())


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Hash seeds (bump included) into an address; reject on-curve results."""
    seeds = [bytes(s) for s in seeds]
    _check_seeds(seeds)
    candidate = _hash_candidate(seeds, program_id)
    if candidate.is_on_curve():
        raise InvalidSeeds("Derived address falls on the ed25519 curve")
    return candidate


@lru_cache(maxsize=4096)
def _find_program_address(
    seeds: tuple[bytes, ...], program_id: Pubkey
) -> tuple[Pubkey, int]:
    _check_seeds(seeds + (b"\x00",))
    for bump in range(255, -1, -1):
        candidate = _hash_candidate(seeds + (bytes([bump]),), program_id)
        if not candidate.is_on_curve():
            return candidate, bump
    raise ExhaustedBumpSeeds(seeds, program_id)


def find_program_address(
    seeds: Sequence[bytes], program_id: Pubkey
) -> tuple[Pubkey, int]:
    """Return the canonical ``(address, bump)`` for ``seeds`` under ``program_id``.

    Raises:
        InvalidSeeds: more than 15 seeds, or a seed longer than 32 bytes.
        ExhaustedBumpSeeds: no bump in 255..0 yields an off-curve address.
    """
    return _find_program_address(tuple(bytes(s) for s in seeds), program_id)


def u64_seed(value: int) -> bytes:
    """Encode an integer seed as 8 little-endian bytes."""
    return struct.pack("<Q", value)


# ---------------------------------------------------------------------------
# Omnisol seed catalogue
# ---------------------------------------------------------------------------


def pool_authority(pool: Pubkey, program_id: Pubkey = OMNISOL_PROGRAM_ID) -> tuple[Pubkey, int]:
    return find_program_address([POOL_AUTHORITY_SEED, bytes(pool)], program_id)


def mint_authority(program_id: Pubkey = OMNISOL_PROGRAM_ID) -> tuple[Pubkey, int]:
    return find_program_address([MINT_AUTHORITY_SEED], program_id)


def user(wallet: Pubkey, program_id: Pubkey = OMNISOL_PROGRAM_ID) -> tuple[Pubkey, int]:
    return find_program_address([USER_SEED, bytes(wallet)], program_id)


def collateral(
    source_stake: Pubkey,
    user_pda: Pubkey,
    program_id: Pubkey = OMNISOL_PROGRAM_ID,
) -> tuple[Pubkey, int]:
    """Collateral PDA for a deposited stake account (or LP mint) of a user.

    ``user_pda`` is the User account address, not the wallet.
    """
    return find_program_address(
        [COLLATERAL_SEED, bytes(source_stake), bytes(user_pda)], program_id
    )


def withdraw_info(
    wallet: Pubkey, index: int, program_id: Pubkey = OMNISOL_PROGRAM_ID
) -> tuple[Pubkey, int]:
    """WithdrawInfo PDA for the ``index``-th withdraw request of a wallet."""
    if index < 0:
        raise InvalidSeeds(f"Withdraw index must be non-negative, got {index}")
    return find_program_address(
        [WITHDRAW_INFO_SEED, bytes(wallet), u64_seed(index)], program_id
    )


def manager(wallet: Pubkey, program_id: Pubkey = OMNISOL_PROGRAM_ID) -> tuple[Pubkey, int]:
    return find_program_address([MANAGER_SEED, bytes(wallet)], program_id)


def liquidator(wallet: Pubkey, program_id: Pubkey = OMNISOL_PROGRAM_ID) -> tuple[Pubkey, int]:
    return find_program_address([LIQUIDATOR_SEED, bytes(wallet)], program_id)


def whitelist(token: Pubkey, program_id: Pubkey = OMNISOL_PROGRAM_ID) -> tuple[Pubkey, int]:
    return find_program_address([WHITELIST_SEED, bytes(token)], program_id)


def oracle(program_id: Pubkey = OMNISOL_PROGRAM_ID) -> tuple[Pubkey, int]:
    return find_program_address([ORACLE_SEED], program_id)


def liquidation_fee(program_id: Pubkey = OMNISOL_PROGRAM_ID) -> tuple[Pubkey, int]:
    return find_program_address([LIQUIDATION_FEE_SEED], program_id)


def associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    """Associated token account of ``owner`` for ``mint``."""
    address, _ = find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def stake_account_record(
    pool_account: Pubkey,
    stake_account: Pubkey,
    program_id: Pubkey = UNSTAKE_IT_PROGRAM_ID,
) -> tuple[Pubkey, int]:
    """Record the unstake pool keeps for a stake account it takes in."""
    return find_program_address([bytes(pool_account), bytes(stake_account)], program_id)
