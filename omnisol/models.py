"""On-chain account records, all frozen.

Field declaration order is the wire order used by :mod:`omnisol.codec.accounts`.
"""
from __future__ import annotations

from dataclasses import dataclass

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class Pool:
    """Global staking pool."""

    pool_mint: Pubkey
    authority: Pubkey
    stake_source: Pubkey
    oracle: Pubkey
    fee_receiver: Pubkey
    deposit_amount: int
    min_deposit: int
    withdraw_fee: int
    deposit_fee: int
    mint_fee: int
    storage_fee: int
    authority_bump: int
    is_active: bool


@dataclass(frozen=True)
class QueueMember:
    """Single oracle priority-queue entry."""

    collateral: Pubkey
    amount: int


@dataclass(frozen=True)
class Oracle:
    """Liquidation priority list, highest priority first."""

    authority: Pubkey
    priority_queue: tuple[QueueMember, ...] = ()


@dataclass(frozen=True)
class Collateral:
    """A stake account or LP deposit pledged by a user."""

    user: Pubkey
    pool: Pubkey
    source_stake: Pubkey
    delegated_stake: Pubkey
    delegation_stake: int
    amount: int
    liquidated_amount: int
    created_at: int
    creation_epoch: int
    bump: int
    is_native: bool

    @property
    def rest_amount(self) -> int:
        """Delegated stake not yet liquidated."""
        return self.delegation_stake - self.liquidated_amount


@dataclass(frozen=True)
class User:
    wallet: Pubkey
    rate: int
    num_of_collaterals: int
    is_blocked: bool
    requests_amount: int
    last_withdraw_index: int


@dataclass(frozen=True)
class WithdrawInfo:
    """Pending withdraw request; ``authority`` is the requesting wallet."""

    authority: Pubkey
    amount: int
    created_at: int
    index: int


@dataclass(frozen=True)
class Whitelist:
    whitelisted_token: Pubkey
    pool: Pubkey
    staking_pool: Pubkey


@dataclass(frozen=True)
class Manager:
    manager: Pubkey


@dataclass(frozen=True)
class Liquidator:
    authority: Pubkey


@dataclass(frozen=True)
class LiquidationFee:
    """Process-wide liquidation fee (basis points)."""

    fee: int
    fee_receiver: Pubkey


@dataclass(frozen=True)
class UpdatePoolData:
    """Argument of ``update_pool``; ``None`` leaves a setting unchanged."""

    fee_receiver: Pubkey | None = None
    withdraw_fee: int | None = None
    deposit_fee: int | None = None
    mint_fee: int | None = None
    storage_fee: int | None = None
    min_deposit: int | None = None
