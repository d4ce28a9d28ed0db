"""Liquidation planning: settle withdraw requests from the oracle queue.

Requests are served oldest first. Each one walks the oracle's priority queue
and takes ``min(outstanding, capacity)`` from every usable collateral until it
is settled. Capacity used by an earlier request in the same plan is not offered
again, so a whole plan can be executed without re-reading the chain.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from solders.pubkey import Pubkey

from ..models import Collateral, Oracle, Pool, User, WithdrawInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiquidationStep:
    """One ``liquidate_collateral`` call settling part of a withdraw request."""

    withdraw_info: Pubkey
    request: WithdrawInfo
    collateral_address: Pubkey
    collateral: Collateral
    owner_wallet: Pubkey
    amount: int
    capacity: int

    @property
    def source_stake(self) -> Pubkey:
        """Key the collateral PDA is derived from (stake account or LP mint)."""
        if self.collateral.is_native:
            return self.collateral.delegated_stake
        return self.collateral.source_stake

    @property
    def splits_stake(self) -> bool:
        """True when only part of the collateral's stake is taken."""
        return self.amount < self.capacity


def plan_liquidations(
    requests: Iterable[tuple[Pubkey, WithdrawInfo]],
    users: Iterable[tuple[Pubkey, User]],
    oracle: Oracle,
    collaterals: Iterable[tuple[Pubkey, Collateral]],
    pools: Iterable[tuple[Pubkey, Pool]],
    native_only: bool = False,
) -> list[LiquidationStep]:
    """Turn pending withdraw requests into liquidation steps.

    Args:
        requests: ``(withdraw_info_address, WithdrawInfo)`` pairs.
        users: ``(user_account_address, User)`` pairs.
        oracle: Oracle record holding the priority queue.
        collaterals: ``(collateral_address, Collateral)`` pairs.
        pools: ``(pool_address, Pool)`` pairs.
        native_only: Leave LP-token collaterals out of the plan.

    Requests from blocked or unknown users are skipped. Queue entries whose
    collateral, pool or owner is unknown, or whose pool is paused, are passed
    over.
    """
    users_by_address = dict(users)
    users_by_wallet = {user.wallet: user for user in users_by_address.values()}
    collateral_by_address = dict(collaterals)
    pool_by_address = dict(pools)

    capacity: dict[Pubkey, int] = {}
    for member in oracle.priority_queue:
        capacity.setdefault(member.collateral, member.amount)

    steps: list[LiquidationStep] = []
    for address, request in sorted(requests, key=lambda item: item[1].created_at):
        requester = users_by_wallet.get(request.authority)
        if requester is None:
            logger.warning("No user account for withdraw request %s", address)
            continue
        if requester.is_blocked:
            logger.info("Skipping withdraw request %s of blocked user %s", address, requester.wallet)
            continue

        outstanding = request.amount
        for member in oracle.priority_queue:
            if outstanding <= 0:
                break
            available = capacity[member.collateral]
            if available <= 0:
                continue
            collateral = collateral_by_address.get(member.collateral)
            if collateral is None:
                logger.warning("Queued collateral %s not found", member.collateral)
                continue
            if native_only and not collateral.is_native:
                continue
            pool = pool_by_address.get(collateral.pool)
            if pool is None or not pool.is_active:
                logger.warning(
                    "Pool %s is paused or missing, cannot liquidate %s",
                    collateral.pool,
                    member.collateral,
                )
                continue
            owner = users_by_address.get(collateral.user)
            if owner is None:
                logger.warning("Owner of collateral %s not found", member.collateral)
                continue

            amount = min(outstanding, available)
            steps.append(
                LiquidationStep(
                    withdraw_info=address,
                    request=request,
                    collateral_address=member.collateral,
                    collateral=collateral,
                    owner_wallet=owner.wallet,
                    amount=amount,
                    capacity=available,
                )
            )
            capacity[member.collateral] = available - amount
            outstanding -= amount

        if outstanding > 0:
            logger.warning(
                "Withdraw request %s has %d lamports the queue cannot cover",
                address,
                outstanding,
            )

    return steps
