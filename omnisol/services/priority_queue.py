"""Liquidation priority queue for the oracle account.

Users are ranked by ascending ``rate`` (the lowest rate is liquidated first);
each user contributes every collateral that still has unliquidated stake, in
the order the collaterals were supplied. Blocked users are left out.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

from solders.pubkey import Pubkey

from ..constants import PRIORITY_QUEUE_LENGTH
from ..models import Collateral, QueueMember, User

logger = logging.getLogger(__name__)


def build_priority_queue(
    users: Iterable[tuple[Pubkey, User]],
    collaterals: Iterable[tuple[Pubkey, Collateral]],
    limit: int = PRIORITY_QUEUE_LENGTH,
) -> list[QueueMember]:
    """Rank collaterals for liquidation.

    Args:
        users: ``(user_account_address, User)`` pairs.
        collaterals: ``(collateral_address, Collateral)`` pairs. A collateral
            belongs to the user whose account address equals ``Collateral.user``.
        limit: Maximum queue length.
    """
    by_user: dict[Pubkey, list[tuple[Pubkey, Collateral]]] = {}
    for address, collateral in collaterals:
        by_user.setdefault(collateral.user, []).append((address, collateral))

    ranked = sorted(users, key=lambda item: item[1].rate)

    queue: list[QueueMember] = []
    seen: set[Pubkey] = set()
    for user_address, user in ranked:
        if user.is_blocked:
            logger.debug("Skipping blocked user %s", user_address)
            continue
        for address, collateral in by_user.get(user_address, ()):
            if len(queue) >= limit:
                logger.info("Priority queue truncated at %d entries", limit)
                return queue
            if address in seen or collateral.rest_amount <= 0:
                continue
            seen.add(address)
            queue.append(QueueMember(collateral=address, amount=collateral.rest_amount))

    return queue


def split_queue(queue: Sequence[QueueMember]) -> tuple[list[Pubkey], list[int]]:
    """Shape a queue into the ``addresses``/``values`` arguments of an oracle update."""
    return [m.collateral for m in queue], [m.amount for m in queue]
