"""Account kinds: discriminator + Borsh schema + record type, and the decode/encode API."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..errors import TruncatedBuffer, WrongAccountKind
from ..models import (
    Collateral,
    LiquidationFee,
    Liquidator,
    Manager,
    Oracle,
    Pool,
    QueueMember,
    User,
    Whitelist,
    WithdrawInfo,
)
from .layout import (
    BOOL,
    I64,
    PUBKEY,
    U8,
    U16,
    U32,
    U64,
    CStruct,
    Record,
    Vec,
    decode_fields,
    encode_fields,
    fixed_size,
)

logger = logging.getLogger(__name__)

DISCRIMINATOR_SIZE = 8


@dataclass(frozen=True)
class AccountKind:
    """One on-chain account type.

    ``min_body`` is the smallest body of a variable-size kind, i.e. every
    list field empty. Fixed-size kinds leave it unset.
    """

    name: str
    discriminator: bytes
    layout: Record
    min_body: int | None = None

    @property
    def record_type(self) -> type:
        return self.layout.record_type

    @property
    def size(self) -> int | None:
        """Total size including the discriminator, ``None`` if variable."""
        body = fixed_size(self.layout)
        if body is None:
            return None
        return DISCRIMINATOR_SIZE + body

    @property
    def min_size(self) -> int:
        size = self.size
        if size is not None:
            return size
        return DISCRIMINATOR_SIZE + (self.min_body or 0)


# ---------------------------------------------------------------------------
# Layouts
# ---------------------------------------------------------------------------

QUEUE_MEMBER = Record(
    QueueMember,
    CStruct(
        "collateral" / PUBKEY,
        "amount" / U64,
    ),
)

POOL = AccountKind(
    "Pool",
    bytes.fromhex("f19a6d0411b16dbc"),
    Record(
        Pool,
        CStruct(
            "pool_mint" / PUBKEY,
            "authority" / PUBKEY,
            "stake_source" / PUBKEY,
            "oracle" / PUBKEY,
            "fee_receiver" / PUBKEY,
            "deposit_amount" / U64,
            "min_deposit" / U64,
            "withdraw_fee" / U16,
            "deposit_fee" / U16,
            "mint_fee" / U16,
            "storage_fee" / U16,
            "authority_bump" / U8,
            "is_active" / BOOL,
        ),
    ),
)

ORACLE = AccountKind(
    "Oracle",
    bytes.fromhex("8bc283b38cb3e5f4"),
    Record(
        Oracle,
        CStruct(
            "authority" / PUBKEY,
            "priority_queue" / Vec(QUEUE_MEMBER),
        ),
    ),
    # authority + empty queue length prefix
    min_body=36,
)

COLLATERAL = AccountKind(
    "Collateral",
    bytes.fromhex("7b82ea3ffff0ff5c"),
    Record(
        Collateral,
        CStruct(
            "user" / PUBKEY,
            "pool" / PUBKEY,
            "source_stake" / PUBKEY,
            "delegated_stake" / PUBKEY,
            "delegation_stake" / U64,
            "amount" / U64,
            "liquidated_amount" / U64,
            "created_at" / I64,
            "creation_epoch" / U64,
            "bump" / U8,
            "is_native" / BOOL,
        ),
    ),
)

USER = AccountKind(
    "User",
    bytes.fromhex("9f755fe3ef973aec"),
    Record(
        User,
        CStruct(
            "wallet" / PUBKEY,
            "rate" / U64,
            "num_of_collaterals" / U64,
            "is_blocked" / BOOL,
            "requests_amount" / U32,
            "last_withdraw_index" / U32,
        ),
    ),
)

WITHDRAW_INFO = AccountKind(
    "WithdrawInfo",
    bytes.fromhex("67f46b2a87e4516b"),
    Record(
        WithdrawInfo,
        CStruct(
            "authority" / PUBKEY,
            "amount" / U64,
            "created_at" / I64,
            "index" / U64,
        ),
    ),
)

WHITELIST = AccountKind(
    "Whitelist",
    bytes.fromhex("ccb0344f927936f7"),
    Record(
        Whitelist,
        CStruct(
            "whitelisted_token" / PUBKEY,
            "pool" / PUBKEY,
            "staking_pool" / PUBKEY,
        ),
    ),
)

MANAGER = AccountKind(
    "Manager",
    bytes.fromhex("dd4eabe9d58e7138"),
    Record(Manager, CStruct("manager" / PUBKEY)),
)

LIQUIDATOR = AccountKind(
    "Liquidator",
    bytes.fromhex("4c2cfc51144887dc"),
    Record(Liquidator, CStruct("authority" / PUBKEY)),
)

LIQUIDATION_FEE = AccountKind(
    "LiquidationFee",
    bytes.fromhex("092835bf2e6a3239"),
    Record(
        LiquidationFee,
        CStruct(
            "fee" / U16,
            "fee_receiver" / PUBKEY,
        ),
    ),
)

ACCOUNT_KINDS: dict[str, AccountKind] = {
    kind.name: kind
    for kind in (
        POOL,
        ORACLE,
        COLLATERAL,
        USER,
        WITHDRAW_INFO,
        WHITELIST,
        MANAGER,
        LIQUIDATOR,
        LIQUIDATION_FEE,
    )
}

_KIND_BY_RECORD: dict[type, AccountKind] = {
    kind.record_type: kind for kind in ACCOUNT_KINDS.values()
}
_KIND_BY_DISCRIMINATOR: dict[bytes, AccountKind] = {
    kind.discriminator: kind for kind in ACCOUNT_KINDS.values()
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_kind(kind: AccountKind | str | type) -> AccountKind:
    """Resolve a kind given as an AccountKind, its name or its record type."""
    if isinstance(kind, AccountKind):
        return kind
    if isinstance(kind, str):
        try:
            return ACCOUNT_KINDS[kind]
        except KeyError:
            raise ValueError(f"Unknown account kind '{kind}'") from None
    try:
        return _KIND_BY_RECORD[kind]
    except KeyError:
        raise ValueError(f"Unknown account record type {kind!r}") from None


def unpack_account(
    kind: AccountKind | str | type, data: bytes, offset: int = 0
) -> tuple[Any, int]:
    """Decode one record starting at ``offset``.

    The discriminator is verified before any field is interpreted. Returns the
    record and the offset just past it, so trailing bytes (on-chain padding or
    an embedding structure) can be read by the caller.
    """
    kind = get_kind(kind)
    data = bytes(data)
    available = len(data) - offset

    if available < DISCRIMINATOR_SIZE:
        raise TruncatedBuffer(kind.name, kind.min_size, max(available, 0))

    found = data[offset : offset + DISCRIMINATOR_SIZE]
    if found != kind.discriminator:
        raise WrongAccountKind(kind.name, kind.discriminator, found)

    if available < kind.min_size:
        raise TruncatedBuffer(kind.name, kind.min_size, available)

    try:
        record, end = decode_fields(kind.layout, data, offset + DISCRIMINATOR_SIZE, kind.name)
    except TruncatedBuffer as e:
        raise TruncatedBuffer(kind.name, None, available) from e
    logger.debug("Decoded %s (%d bytes)", kind.name, end - offset)
    return record, end


def decode_account(kind: AccountKind | str | type, data: bytes) -> Any:
    """Decode raw account bytes into the record type of ``kind``."""
    record, _ = unpack_account(kind, data)
    return record


def encode_account(record: Any) -> bytes:
    """Serialise a record as discriminator + fields."""
    kind = get_kind(type(record))
    return kind.discriminator + encode_fields(kind.layout, record, kind.name)


def identify_account(data: bytes) -> AccountKind | None:
    """Return the kind whose discriminator prefixes ``data``, if any."""
    return _KIND_BY_DISCRIMINATOR.get(bytes(data[:DISCRIMINATOR_SIZE]))
