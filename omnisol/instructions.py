"""Instruction builder: operation catalogue + envelope construction.

Instruction data is ``discriminator (8 bytes) || args`` with the args encoded
with the same Borsh schemas as accounts. Account order and writable/signer
flags are part of the wire contract with the program and are declared once
per operation below.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .codec.layout import (
    BOOL,
    PUBKEY,
    U16,
    U64,
    CStruct,
    Option,
    Record,
    Vec,
    decode_fields,
    encode_fields,
    field_names,
    record_values,
)
from .constants import (
    MAX_FEE_BPS,
    OMNISOL_PROGRAM_ID,
    STAKE_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    SYSVAR_CLOCK_ID,
    TOKEN_PROGRAM_ID,
    UNSTAKE_IT_PROGRAM_ID,
)
from .errors import DecodeError, TruncatedBuffer
from .models import UpdatePoolData

DISCRIMINATOR_SIZE = 8


@dataclass(frozen=True)
class AccountSpec:
    """Declared position of an account in an instruction."""

    name: str
    writable: bool = False
    signer: bool = False
    default: Pubkey | None = None


@dataclass(frozen=True)
class Operation:
    name: str
    discriminator: bytes
    args: CStruct
    accounts: tuple[AccountSpec, ...]

    @property
    def account_names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.accounts)


def _ro(name: str, default: Pubkey | None = None) -> AccountSpec:
    return AccountSpec(name, default=default)


def _mut(name: str) -> AccountSpec:
    return AccountSpec(name, writable=True)


def _signer(name: str) -> AccountSpec:
    return AccountSpec(name, writable=True, signer=True)


_SYSTEM = _ro("system_program", SYSTEM_PROGRAM_ID)
_TOKEN = _ro("token_program", TOKEN_PROGRAM_ID)
_STAKE = _ro("stake_program", STAKE_PROGRAM_ID)
_CLOCK = _ro("clock", SYSVAR_CLOCK_ID)

NO_ARGS = CStruct()
AMOUNT_ARGS = CStruct("amount" / U64)

UPDATE_POOL_DATA = Record(
    UpdatePoolData,
    CStruct(
        "fee_receiver" / Option(PUBKEY),
        "withdraw_fee" / Option(U16),
        "deposit_fee" / Option(U16),
        "mint_fee" / Option(U16),
        "storage_fee" / Option(U16),
        "min_deposit" / Option(U64),
    ),
)


def _op(name: str, discriminator: str, args: CStruct, *accounts: AccountSpec) -> Operation:
    return Operation(name, bytes.fromhex(discriminator), args, tuple(accounts))


# ---------------------------------------------------------------------------
# Operation catalogue
# ---------------------------------------------------------------------------

_CATALOGUE = (
    # Pool administration
    _op(
        "init_pool", "74e9c7cc739fab24", NO_ARGS,
        AccountSpec("pool", writable=True, signer=True),
        _mut("pool_mint"),
        _ro("pool_authority"),
        _ro("mint_authority"),
        _ro("stake_source"),
        _mut("manager"),
        _signer("authority"),
        _ro("fee_receiver"),
        _SYSTEM,
    ),
    _op(
        "pause_pool", "a00f0cbda000f3f5", NO_ARGS,
        _mut("pool"),
        _mut("manager"),
        _signer("authority"),
    ),
    _op(
        "resume_pool", "34b61c2c92a5be77", NO_ARGS,
        _mut("pool"),
        _signer("authority"),
    ),
    _op(
        "close_pool", "8cbdd117ef3eef0b", NO_ARGS,
        _mut("pool"),
        _signer("authority"),
        _SYSTEM,
    ),
    _op(
        "update_pool", "efd6aa4e24231e22", CStruct("data" / UPDATE_POOL_DATA),
        _mut("pool"),
        _mut("manager"),
        _signer("authority"),
    ),
    _op(
        "withdraw_sol", "91834a8841892a26", AMOUNT_ARGS,
        _mut("pool"),
        _mut("pool_authority"),
        _mut("destination"),
        _mut("manager"),
        _signer("authority"),
        _SYSTEM,
    ),
    # Roles
    _op(
        "add_manager", "7d26c0d4655bb310", NO_ARGS,
        _ro("pool"),
        _signer("authority"),
        _ro("manager_wallet"),
        _mut("manager"),
        _SYSTEM,
    ),
    _op(
        "remove_manager", "96379d4d8094070f", NO_ARGS,
        _ro("pool"),
        _signer("authority"),
        _mut("manager"),
        _ro("manager_wallet"),
        _SYSTEM,
    ),
    _op(
        "add_liquidator", "3c212e2fa216f861", NO_ARGS,
        _signer("authority"),
        _ro("wallet_of_liquidator"),
        _mut("liquidator"),
        _mut("manager"),
        _SYSTEM,
    ),
    _op(
        "remove_liquidator", "674861944f94dc5d", NO_ARGS,
        _signer("authority"),
        _ro("wallet_of_liquidator"),
        _mut("liquidator"),
        _mut("manager"),
        _SYSTEM,
    ),
    # Whitelist
    _op(
        "add_to_token_whitelist", "bcf98d7d8fe83e74", NO_ARGS,
        _signer("authority"),
        _ro("address_to_whitelist"),
        _ro("pool"),
        _ro("pool_program"),
        _mut("whitelist"),
        _mut("manager"),
        _SYSTEM,
    ),
    _op(
        "remove_from_whitelist", "0790d8eff3ecc1eb", NO_ARGS,
        _ro("pool"),
        _signer("authority"),
        _mut("whitelist"),
        _ro("address_to_whitelist"),
        _SYSTEM,
    ),
    # Users
    _op(
        "block_user", "0aa4b206e7afb9bf", NO_ARGS,
        _signer("authority"),
        _mut("manager"),
        _mut("user"),
        _ro("user_wallet"),
    ),
    _op(
        "unblock_user", "d8d080624ad21272", NO_ARGS,
        _mut("manager"),
        _signer("authority"),
        _mut("user"),
        _ro("user_wallet"),
    ),
    # Deposits and minting
    _op(
        "deposit_stake", "a0a709dc4af3e42b", AMOUNT_ARGS,
        _mut("pool"),
        _ro("pool_authority"),
        _mut("user"),
        _mut("collateral"),
        _mut("source_stake"),
        _mut("delegated_stake"),
        AccountSpec("split_stake", writable=True, signer=True),
        _signer("authority"),
        _signer("fee_payer"),
        _mut("fee_receiver"),
        _CLOCK,
        _STAKE,
        _SYSTEM,
    ),
    _op(
        "deposit_lp", "536b101a1a148238", AMOUNT_ARGS,
        _mut("pool"),
        _ro("pool_authority"),
        _mut("user"),
        _mut("collateral"),
        _mut("source"),
        _mut("destination"),
        _ro("whitelist"),
        _ro("lp_token"),
        _signer("authority"),
        _signer("fee_payer"),
        _mut("fee_receiver"),
        _CLOCK,
        _TOKEN,
        _SYSTEM,
    ),
    _op(
        "mint_omnisol", "6924563be69f5d0c", AMOUNT_ARGS,
        _mut("pool"),
        _mut("pool_authority"),
        _mut("pool_mint"),
        _ro("mint_authority"),
        _mut("user"),
        _mut("collateral"),
        _mut("user_pool_token"),
        _ro("staked_address"),
        _signer("authority"),
        _signer("fee_payer"),
        _CLOCK,
        _TOKEN,
        _SYSTEM,
    ),
    # Withdrawals
    _op(
        "withdraw_lp_tokens", "3a06195bb337d54e",
        CStruct(
            "amount" / U64,
            "with_burn" / BOOL,
        ),
        _mut("pool"),
        _ro("pool_authority"),
        _mut("user"),
        _mut("collateral"),
        _mut("source"),
        _mut("destination"),
        _ro("lp_token"),
        _mut("pool_mint"),
        _mut("user_pool_token"),
        _signer("authority"),
        _CLOCK,
        _TOKEN,
    ),
    _op(
        "burn_omnisol", "09e4dcfbde96b3a9", AMOUNT_ARGS,
        _mut("pool"),
        _mut("pool_mint"),
        _mut("source_token_account"),
        _signer("authority"),
        _mut("user"),
        _mut("withdraw_info"),
        _CLOCK,
        _TOKEN,
        _SYSTEM,
    ),
    # Oracle
    _op(
        "init_oracle", "4e6421b760cf3c5b", NO_ARGS,
        _ro("pool"),
        _signer("authority"),
        AccountSpec("oracle", writable=True, signer=True),
        _ro("oracle_authority"),
        _SYSTEM,
    ),
    _op(
        "close_oracle", "4aef31dfce34bd7b", NO_ARGS,
        _ro("pool"),
        _signer("authority"),
        _mut("oracle"),
        _SYSTEM,
    ),
    _op(
        "update_oracle_info", "a418f1fa88801ee3",
        CStruct(
            "addresses" / Vec(PUBKEY),
            "values" / Vec(U64),
            "clear" / BOOL,
        ),
        _signer("authority"),
        _mut("oracle"),
        _SYSTEM,
    ),
    # Liquidation
    _op(
        "liquidate_collateral", "a0c74e8d8c92a6d4", AMOUNT_ARGS,
        _mut("pool"),
        _ro("pool_authority"),
        _mut("collateral"),
        _mut("collateral_owner"),
        _mut("collateral_owner_wallet"),
        _mut("user_wallet"),
        _mut("user"),
        _mut("withdraw_info"),
        _mut("oracle"),
        _mut("source_stake"),
        _ro("liquidator"),
        _mut("pool_account"),
        _mut("sol_reserves"),
        _ro("protocol_fee"),
        _mut("protocol_fee_destination"),
        _ro("fee_account"),
        _mut("stake_account_record"),
        _ro("unstake_it_program", UNSTAKE_IT_PROGRAM_ID),
        _signer("authority"),
        _CLOCK,
        _TOKEN,
        _STAKE,
        _SYSTEM,
    ),
    _op(
        "set_liquidation_fee", "17d7cb5a85f7ebb7",
        CStruct(
            "fee" / Option(U16),
            "fee_receiver" / Option(PUBKEY),
        ),
        _mut("liquidation_fee"),
        _mut("manager"),
        _signer("authority"),
        _SYSTEM,
    ),
)

OPERATIONS: dict[str, Operation] = {op.name: op for op in _CATALOGUE}
_OPERATION_BY_DISCRIMINATOR: dict[bytes, Operation] = {
    op.discriminator: op for op in _CATALOGUE
}


# ---------------------------------------------------------------------------
# Argument checks the program would otherwise reject on chain
# ---------------------------------------------------------------------------


def _check_fee(name: str, fee: int | None) -> None:
    if fee is not None and not 0 <= fee <= MAX_FEE_BPS:
        raise ValueError(f"{name} must be within 0..{MAX_FEE_BPS} bps, got {fee}")


def _validate_args(operation: Operation, args: Mapping[str, Any]) -> None:
    # Missing arguments are reported by the layout encoder.
    if operation.name == "update_pool" and args.get("data") is not None:
        values = record_values(args["data"])
        for fee_name in ("withdraw_fee", "deposit_fee", "mint_fee", "storage_fee"):
            _check_fee(fee_name, values.get(fee_name))
    elif operation.name == "set_liquidation_fee":
        _check_fee("fee", args.get("fee"))
    elif operation.name == "update_oracle_info":
        addresses = list(args.get("addresses") or ())
        values = list(args.get("values") or ())
        if len(addresses) != len(values):
            raise ValueError(
                f"addresses ({len(addresses)}) and values ({len(values)}) differ in length"
            )
        if len(set(addresses)) != len(addresses):
            raise ValueError("Duplicate collateral in oracle update")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_operation(name: str) -> Operation:
    try:
        return OPERATIONS[name]
    except KeyError:
        raise ValueError(f"Unknown operation '{name}'") from None


def encode_instruction_data(operation: str, args: Mapping[str, Any] | None = None) -> bytes:
    """Discriminator followed by the encoded argument record."""
    op = get_operation(operation)
    args = dict(args or {})
    unknown = set(args) - set(field_names(op.args))
    if unknown:
        raise ValueError(f"{op.name}: unexpected arguments {sorted(unknown)}")
    _validate_args(op, args)
    return op.discriminator + encode_fields(op.args, args, op.name)


def decode_instruction_data(data: bytes) -> tuple[str, dict[str, Any]]:
    """Inverse of :func:`encode_instruction_data`."""
    data = bytes(data)
    if len(data) < DISCRIMINATOR_SIZE:
        raise TruncatedBuffer("instruction", DISCRIMINATOR_SIZE, len(data))
    op = _OPERATION_BY_DISCRIMINATOR.get(data[:DISCRIMINATOR_SIZE])
    if op is None:
        raise DecodeError(
            f"Unknown instruction discriminator {data[:DISCRIMINATOR_SIZE].hex()}"
        )
    args, _ = decode_fields(op.args, data, DISCRIMINATOR_SIZE, op.name)
    return op.name, args


def account_metas(
    operation: str, accounts: Mapping[str, Pubkey]
) -> list[AccountMeta]:
    """Order ``accounts`` by the operation's schema, filling defaults."""
    op = get_operation(operation)
    unknown = set(accounts) - set(op.account_names)
    if unknown:
        raise ValueError(f"{op.name}: unexpected accounts {sorted(unknown)}")

    metas: list[AccountMeta] = []
    for spec in op.accounts:
        pubkey = accounts.get(spec.name)
        if pubkey is None:
            pubkey = spec.default
        if pubkey is None:
            raise ValueError(f"{op.name}: missing account '{spec.name}'")
        metas.append(
            AccountMeta(pubkey, is_signer=spec.signer, is_writable=spec.writable)
        )
    return metas


def build_instruction(
    operation: str,
    args: Mapping[str, Any] | None,
    accounts: Mapping[str, Pubkey],
    program_id: Pubkey = OMNISOL_PROGRAM_ID,
    remaining_accounts: Iterable[AccountMeta] = (),
) -> Instruction:
    """Compose an instruction envelope ready for signing and submission."""
    data = encode_instruction_data(operation, args)
    metas = account_metas(operation, accounts)
    metas.extend(remaining_accounts)
    return Instruction(program_id, data, metas)
