"""Command-line interface for the Omnisol client."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import fields, is_dataclass
from typing import Any, Callable

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from . import pda
from .client import LiquidationAccounts, OmnisolClient, next_withdraw_index
from .codec.accounts import ACCOUNT_KINDS
from .config import AppConfig, load_config, load_keypair
from .constants import OMNISOL_PROGRAM_ID
from .errors import AccountNotFound, OmnisolError, SubmissionError
from .logging_setup import configure_logging
from .models import Collateral, Pool, User, WithdrawInfo
from .rpc import SolanaRpcClient
from .services import build_priority_queue, plan_liquidations, split_queue
from .units import lamports_to_sol, sol_to_lamports

logger = logging.getLogger(__name__)

# CLI spelling -> account kind name
KIND_NAMES = {
    "pool": "Pool",
    "oracle": "Oracle",
    "collateral": "Collateral",
    "user": "User",
    "withdraw-info": "WithdrawInfo",
    "whitelist": "Whitelist",
    "manager": "Manager",
    "liquidator": "Liquidator",
    "liquidation-fee": "LiquidationFee",
}

# Fields holding lamport amounts, rendered as SOL
_LAMPORT_FIELDS = {
    "deposit_amount",
    "min_deposit",
    "delegation_stake",
    "amount",
    "liquidated_amount",
}


def _pubkey(value: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid address '{value}'") from e


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="omnisol",
        description="Omnisol staking pool client",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: ./config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    # show
    show = sub.add_parser("show", help="Fetch and decode program accounts")
    show.add_argument("kind", choices=sorted(KIND_NAMES))
    show.add_argument(
        "address",
        nargs="?",
        type=_pubkey,
        default=None,
        help="Account address (omit to list every account of this kind)",
    )

    # pda
    pda_parser = sub.add_parser("pda", help="Derive program addresses")
    pda_sub = pda_parser.add_subparsers(dest="pda_kind", required=True)
    pda_sub.add_parser("pool-authority").add_argument("pool", type=_pubkey)
    pda_sub.add_parser("mint-authority")
    pda_sub.add_parser("user").add_argument("wallet", type=_pubkey)
    collateral = pda_sub.add_parser("collateral")
    collateral.add_argument("source_stake", type=_pubkey)
    collateral.add_argument("wallet", type=_pubkey)
    withdraw = pda_sub.add_parser("withdraw-info")
    withdraw.add_argument("wallet", type=_pubkey)
    withdraw.add_argument("index", type=int)
    pda_sub.add_parser("manager").add_argument("wallet", type=_pubkey)
    pda_sub.add_parser("liquidator").add_argument("wallet", type=_pubkey)
    pda_sub.add_parser("whitelist").add_argument("token", type=_pubkey)
    pda_sub.add_parser("oracle")
    pda_sub.add_parser("liquidation-fee")

    # convert
    convert = sub.add_parser("convert", help="Convert between lamports and SOL")
    convert_sub = convert.add_subparsers(dest="direction", required=True)
    convert_sub.add_parser("to-sol").add_argument("lamports", type=int)
    convert_sub.add_parser("to-lamports").add_argument("sol")

    # pool
    pool = sub.add_parser("pool", help="Pool administration")
    pool_sub = pool.add_subparsers(dest="pool_action", required=True)
    pool_sub.add_parser("pause").add_argument("pool", type=_pubkey)
    pool_sub.add_parser("resume").add_argument("pool", type=_pubkey)

    # burn
    burn = sub.add_parser("burn", help="Burn pool tokens and open a withdraw request")
    burn.add_argument("--pool", type=_pubkey, required=True)
    burn.add_argument("--amount", required=True, help="Amount in SOL")

    # oracle
    oracle = sub.add_parser("oracle", help="Oracle maintenance")
    oracle_sub = oracle.add_subparsers(dest="oracle_action", required=True)
    update = oracle_sub.add_parser(
        "update", help="Rebuild the liquidation priority queue and push it"
    )
    update.add_argument(
        "--oracle",
        type=_pubkey,
        default=None,
        help="Oracle account (default: program.oracle from config)",
    )

    # liquidate
    liquidate = sub.add_parser(
        "liquidate", help="Settle pending withdraw requests from the oracle queue"
    )
    liquidate.add_argument(
        "--oracle",
        type=_pubkey,
        default=None,
        help="Oracle account (default: program.oracle from config)",
    )
    liquidate.add_argument("--unstake-pool", type=_pubkey, required=True)
    liquidate.add_argument("--sol-reserves", type=_pubkey, required=True)
    liquidate.add_argument("--protocol-fee", type=_pubkey, required=True)
    liquidate.add_argument("--protocol-fee-destination", type=_pubkey, required=True)
    liquidate.add_argument("--fee-account", type=_pubkey, required=True)
    liquidate.add_argument(
        "--dry-run", action="store_true", help="Print the plan without sending anything"
    )

    return parser


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def format_record(record: Any) -> str:
    """Render a decoded record as ``name: value`` lines."""
    lines: list[str] = []
    for f in fields(record):
        value = getattr(record, f.name)
        if isinstance(value, tuple):
            lines.append(f"{f.name}: [{len(value)}]")
            for item in value:
                if is_dataclass(item):
                    item = ", ".join(
                        f"{g.name}={getattr(item, g.name)}" for g in fields(item)
                    )
                lines.append(f"  - {item}")
        elif f.name in _LAMPORT_FIELDS and isinstance(value, int):
            lines.append(f"{f.name}: {lamports_to_sol(value)} SOL")
        else:
            lines.append(f"{f.name}: {value}")
    return "\n".join(lines)


def _derive(args: argparse.Namespace) -> Pubkey:
    derivers: dict[str, Callable[[], tuple[Pubkey, int]]] = {
        "pool-authority": lambda: pda.pool_authority(args.pool, args.program_id),
        "mint-authority": lambda: pda.mint_authority(args.program_id),
        "user": lambda: pda.user(args.wallet, args.program_id),
        "collateral": lambda: pda.collateral(
            args.source_stake,
            pda.user(args.wallet, args.program_id)[0],
            args.program_id,
        ),
        "withdraw-info": lambda: pda.withdraw_info(args.wallet, args.index, args.program_id),
        "manager": lambda: pda.manager(args.wallet, args.program_id),
        "liquidator": lambda: pda.liquidator(args.wallet, args.program_id),
        "whitelist": lambda: pda.whitelist(args.token, args.program_id),
        "oracle": lambda: pda.oracle(args.program_id),
        "liquidation-fee": lambda: pda.liquidation_fee(args.program_id),
    }
    address, bump = derivers[args.pda_kind]()
    print(f"{address} (bump {bump})")
    return address


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _client(config: AppConfig, with_wallet: bool = False) -> OmnisolClient:
    wallet = None
    if with_wallet:
        if not config.wallet.keypair_path:
            raise ValueError("wallet.keypair_path must be configured for this command")
        wallet = load_keypair(config.wallet.keypair_path)
    return OmnisolClient(SolanaRpcClient(config.cluster), config.program_id, wallet)


async def _show(client: OmnisolClient, args: argparse.Namespace) -> None:
    kind = ACCOUNT_KINDS[KIND_NAMES[args.kind]]
    if args.address is not None:
        print(format_record(await client.fetch(kind, args.address)))
        return
    for address, record in await client.find_accounts(kind):
        print(f"# {address}")
        print(format_record(record))
        print()


async def _burn(client: OmnisolClient, args: argparse.Namespace) -> None:
    amount = sol_to_lamports(args.amount)
    if amount <= 0:
        raise ValueError("Amount must be positive")
    pool = await client.fetch_pool(args.pool)
    try:
        user = await client.fetch_user(client.authority)
    except AccountNotFound:
        user = None
    index = next_withdraw_index(user)
    prepared = client.burn_omnisol(args.pool, pool.pool_mint, amount, index)
    signature = await client.send(prepared)
    print(f"Withdraw request #{index}: {prepared.addresses['withdraw_info']}")
    print(f"Signature: {signature}")


async def _update_oracle(
    client: OmnisolClient, config: AppConfig, args: argparse.Namespace
) -> None:
    oracle = args.oracle or config.oracle
    if oracle is None:
        raise ValueError("No oracle address given and program.oracle is not configured")

    users = await client.find_accounts(User)
    collaterals = await client.find_accounts(Collateral)
    queue = build_priority_queue(users, collaterals)
    addresses, values = split_queue(queue)
    prepared = client.update_oracle_info(oracle, addresses, values, clear=True)
    signature = await client.send(prepared)
    print(f"Pushed {len(queue)} queue entries to {oracle}")
    print(f"Signature: {signature}")


async def _liquidate(
    client: OmnisolClient, config: AppConfig, args: argparse.Namespace
) -> None:
    oracle = args.oracle or config.oracle
    if oracle is None:
        raise ValueError("No oracle address given and program.oracle is not configured")

    steps = plan_liquidations(
        await client.find_accounts(WithdrawInfo),
        await client.find_accounts(User),
        await client.fetch_oracle(oracle),
        await client.find_accounts(Collateral),
        await client.find_accounts(Pool),
        # LP collaterals need the stake pool's validator accounts as well
        native_only=True,
    )
    if not steps:
        print("Nothing to liquidate")
        return

    failed: set[Pubkey] = set()
    for step in steps:
        if step.withdraw_info in failed:
            continue
        print(
            f"{step.withdraw_info}: {lamports_to_sol(step.amount)} SOL "
            f"from {step.collateral_address}"
        )
        if args.dry_run:
            continue

        split = Keypair()
        stake_account = split.pubkey() if step.splits_stake else step.source_stake
        unstake = LiquidationAccounts(
            pool_account=args.unstake_pool,
            sol_reserves=args.sol_reserves,
            protocol_fee=args.protocol_fee,
            protocol_fee_destination=args.protocol_fee_destination,
            fee_account=args.fee_account,
            stake_account_record=pda.stake_account_record(args.unstake_pool, stake_account)[0],
        )
        prepared = client.liquidate_collateral(
            step.collateral.pool,
            oracle,
            step.source_stake,
            step.owner_wallet,
            step.request.authority,
            step.request.index,
            step.amount,
            unstake,
            split_stake=split,
        )
        try:
            signature = await client.send(prepared)
        except SubmissionError as e:
            # Later steps of this request assumed this one landed.
            logger.error("Liquidation of %s failed: %s", step.collateral_address, e)
            failed.add(step.withdraw_info)
            continue
        print(f"Signature: {signature}")


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    config = load_config(args.config)

    if args.command == "show":
        await _show(_client(config), args)
        return

    client = _client(config, with_wallet=True)
    if args.command == "pool":
        if args.pool_action == "pause":
            prepared = client.pause_pool(args.pool)
        else:
            prepared = client.resume_pool(args.pool)
        print(f"Signature: {await client.send(prepared)}")
    elif args.command == "burn":
        await _burn(client, args)
    elif args.command == "oracle":
        await _update_oracle(client, config, args)
    elif args.command == "liquidate":
        await _liquidate(client, config, args)


def _run_offline(args: argparse.Namespace) -> None:
    """Commands that need neither config nor network."""
    if args.command == "convert":
        if args.direction == "to-sol":
            print(lamports_to_sol(args.lamports))
        else:
            print(sol_to_lamports(args.sol))
    elif args.command == "pda":
        _derive(args)


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)

    try:
        if args.command in ("convert", "pda"):
            if args.command == "pda":
                args.program_id = _program_id_for(args)
            _run_offline(args)
        else:
            asyncio.run(_run(args))
    except (OmnisolError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


def _program_id_for(args: argparse.Namespace) -> Pubkey:
    # Derivation honours a configured program id but works without a config.
    try:
        return load_config(args.config).program_id
    except FileNotFoundError:
        return OMNISOL_PROGRAM_ID
