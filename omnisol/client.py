"""Protocol client: derives addresses, builds instructions, reads accounts.

Builders are synchronous and never touch the network; they return a
:class:`PreparedInstruction` that :meth:`OmnisolClient.send` can submit.
Fetchers go through the injected transport and decode the raw bytes.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from . import pda
from .codec.accounts import (
    COLLATERAL,
    LIQUIDATION_FEE,
    LIQUIDATOR,
    MANAGER,
    ORACLE,
    POOL,
    USER,
    WHITELIST,
    WITHDRAW_INFO,
    AccountKind,
    decode_account,
    get_kind,
)
from .constants import OMNISOL_PROGRAM_ID
from .instructions import build_instruction
from .interfaces import Transport
from .models import (
    Collateral,
    LiquidationFee,
    Liquidator,
    Manager,
    Oracle,
    Pool,
    UpdatePoolData,
    User,
    Whitelist,
    WithdrawInfo,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedInstruction:
    """An instruction plus what is needed to submit and report on it."""

    instruction: Instruction
    addresses: dict[str, Pubkey] = field(default_factory=dict)
    signers: tuple[Keypair, ...] = ()


@dataclass(frozen=True)
class LiquidationAccounts:
    """Accounts of the external unstake pool used during liquidation."""

    pool_account: Pubkey
    sol_reserves: Pubkey
    protocol_fee: Pubkey
    protocol_fee_destination: Pubkey
    fee_account: Pubkey
    stake_account_record: Pubkey


def next_withdraw_index(user: User | None) -> int:
    """Index the program assigns to the user's next withdraw request.

    Pass ``None`` for a wallet with no User account yet; the program creates
    it zeroed on the first burn.
    """
    last = user.last_withdraw_index if user is not None else 0
    return last + 1


class OmnisolClient:
    """High-level entry point for the Omnisol program."""

    def __init__(
        self,
        transport: Transport,
        program_id: Pubkey = OMNISOL_PROGRAM_ID,
        wallet: Keypair | None = None,
    ) -> None:
        self.transport = transport
        self.program_id = program_id
        self.wallet = wallet

    @property
    def authority(self) -> Pubkey:
        if self.wallet is None:
            raise ValueError("No wallet configured; a signing keypair is required")
        return self.wallet.pubkey()

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    def pool_authority_address(self, pool: Pubkey) -> Pubkey:
        return pda.pool_authority(pool, self.program_id)[0]

    def mint_authority_address(self) -> Pubkey:
        return pda.mint_authority(self.program_id)[0]

    def user_address(self, wallet: Pubkey) -> Pubkey:
        return pda.user(wallet, self.program_id)[0]

    def collateral_address(self, source_stake: Pubkey, user_wallet: Pubkey) -> Pubkey:
        """Collateral of ``user_wallet`` for a stake account or LP mint."""
        return pda.collateral(source_stake, self.user_address(user_wallet), self.program_id)[0]

    def withdraw_info_address(self, wallet: Pubkey, index: int) -> Pubkey:
        return pda.withdraw_info(wallet, index, self.program_id)[0]

    def manager_address(self, wallet: Pubkey) -> Pubkey:
        return pda.manager(wallet, self.program_id)[0]

    def liquidator_address(self, wallet: Pubkey) -> Pubkey:
        return pda.liquidator(wallet, self.program_id)[0]

    def whitelist_address(self, token: Pubkey) -> Pubkey:
        return pda.whitelist(token, self.program_id)[0]

    def oracle_address(self) -> Pubkey:
        return pda.oracle(self.program_id)[0]

    def liquidation_fee_address(self) -> Pubkey:
        return pda.liquidation_fee(self.program_id)[0]

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _prepare(
        self,
        operation: str,
        args: dict[str, Any] | None,
        accounts: dict[str, Pubkey],
        signers: Sequence[Keypair] = (),
        remaining_accounts: Sequence[AccountMeta] = (),
    ) -> PreparedInstruction:
        ix = build_instruction(operation, args, accounts, self.program_id, remaining_accounts)
        logger.debug("Built %s with %d accounts", operation, len(ix.accounts))
        return PreparedInstruction(ix, dict(accounts), tuple(signers))

    # Pool administration

    def init_pool(
        self,
        pool_mint: Pubkey,
        stake_source: Pubkey,
        fee_receiver: Pubkey,
        pool: Keypair | None = None,
    ) -> PreparedInstruction:
        """Create a pool; a fresh pool keypair is generated unless given."""
        pool = pool or Keypair()
        pool_key = pool.pubkey()
        return self._prepare(
            "init_pool",
            None,
            {
                "pool": pool_key,
                "pool_mint": pool_mint,
                "pool_authority": self.pool_authority_address(pool_key),
                "mint_authority": self.mint_authority_address(),
                "stake_source": stake_source,
                "manager": self.manager_address(self.authority),
                "authority": self.authority,
                "fee_receiver": fee_receiver,
            },
            signers=[pool],
        )

    def pause_pool(self, pool: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "pause_pool",
            None,
            {
                "pool": pool,
                "manager": self.manager_address(self.authority),
                "authority": self.authority,
            },
        )

    def resume_pool(self, pool: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "resume_pool", None, {"pool": pool, "authority": self.authority}
        )

    def close_pool(self, pool: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "close_pool", None, {"pool": pool, "authority": self.authority}
        )

    def update_pool(self, pool: Pubkey, data: UpdatePoolData) -> PreparedInstruction:
        return self._prepare(
            "update_pool",
            {"data": data},
            {
                "pool": pool,
                "manager": self.manager_address(self.authority),
                "authority": self.authority,
            },
        )

    def withdraw_sol(
        self, pool: Pubkey, destination: Pubkey, amount: int
    ) -> PreparedInstruction:
        return self._prepare(
            "withdraw_sol",
            {"amount": amount},
            {
                "pool": pool,
                "pool_authority": self.pool_authority_address(pool),
                "destination": destination,
                "manager": self.manager_address(self.authority),
                "authority": self.authority,
            },
        )

    # Roles

    def add_manager(self, pool: Pubkey, manager_wallet: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "add_manager",
            None,
            {
                "pool": pool,
                "authority": self.authority,
                "manager_wallet": manager_wallet,
                "manager": self.manager_address(manager_wallet),
            },
        )

    def remove_manager(self, pool: Pubkey, manager_wallet: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "remove_manager",
            None,
            {
                "pool": pool,
                "authority": self.authority,
                "manager": self.manager_address(manager_wallet),
                "manager_wallet": manager_wallet,
            },
        )

    def add_liquidator(self, liquidator_wallet: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "add_liquidator",
            None,
            {
                "authority": self.authority,
                "wallet_of_liquidator": liquidator_wallet,
                "liquidator": self.liquidator_address(liquidator_wallet),
                "manager": self.manager_address(self.authority),
            },
        )

    def remove_liquidator(self, liquidator_wallet: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "remove_liquidator",
            None,
            {
                "authority": self.authority,
                "wallet_of_liquidator": liquidator_wallet,
                "liquidator": self.liquidator_address(liquidator_wallet),
                "manager": self.manager_address(self.authority),
            },
        )

    def set_liquidation_fee(
        self, fee: int | None = None, fee_receiver: Pubkey | None = None
    ) -> PreparedInstruction:
        return self._prepare(
            "set_liquidation_fee",
            {"fee": fee, "fee_receiver": fee_receiver},
            {
                "liquidation_fee": self.liquidation_fee_address(),
                "manager": self.manager_address(self.authority),
                "authority": self.authority,
            },
        )

    # Whitelist

    def add_to_token_whitelist(
        self, pool: Pubkey, token: Pubkey, pool_program: Pubkey
    ) -> PreparedInstruction:
        return self._prepare(
            "add_to_token_whitelist",
            None,
            {
                "authority": self.authority,
                "address_to_whitelist": token,
                "pool": pool,
                "pool_program": pool_program,
                "whitelist": self.whitelist_address(token),
                "manager": self.manager_address(self.authority),
            },
        )

    def remove_from_whitelist(self, pool: Pubkey, token: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "remove_from_whitelist",
            None,
            {
                "pool": pool,
                "authority": self.authority,
                "whitelist": self.whitelist_address(token),
                "address_to_whitelist": token,
            },
        )

    # Users

    def block_user(self, user_wallet: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "block_user",
            None,
            {
                "authority": self.authority,
                "manager": self.manager_address(self.authority),
                "user": self.user_address(user_wallet),
                "user_wallet": user_wallet,
            },
        )

    def unblock_user(self, user_wallet: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "unblock_user",
            None,
            {
                "manager": self.manager_address(self.authority),
                "authority": self.authority,
                "user": self.user_address(user_wallet),
                "user_wallet": user_wallet,
            },
        )

    # Deposits and minting

    def deposit_stake(
        self,
        pool: Pubkey,
        source_stake: Pubkey,
        delegated_stake: Pubkey,
        fee_receiver: Pubkey,
        amount: int,
        split_stake: Keypair | None = None,
        fee_payer: Keypair | None = None,
    ) -> PreparedInstruction:
        """Deposit (part of) a stake account; the remainder is split off."""
        split_stake = split_stake or Keypair()
        signers = [split_stake]
        payer = self.authority
        if fee_payer is not None:
            payer = fee_payer.pubkey()
            signers.append(fee_payer)
        return self._prepare(
            "deposit_stake",
            {"amount": amount},
            {
                "pool": pool,
                "pool_authority": self.pool_authority_address(pool),
                "user": self.user_address(self.authority),
                "collateral": self.collateral_address(delegated_stake, self.authority),
                "source_stake": source_stake,
                "delegated_stake": delegated_stake,
                "split_stake": split_stake.pubkey(),
                "authority": self.authority,
                "fee_payer": payer,
                "fee_receiver": fee_receiver,
            },
            signers=signers,
        )

    def deposit_lp(
        self,
        pool: Pubkey,
        lp_token: Pubkey,
        fee_receiver: Pubkey,
        amount: int,
        source: Pubkey | None = None,
        fee_payer: Keypair | None = None,
    ) -> PreparedInstruction:
        """Deposit LP tokens from ``source`` (default: the wallet's token account)."""
        pool_authority = self.pool_authority_address(pool)
        signers = []
        payer = self.authority
        if fee_payer is not None:
            payer = fee_payer.pubkey()
            signers.append(fee_payer)
        return self._prepare(
            "deposit_lp",
            {"amount": amount},
            {
                "pool": pool,
                "pool_authority": pool_authority,
                "user": self.user_address(self.authority),
                "collateral": self.collateral_address(lp_token, self.authority),
                "source": source or pda.associated_token_address(self.authority, lp_token),
                "destination": pda.associated_token_address(pool_authority, lp_token),
                "whitelist": self.whitelist_address(lp_token),
                "lp_token": lp_token,
                "authority": self.authority,
                "fee_payer": payer,
                "fee_receiver": fee_receiver,
            },
            signers=signers,
        )

    def mint_omnisol(
        self,
        pool: Pubkey,
        pool_mint: Pubkey,
        staked_address: Pubkey,
        amount: int,
        fee_payer: Keypair | None = None,
    ) -> PreparedInstruction:
        """Mint pool tokens against the collateral keyed by ``staked_address``."""
        signers = []
        payer = self.authority
        if fee_payer is not None:
            payer = fee_payer.pubkey()
            signers.append(fee_payer)
        return self._prepare(
            "mint_omnisol",
            {"amount": amount},
            {
                "pool": pool,
                "pool_authority": self.pool_authority_address(pool),
                "pool_mint": pool_mint,
                "mint_authority": self.mint_authority_address(),
                "user": self.user_address(self.authority),
                "collateral": self.collateral_address(staked_address, self.authority),
                "user_pool_token": pda.associated_token_address(self.authority, pool_mint),
                "staked_address": staked_address,
                "authority": self.authority,
                "fee_payer": payer,
            },
            signers=signers,
        )

    # Withdrawals

    def withdraw_lp_tokens(
        self,
        pool: Pubkey,
        pool_mint: Pubkey,
        lp_token: Pubkey,
        amount: int,
        destination: Pubkey | None = None,
        with_burn: bool = False,
    ) -> PreparedInstruction:
        pool_authority = self.pool_authority_address(pool)
        return self._prepare(
            "withdraw_lp_tokens",
            {"amount": amount, "with_burn": with_burn},
            {
                "pool": pool,
                "pool_authority": pool_authority,
                "user": self.user_address(self.authority),
                "collateral": self.collateral_address(lp_token, self.authority),
                "source": pda.associated_token_address(pool_authority, lp_token),
                "destination": destination
                or pda.associated_token_address(self.authority, lp_token),
                "lp_token": lp_token,
                "pool_mint": pool_mint,
                "user_pool_token": pda.associated_token_address(self.authority, pool_mint),
                "authority": self.authority,
            },
        )

    def burn_omnisol(
        self,
        pool: Pubkey,
        pool_mint: Pubkey,
        amount: int,
        withdraw_index: int,
    ) -> PreparedInstruction:
        """Burn pool tokens and open withdraw request number ``withdraw_index``.

        Use :func:`next_withdraw_index` on the fetched ``User`` record.
        """
        return self._prepare(
            "burn_omnisol",
            {"amount": amount},
            {
                "pool": pool,
                "pool_mint": pool_mint,
                "source_token_account": pda.associated_token_address(
                    self.authority, pool_mint
                ),
                "authority": self.authority,
                "user": self.user_address(self.authority),
                "withdraw_info": self.withdraw_info_address(self.authority, withdraw_index),
            },
        )

    # Oracle

    def init_oracle(
        self,
        pool: Pubkey,
        oracle_authority: Pubkey,
        oracle: Keypair | None = None,
    ) -> PreparedInstruction:
        oracle = oracle or Keypair()
        return self._prepare(
            "init_oracle",
            None,
            {
                "pool": pool,
                "authority": self.authority,
                "oracle": oracle.pubkey(),
                "oracle_authority": oracle_authority,
            },
            signers=[oracle],
        )

    def close_oracle(self, pool: Pubkey, oracle: Pubkey) -> PreparedInstruction:
        return self._prepare(
            "close_oracle",
            None,
            {"pool": pool, "authority": self.authority, "oracle": oracle},
        )

    def update_oracle_info(
        self,
        oracle: Pubkey,
        addresses: Sequence[Pubkey],
        values: Sequence[int],
        clear: bool = False,
    ) -> PreparedInstruction:
        """Append to (or with ``clear`` replace) the oracle's priority queue."""
        return self._prepare(
            "update_oracle_info",
            {"addresses": list(addresses), "values": list(values), "clear": clear},
            {"authority": self.authority, "oracle": oracle},
        )

    # Liquidation

    def liquidate_collateral(
        self,
        pool: Pubkey,
        oracle: Pubkey,
        source_stake: Pubkey,
        collateral_owner_wallet: Pubkey,
        user_wallet: Pubkey,
        withdraw_index: int,
        amount: int,
        unstake: LiquidationAccounts,
        split_stake: Keypair | None = None,
    ) -> PreparedInstruction:
        """Liquidate a collateral to settle ``user_wallet``'s withdraw request.

        Native stake collaterals need ``split_stake``, a fresh account the
        program splits the liquidated lamports into. It is passed as the first
        remaining account and signs the transaction.
        """
        collateral_owner = self.user_address(collateral_owner_wallet)
        signers: tuple[Keypair, ...] = ()
        remaining: list[AccountMeta] = []
        if split_stake is not None:
            signers = (split_stake,)
            remaining.append(AccountMeta(split_stake.pubkey(), is_signer=True, is_writable=True))
        return self._prepare(
            "liquidate_collateral",
            {"amount": amount},
            {
                "pool": pool,
                "pool_authority": self.pool_authority_address(pool),
                "collateral": pda.collateral(
                    source_stake, collateral_owner, self.program_id
                )[0],
                "collateral_owner": collateral_owner,
                "collateral_owner_wallet": collateral_owner_wallet,
                "user_wallet": user_wallet,
                "user": self.user_address(user_wallet),
                "withdraw_info": self.withdraw_info_address(user_wallet, withdraw_index),
                "oracle": oracle,
                "source_stake": source_stake,
                "liquidator": self.liquidator_address(self.authority),
                "pool_account": unstake.pool_account,
                "sol_reserves": unstake.sol_reserves,
                "protocol_fee": unstake.protocol_fee,
                "protocol_fee_destination": unstake.protocol_fee_destination,
                "fee_account": unstake.fee_account,
                "stake_account_record": unstake.stake_account_record,
                "authority": self.authority,
            },
            signers,
            remaining,
        )

    # ------------------------------------------------------------------
    # Fetchers
    # ------------------------------------------------------------------

    async def fetch(self, kind: AccountKind | str | type, address: Pubkey) -> Any:
        """Fetch and decode the account at ``address`` as ``kind``."""
        data = await self.transport.fetch_bytes(address)
        return decode_account(kind, data)

    async def fetch_pool(self, address: Pubkey) -> Pool:
        return await self.fetch(POOL, address)

    async def fetch_oracle(self, address: Pubkey) -> Oracle:
        return await self.fetch(ORACLE, address)

    async def fetch_collateral(self, address: Pubkey) -> Collateral:
        return await self.fetch(COLLATERAL, address)

    async def fetch_user(self, wallet: Pubkey) -> User:
        return await self.fetch(USER, self.user_address(wallet))

    async def fetch_withdraw_info(self, wallet: Pubkey, index: int) -> WithdrawInfo:
        return await self.fetch(WITHDRAW_INFO, self.withdraw_info_address(wallet, index))

    async def fetch_whitelist(self, token: Pubkey) -> Whitelist:
        return await self.fetch(WHITELIST, self.whitelist_address(token))

    async def fetch_manager(self, wallet: Pubkey) -> Manager:
        return await self.fetch(MANAGER, self.manager_address(wallet))

    async def fetch_liquidator(self, wallet: Pubkey) -> Liquidator:
        return await self.fetch(LIQUIDATOR, self.liquidator_address(wallet))

    async def fetch_liquidation_fee(self) -> LiquidationFee:
        return await self.fetch(LIQUIDATION_FEE, self.liquidation_fee_address())

    async def find_accounts(self, kind: AccountKind | str | type) -> list[tuple[Pubkey, Any]]:
        """Every program account of ``kind``, decoded."""
        kind = get_kind(kind)
        filters: list[dict[str, Any]] = [
            {
                "memcmp": {
                    "offset": 0,
                    "bytes": base64.b64encode(kind.discriminator).decode("ascii"),
                    "encoding": "base64",
                }
            }
        ]
        if kind.size is not None:
            filters.append({"dataSize": kind.size})

        raw = await self.transport.fetch_program_accounts(self.program_id, filters)
        logger.info("Found %d %s accounts", len(raw), kind.name)
        return [(address, decode_account(kind, data)) for address, data in raw]

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def send(self, *prepared: PreparedInstruction) -> str:
        """Submit one or more prepared instructions in a single transaction."""
        if self.wallet is None:
            raise ValueError("No wallet configured; a signing keypair is required")
        signers: list[Keypair] = [self.wallet]
        for item in prepared:
            for signer in item.signers:
                if signer.pubkey() not in {s.pubkey() for s in signers}:
                    signers.append(signer)
        instructions = [item.instruction for item in prepared]
        signature = await self.transport.submit(instructions, signers)
        logger.info("Submitted %d instruction(s): %s", len(instructions), signature)
        return signature
