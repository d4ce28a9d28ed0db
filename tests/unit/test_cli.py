"""Unit tests for CLI argument parsing and offline commands."""
from __future__ import annotations

import argparse
from pathlib import Path

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from omnisol import pda
from omnisol.cli import _burn, _liquidate, _show, build_parser, format_record, main
from omnisol.client import OmnisolClient
from omnisol.config import AppConfig
from omnisol.instructions import OPERATIONS, decode_instruction_data
from omnisol.models import Collateral, Oracle, Pool, QueueMember, User, WithdrawInfo

WALLET = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


class TestBuildParser:
    def test_show_command(self) -> None:
        args = build_parser().parse_args(["show", "pool", WALLET])
        assert args.command == "show"
        assert args.kind == "pool"
        assert args.address == Pubkey.from_string(WALLET)

    def test_show_without_address_lists(self) -> None:
        args = build_parser().parse_args(["show", "user"])
        assert args.address is None

    def test_show_rejects_unknown_kind(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["show", "pledge"])

    def test_invalid_address(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["show", "pool", "not-a-key"])

    def test_pda_withdraw_info(self) -> None:
        args = build_parser().parse_args(["pda", "withdraw-info", WALLET, "3"])
        assert args.pda_kind == "withdraw-info"
        assert args.index == 3

    def test_convert(self) -> None:
        args = build_parser().parse_args(["convert", "to-lamports", "1.5"])
        assert args.direction == "to-lamports"
        assert args.sol == "1.5"

    def test_pool_pause(self) -> None:
        args = build_parser().parse_args(["pool", "pause", WALLET])
        assert args.pool_action == "pause"

    def test_burn_requires_pool_and_amount(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["burn", "--amount", "1"])
        args = build_parser().parse_args(["burn", "--pool", WALLET, "--amount", "1"])
        assert args.amount == "1"

    def test_oracle_update_default(self) -> None:
        args = build_parser().parse_args(["oracle", "update"])
        assert args.oracle is None

    def test_liquidate_flags(self) -> None:
        args = build_parser().parse_args(
            [
                "liquidate",
                "--unstake-pool", WALLET,
                "--sol-reserves", WALLET,
                "--protocol-fee", WALLET,
                "--protocol-fee-destination", WALLET,
                "--fee-account", WALLET,
                "--dry-run",
            ]
        )
        assert args.command == "liquidate"
        assert args.unstake_pool == Pubkey.from_string(WALLET)
        assert args.dry_run is True
        assert args.oracle is None

    def test_config_flag(self) -> None:
        args = build_parser().parse_args(["--config", "/tmp/c.yaml", "convert", "to-sol", "1"])
        assert args.config == "/tmp/c.yaml"

    def test_log_level_flag(self) -> None:
        args = build_parser().parse_args(["--log-level", "DEBUG", "convert", "to-sol", "1"])
        assert args.log_level == "DEBUG"

    def test_no_command(self) -> None:
        args = build_parser().parse_args([])
        assert args.command is None


class TestOfflineCommands:
    def test_to_sol(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["convert", "to-sol", "1500000000"])
        assert capsys.readouterr().out.strip() == "1.500000000"

    def test_to_lamports(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["convert", "to-lamports", "1.5"])
        assert capsys.readouterr().out.strip() == "1500000000"

    def test_bad_amount_exits(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["convert", "to-lamports", "abc"])
        assert exc_info.value.code == 2
        assert "Error" in capsys.readouterr().err

    def test_pda_without_config(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        wallet = Pubkey.from_string(WALLET)
        main(["--config", str(tmp_path / "none.yaml"), "pda", "user", WALLET])
        address, bump = pda.user(wallet)
        assert capsys.readouterr().out.strip() == f"{address} (bump {bump})"

    def test_no_command_exits(self) -> None:
        with pytest.raises(SystemExit):
            main([])


class TestShow:
    @pytest.mark.asyncio
    async def test_single_account(
        self,
        client: OmnisolClient,
        transport,
        sample_pool: Pool,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        address = Pubkey.new_unique()
        transport.put(address, sample_pool)
        args = argparse.Namespace(kind="pool", address=address)
        await _show(client, args)
        out = capsys.readouterr().out
        assert f"pool_mint: {sample_pool.pool_mint}" in out
        assert "deposit_amount: 42.000000000 SOL" in out

    @pytest.mark.asyncio
    async def test_lists_all(
        self,
        client: OmnisolClient,
        transport,
        sample_pool: Pool,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        first, second = Pubkey.new_unique(), Pubkey.new_unique()
        transport.put(first, sample_pool)
        transport.put(second, sample_pool)
        await _show(client, argparse.Namespace(kind="pool", address=None))
        out = capsys.readouterr().out
        assert f"# {first}" in out
        assert f"# {second}" in out


class TestBurn:
    @pytest.mark.asyncio
    async def test_first_burn_without_user_account(
        self,
        client: OmnisolClient,
        transport,
        wallet: Keypair,
        sample_pool: Pool,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        pool = Pubkey.new_unique()
        transport.put(pool, sample_pool)
        await _burn(client, argparse.Namespace(pool=pool, amount="1"))

        assert len(transport.submitted) == 1
        instructions, _ = transport.submitted[0]
        withdraw_info = pda.withdraw_info(wallet.pubkey(), 1)[0]
        assert instructions[0].accounts[5].pubkey == withdraw_info
        assert f"Withdraw request #1: {withdraw_info}" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_burn_continues_from_user_record(
        self,
        client: OmnisolClient,
        transport,
        wallet: Keypair,
        sample_pool: Pool,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        pool = Pubkey.new_unique()
        transport.put(pool, sample_pool)
        transport.put(
            pda.user(wallet.pubkey())[0],
            User(wallet.pubkey(), 0, 0, False, 3, 3),
        )
        await _burn(client, argparse.Namespace(pool=pool, amount="0.5"))
        assert "Withdraw request #4:" in capsys.readouterr().out


def _liquidate_args(**overrides) -> argparse.Namespace:
    values = dict(
        oracle=None,
        unstake_pool=Pubkey.new_unique(),
        sol_reserves=Pubkey.new_unique(),
        protocol_fee=Pubkey.new_unique(),
        protocol_fee_destination=Pubkey.new_unique(),
        fee_account=Pubkey.new_unique(),
        dry_run=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


class TestLiquidate:
    @pytest.fixture()
    def chain(self, client: OmnisolClient, transport, sample_pool: Pool) -> dict[str, Pubkey]:
        """A pool, one queued native collateral and one pending withdraw request."""
        pool = Pubkey.new_unique()
        transport.put(pool, sample_pool)

        owner_wallet, requester_wallet = Pubkey.new_unique(), Pubkey.new_unique()
        owner_account = client.user_address(owner_wallet)
        transport.put(owner_account, User(owner_wallet, 10, 1, False, 0, 0))
        transport.put(client.user_address(requester_wallet), User(requester_wallet, 0, 0, False, 1, 1))

        delegated = Pubkey.new_unique()
        collateral = client.collateral_address(delegated, owner_wallet)
        transport.put(
            collateral,
            Collateral(owner_account, pool, Pubkey.new_unique(), delegated,
                       5_000, 5_000, 0, 0, 0, 255, True),
        )
        oracle = Pubkey.new_unique()
        transport.put(oracle, Oracle(Pubkey.new_unique(), (QueueMember(collateral, 5_000),)))

        withdraw_info = client.withdraw_info_address(requester_wallet, 1)
        transport.put(withdraw_info, WithdrawInfo(requester_wallet, 2_000, 100, 1))
        return {
            "pool": pool,
            "oracle": oracle,
            "collateral": collateral,
            "delegated": delegated,
            "withdraw_info": withdraw_info,
        }

    @pytest.mark.asyncio
    async def test_sends_liquidation_for_request(
        self, client: OmnisolClient, transport, chain: dict[str, Pubkey]
    ) -> None:
        args = _liquidate_args(oracle=chain["oracle"])
        await _liquidate(client, AppConfig(), args)

        assert len(transport.submitted) == 1
        instructions, signers = transport.submitted[0]
        ix = instructions[0]
        assert decode_instruction_data(bytes(ix.data)) == ("liquidate_collateral", {"amount": 2_000})

        metas = dict(zip(OPERATIONS["liquidate_collateral"].account_names, ix.accounts))
        assert metas["collateral"].pubkey == chain["collateral"]
        assert metas["withdraw_info"].pubkey == chain["withdraw_info"]
        assert metas["source_stake"].pubkey == chain["delegated"]

        split = signers[1].pubkey()
        assert ix.accounts[-1].pubkey == split
        assert ix.accounts[-1].is_signer
        assert metas["stake_account_record"].pubkey == pda.stake_account_record(
            args.unstake_pool, split
        )[0]

    @pytest.mark.asyncio
    async def test_dry_run_sends_nothing(
        self,
        client: OmnisolClient,
        transport,
        chain: dict[str, Pubkey],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        await _liquidate(client, AppConfig(), _liquidate_args(oracle=chain["oracle"], dry_run=True))
        assert transport.submitted == []
        assert f"{chain['withdraw_info']}: 0.000002000 SOL" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_requires_oracle(self, client: OmnisolClient) -> None:
        with pytest.raises(ValueError, match="oracle"):
            await _liquidate(client, AppConfig(), _liquidate_args())


class TestFormatRecord:
    def test_oracle_queue(self, oracle_factory) -> None:
        oracle = oracle_factory(2)
        text = format_record(oracle)
        assert "priority_queue: [2]" in text
        assert f"collateral={oracle.priority_queue[0].collateral}" in text
