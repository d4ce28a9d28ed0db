"""Shared test fixtures and sample data."""
from __future__ import annotations

import base64
import textwrap
from pathlib import Path
from typing import Any, Sequence

import pytest
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from omnisol.client import OmnisolClient
from omnisol.codec.accounts import encode_account
from omnisol.config import ClusterConfig
from omnisol.errors import AccountNotFound
from omnisol.models import Collateral, Oracle, Pool, QueueMember, User


# ---------------------------------------------------------------------------
# In-memory transport
# ---------------------------------------------------------------------------


class FakeTransport:
    """Serves accounts from a dict and records submitted transactions."""

    def __init__(self) -> None:
        self.accounts: dict[Pubkey, bytes] = {}
        self.submitted: list[tuple[list[Instruction], list[Keypair]]] = []
        self.program_account_calls: list[tuple[Pubkey, list[dict[str, Any]]]] = []

    def put(self, address: Pubkey, record: Any) -> None:
        self.accounts[address] = encode_account(record)

    async def fetch_bytes(self, address: Pubkey) -> bytes:
        try:
            return self.accounts[address]
        except KeyError:
            raise AccountNotFound(address) from None

    async def fetch_program_accounts(
        self, program_id: Pubkey, filters: Sequence[dict[str, Any]]
    ) -> list[tuple[Pubkey, bytes]]:
        self.program_account_calls.append((program_id, list(filters)))
        matches = []
        for address, data in self.accounts.items():
            if all(_matches(f, data) for f in filters):
                matches.append((address, data))
        return matches

    async def submit(
        self, instructions: Sequence[Instruction], signers: Sequence[Keypair]
    ) -> str:
        self.submitted.append((list(instructions), list(signers)))
        return f"sig{len(self.submitted)}"


def _matches(rpc_filter: dict[str, Any], data: bytes) -> bool:
    if "dataSize" in rpc_filter:
        return len(data) == rpc_filter["dataSize"]
    memcmp = rpc_filter["memcmp"]
    expected = base64.b64decode(memcmp["bytes"])
    offset = memcmp["offset"]
    return data[offset : offset + len(expected)] == expected


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def wallet() -> Keypair:
    return Keypair()


@pytest.fixture()
def client(transport: FakeTransport, wallet: Keypair) -> OmnisolClient:
    return OmnisolClient(transport, wallet=wallet)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_cluster_config() -> ClusterConfig:
    return ClusterConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
        commitment="confirmed",
    )


SAMPLE_YAML = textwrap.dedent("""\
    cluster:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
      commitment: finalized
    program:
      program_id: "6sccaGNYx7RSjVgFD13UKE7dyUiNavr2KXgeqaQvZUz7"
      oracle: "unpXTU2Ndrc7WWNyEhQWe4udTzSibLPi25SXv2xbCHQ"
    wallet:
      keypair_path: "~/.config/solana/id.json"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Sample on-chain records
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_pool() -> Pool:
    return Pool(
        pool_mint=Pubkey.new_unique(),
        authority=Pubkey.new_unique(),
        stake_source=Pubkey.new_unique(),
        oracle=Pubkey.new_unique(),
        fee_receiver=Pubkey.new_unique(),
        deposit_amount=42_000_000_000,
        min_deposit=1_000_000_000,
        withdraw_fee=25,
        deposit_fee=10,
        mint_fee=0,
        storage_fee=10_000,
        authority_bump=254,
        is_active=True,
    )


@pytest.fixture()
def sample_collateral() -> Collateral:
    return Collateral(
        user=Pubkey.new_unique(),
        pool=Pubkey.new_unique(),
        source_stake=Pubkey.new_unique(),
        delegated_stake=Pubkey.new_unique(),
        delegation_stake=5_000_000_000,
        amount=3_000_000_000,
        liquidated_amount=1_000_000_000,
        created_at=-1,
        creation_epoch=512,
        bump=253,
        is_native=True,
    )


@pytest.fixture()
def sample_user() -> User:
    return User(
        wallet=Pubkey.new_unique(),
        rate=150,
        num_of_collaterals=2,
        is_blocked=False,
        requests_amount=3,
        last_withdraw_index=3,
    )


def make_oracle(entries: int) -> Oracle:
    return Oracle(
        authority=Pubkey.new_unique(),
        priority_queue=tuple(
            QueueMember(collateral=Pubkey.new_unique(), amount=(i + 1) * 1_000)
            for i in range(entries)
        ),
    )


@pytest.fixture()
def oracle_factory():
    return make_oracle
