"""Transport protocol for account reads and transaction submission."""
from typing import Any, Protocol, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey


class Transport(Protocol):
    """Abstract interface for reaching the cluster."""

    async def fetch_bytes(self, address: Pubkey) -> bytes:
        """Raw account data; raises ``AccountNotFound`` when absent."""
        ...

    async def fetch_program_accounts(
        self, program_id: Pubkey, filters: Sequence[dict[str, Any]]
    ) -> list[tuple[Pubkey, bytes]]: ...

    async def submit(
        self, instructions: Sequence[Instruction], signers: Sequence[Keypair]
    ) -> str:
        """Sign with ``signers`` (first one pays) and return the signature."""
        ...
