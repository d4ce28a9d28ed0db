"""Solana JSON-RPC transport with endpoint fallback."""
from __future__ import annotations

import asyncio
import base64
import logging
import ssl
from typing import Any, Sequence

import aiohttp
import certifi
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..config import ClusterConfig
from ..errors import AccountNotFound, RpcError, SubmissionError

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)
_RETRYABLE_ERRORS = _TRANSPORT_ERRORS + (ValueError, RpcError)


class SolanaRpcClient:
    """Solana RPC client with automatic endpoint fallback for reads."""

    def __init__(self, config: ClusterConfig) -> None:
        if not config.rpc_endpoints:
            raise ValueError("At least one RPC endpoint is required")
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.commitment = config.commitment
        self.current_rpc_index = 0

    async def _post(self, rpc_url: str, payload: dict[str, Any]) -> dict[str, Any]:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(
                rpc_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                return await response.json()

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                result = await self._post(rpc_url, payload)
                if "error" in result:
                    raise RpcError(f"RPC Error: {result['error']}")

                if rpc_index != self.current_rpc_index:
                    logger.info("Switched to RPC endpoint: %s", rpc_url)
                    self.current_rpc_index = rpc_index

                return result.get("result")
            except _RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise RpcError(f"All RPC endpoints failed. Last error: {last_error}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_bytes(self, address: Pubkey) -> bytes:
        """Get raw account data, raising ``AccountNotFound`` for empty addresses."""
        result = await self.rpc_call(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self.commitment}],
        )
        value = (result or {}).get("value")
        if value is None:
            raise AccountNotFound(address)
        return _decode_data(value["data"])

    async def fetch_program_accounts(
        self, program_id: Pubkey, filters: Sequence[dict[str, Any]] = ()
    ) -> list[tuple[Pubkey, bytes]]:
        """Get every account owned by ``program_id`` matching ``filters``."""
        result = await self.rpc_call(
            "getProgramAccounts",
            [
                str(program_id),
                {
                    "encoding": "base64",
                    "commitment": self.commitment,
                    "filters": list(filters),
                },
            ],
        )
        accounts: list[tuple[Pubkey, bytes]] = []
        for item in result or []:
            accounts.append(
                (
                    Pubkey.from_string(item["pubkey"]),
                    _decode_data(item["account"]["data"]),
                )
            )
        logger.debug("getProgramAccounts returned %d accounts", len(accounts))
        return accounts

    async def get_latest_blockhash(self) -> Hash:
        result = await self.rpc_call(
            "getLatestBlockhash", [{"commitment": self.commitment}]
        )
        return Hash.from_string(result["value"]["blockhash"])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit(
        self, instructions: Sequence[Instruction], signers: Sequence[Keypair]
    ) -> str:
        """Sign, send and return the transaction signature.

        Sending is not retried on another endpoint; a rejected transaction
        raises ``SubmissionError`` with the node's error payload attached.
        """
        if not signers:
            raise ValueError("At least one signer (the fee payer) is required")

        blockhash = await self.get_latest_blockhash()
        tx = Transaction.new_signed_with_payer(
            list(instructions), signers[0].pubkey(), list(signers), blockhash
        )
        encoded = base64.b64encode(bytes(tx)).decode("ascii")
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendTransaction",
            "params": [
                encoded,
                {"encoding": "base64", "preflightCommitment": self.commitment},
            ],
        }

        rpc_url = self.endpoints[self.current_rpc_index]
        try:
            result = await self._post(rpc_url, payload)
        except _TRANSPORT_ERRORS as e:
            raise RpcError(f"sendTransaction to {rpc_url} failed: {e}") from e

        if "error" in result:
            error = result["error"]
            raise SubmissionError(error.get("message", str(error)), error.get("data"))

        signature = result["result"]
        logger.info("Transaction sent: %s", signature)
        return signature


def _decode_data(data: Any) -> bytes:
    # RPC returns [payload, encoding]
    payload, encoding = data
    if encoding != "base64":
        raise RpcError(f"Unexpected account data encoding '{encoding}'")
    return base64.b64decode(payload)
