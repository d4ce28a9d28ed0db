"""Integration tests for the Solana RPC client: fallback, decoding, submission."""
from __future__ import annotations

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from omnisol.codec.accounts import encode_account
from omnisol.config import ClusterConfig
from omnisol.errors import AccountNotFound, RpcError, SubmissionError
from omnisol.instructions import build_instruction
from omnisol.models import Manager
from omnisol.rpc.solana_client import SolanaRpcClient

SESSION = "omnisol.rpc.solana_client.aiohttp.ClientSession"
CONNECTOR = "omnisol.rpc.solana_client.aiohttp.TCPConnector"


@pytest.fixture()
def rpc() -> SolanaRpcClient:
    return SolanaRpcClient(
        ClusterConfig(
            rpc_endpoints=(
                "https://rpc1.example.com",
                "https://rpc2.example.com",
                "https://rpc3.example.com",
            ),
            rpc_timeout=5,
        )
    )


def _response(data: dict) -> AsyncMock:
    response = AsyncMock()
    response.json = AsyncMock(return_value=data)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def _mock_session(*responses: dict, error: Exception | None = None):
    """Mock aiohttp session returning ``responses`` in order, or raising ``error``."""
    mock_session = AsyncMock()
    if error:
        mock_session.post = MagicMock(side_effect=error)
    else:
        mock_session.post = MagicMock(side_effect=[_response(r) for r in responses])
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


def _account_result(data: bytes) -> dict:
    return {
        "jsonrpc": "2.0",
        "result": {
            "context": {"slot": 1},
            "value": {
                "data": [base64.b64encode(data).decode(), "base64"],
                "executable": False,
                "lamports": 1_000_000,
                "owner": "6sccaGNYx7RSjVgFD13UKE7dyUiNavr2KXgeqaQvZUz7",
            },
        },
    }


class TestRpcCall:
    def test_requires_endpoint(self) -> None:
        with pytest.raises(ValueError):
            SolanaRpcClient(ClusterConfig(rpc_endpoints=()))

    @pytest.mark.asyncio
    async def test_successful_call(self, rpc: SolanaRpcClient) -> None:
        session = _mock_session({"jsonrpc": "2.0", "result": 42})

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            result = await rpc.rpc_call("getSlot", [])

        assert result == 42
        payload = session.post.call_args.kwargs["json"]
        assert payload["method"] == "getSlot"

    @pytest.mark.asyncio
    async def test_rpc_error_tries_every_endpoint(self, rpc: SolanaRpcClient) -> None:
        error = {"jsonrpc": "2.0", "error": {"code": -32000, "message": "bad"}}
        session = _mock_session(error, error, error)

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            with pytest.raises(RpcError, match="All RPC endpoints failed"):
                await rpc.rpc_call("getSlot", [])

        assert session.post.call_count == 3

    @pytest.mark.asyncio
    async def test_fallback_on_connection_error(self, rpc: SolanaRpcClient) -> None:
        """When the first endpoint fails, the next one is used and remembered."""
        success = _response({"jsonrpc": "2.0", "result": {"ok": True}})
        calls = 0

        def side_effect(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("first endpoint down")
            return success

        session = _mock_session()
        session.post = MagicMock(side_effect=side_effect)

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            result = await rpc.rpc_call("getSlot", [])

        assert result == {"ok": True}
        assert rpc.current_rpc_index == 1
        assert session.post.call_args.args[0] == "https://rpc2.example.com"

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self, rpc: SolanaRpcClient) -> None:
        session = _mock_session(error=ConnectionError("down"))

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            with pytest.raises(RpcError, match="All RPC endpoints failed"):
                await rpc.rpc_call("getSlot", [])


class TestFetchBytes:
    @pytest.mark.asyncio
    async def test_returns_decoded_data(self, rpc: SolanaRpcClient) -> None:
        raw = encode_account(Manager(manager=Pubkey.new_unique()))
        session = _mock_session(_account_result(raw))

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            data = await rpc.fetch_bytes(Pubkey.new_unique())

        assert data == raw
        params = session.post.call_args.kwargs["json"]["params"]
        assert params[1]["encoding"] == "base64"
        assert params[1]["commitment"] == "confirmed"

    @pytest.mark.asyncio
    async def test_missing_account(self, rpc: SolanaRpcClient) -> None:
        address = Pubkey.new_unique()
        session = _mock_session(
            {"jsonrpc": "2.0", "result": {"context": {"slot": 1}, "value": None}}
        )

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            with pytest.raises(AccountNotFound) as exc_info:
                await rpc.fetch_bytes(address)

        assert exc_info.value.address == address


class TestFetchProgramAccounts:
    @pytest.mark.asyncio
    async def test_decodes_each_account(self, rpc: SolanaRpcClient) -> None:
        first, second = Pubkey.new_unique(), Pubkey.new_unique()
        session = _mock_session(
            {
                "jsonrpc": "2.0",
                "result": [
                    {"pubkey": str(first), "account": {"data": [base64.b64encode(b"\x01").decode(), "base64"]}},
                    {"pubkey": str(second), "account": {"data": [base64.b64encode(b"\x02").decode(), "base64"]}},
                ],
            }
        )
        filters = [{"dataSize": 40}]

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            accounts = await rpc.fetch_program_accounts(Pubkey.new_unique(), filters)

        assert accounts == [(first, b"\x01"), (second, b"\x02")]
        params = session.post.call_args.kwargs["json"]["params"]
        assert params[1]["filters"] == filters


class TestSubmit:
    def _instruction(self, signer: Keypair):
        return build_instruction(
            "resume_pool",
            None,
            {"pool": Pubkey.new_unique(), "authority": signer.pubkey()},
        )

    @pytest.mark.asyncio
    async def test_returns_signature(self, rpc: SolanaRpcClient) -> None:
        signer = Keypair()
        session = _mock_session(
            {"jsonrpc": "2.0", "result": {"context": {"slot": 1}, "value": {"blockhash": str(Hash.default()), "lastValidBlockHeight": 10}}},
            {"jsonrpc": "2.0", "result": "5ig"},
        )

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            signature = await rpc.submit([self._instruction(signer)], [signer])

        assert signature == "5ig"
        send = session.post.call_args_list[1].kwargs["json"]
        assert send["method"] == "sendTransaction"
        assert send["params"][1]["encoding"] == "base64"
        base64.b64decode(send["params"][0])

    @pytest.mark.asyncio
    async def test_rejection_keeps_payload(self, rpc: SolanaRpcClient) -> None:
        signer = Keypair()
        rejection = {
            "code": -32002,
            "message": "Transaction simulation failed",
            "data": {"logs": ["Program log: PoolPaused"]},
        }
        session = _mock_session(
            {"jsonrpc": "2.0", "result": {"context": {"slot": 1}, "value": {"blockhash": str(Hash.default()), "lastValidBlockHeight": 10}}},
            {"jsonrpc": "2.0", "error": rejection},
        )

        with patch(SESSION, return_value=session), patch(CONNECTOR):
            with pytest.raises(SubmissionError, match="simulation failed") as exc_info:
                await rpc.submit([self._instruction(signer)], [signer])

        assert exc_info.value.data == {"logs": ["Program log: PoolPaused"]}
        # a rejected transaction is not resent elsewhere
        assert session.post.call_count == 2

    @pytest.mark.asyncio
    async def test_requires_signer(self, rpc: SolanaRpcClient) -> None:
        with pytest.raises(ValueError):
            await rpc.submit([], [])
