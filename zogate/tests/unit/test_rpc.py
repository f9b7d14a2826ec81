"""Unit tests for the solana-py backed ledger client."""

import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solders.account import Account
from solders.errors import SerdeJSONError
from solders.hash import Hash
from solders.rpc.responses import (
    GetAccountInfoResp,
    GetLatestBlockhashResp,
    RpcBlockhash,
    RpcResponseContext,
    SendTransactionResp,
)
from solders.signature import Signature

from zogate.connector.rpc import SolanaRpcClient
from zogate.core.errors import AccountNotFoundError, TransportError
from zogate.tests.stubs import key

CONTEXT = RpcResponseContext(slot=1)


class FakeAsyncClient:
    """Stands in for ``AsyncClient``; records calls and replays canned responses."""

    def __init__(self, **responses):
        self.responses = responses
        self.calls = []
        self.closed = False

    def _reply(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        result = self.responses[name]
        if isinstance(result, Exception):
            raise result
        return result

    async def get_account_info(self, *args, **kwargs):
        return self._reply("get_account_info", *args, **kwargs)

    async def get_latest_blockhash(self, *args, **kwargs):
        return self._reply("get_latest_blockhash", *args, **kwargs)

    async def send_raw_transaction(self, *args, **kwargs):
        return self._reply("send_raw_transaction", *args, **kwargs)

    async def close(self):
        self.closed = True


def _client(**responses):
    fake = FakeAsyncClient(**responses)
    return SolanaRpcClient("http://rpc.test", commitment="confirmed", client=fake), fake


def _transport_failure():
    async def make_request(self, body, parser):
        pass

    return SolanaRpcException(OSError("connection refused"), make_request, None, object())


class TestSolanaRpcClient:
    """Calls through the client and error mapping."""

    @pytest.mark.asyncio
    async def test_get_account_data(self):
        """Test account bytes come back with the configured commitment."""
        account = Account(lamports=1, data=b"abc", owner=key(3))
        client, fake = _client(get_account_info=GetAccountInfoResp(account, CONTEXT))

        assert await client.get_account_data(key(7)) == b"abc"
        name, args, kwargs = fake.calls[0]
        assert (name, args) == ("get_account_info", (key(7),))
        assert kwargs == {"commitment": Commitment("confirmed"), "encoding": "base64"}

    @pytest.mark.asyncio
    async def test_missing_account(self):
        """Test an absent account maps to a 404 lookup error."""
        client, _ = _client(get_account_info=GetAccountInfoResp(None, CONTEXT))
        with pytest.raises(AccountNotFoundError) as excinfo:
            await client.get_account_data(key(7))
        assert excinfo.value.status == 404

    @pytest.mark.asyncio
    async def test_latest_blockhash(self):
        """Test the blockhash is unwrapped from the response."""
        resp = GetLatestBlockhashResp(RpcBlockhash(Hash.default(), 100), CONTEXT)
        client, _ = _client(get_latest_blockhash=resp)
        assert await client.get_latest_blockhash() == Hash.default()

    @pytest.mark.asyncio
    async def test_send_transaction(self):
        """Test raw bytes are submitted and the signature returned as text."""
        sig = Signature.default()
        client, fake = _client(send_raw_transaction=SendTransactionResp(sig))

        assert await client.send_transaction(b"\x01\x02") == str(sig)
        assert fake.calls[0][1] == (b"\x01\x02",)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method, call",
        [
            ("get_account_info", lambda c: c.get_account_data(key(7))),
            ("get_latest_blockhash", lambda c: c.get_latest_blockhash()),
            ("send_raw_transaction", lambda c: c.send_transaction(b"\x00")),
        ],
    )
    async def test_transport_failure(self, method, call):
        """Test connection failures surface as a 502 transport error."""
        client, _ = _client(**{method: _transport_failure()})
        with pytest.raises(TransportError) as excinfo:
            await call(client)
        assert excinfo.value.status == 502

    @pytest.mark.asyncio
    async def test_rpc_error_object(self):
        """Test an RPC error response is a transport error, not a missing account."""
        client, _ = _client(get_account_info=RPCException("Invalid param: WrongSize"))
        with pytest.raises(TransportError, match="WrongSize"):
            await client.get_account_data(key(7))

    @pytest.mark.asyncio
    async def test_unparseable_body(self):
        """Test a body that is not a valid response is a transport error."""
        client, _ = _client(get_account_info=SerdeJSONError("invalid type: sequence, expected struct"))
        with pytest.raises(TransportError):
            await client.get_account_data(key(7))

    @pytest.mark.asyncio
    async def test_preflight_failure(self):
        """Test a rejected submission carries the node's message."""
        client, _ = _client(send_raw_transaction=RPCException("Transaction simulation failed"))
        with pytest.raises(TransportError, match="simulation failed"):
            await client.send_transaction(b"\x00")

    @pytest.mark.asyncio
    async def test_close(self):
        """Test close releases the underlying client."""
        client, fake = _client()
        await client.close()
        assert fake.closed is True
