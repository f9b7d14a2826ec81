from __future__ import annotations

from typing import Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solders.errors import SerdeJSONError
from solders.hash import Hash
from solders.pubkey import Pubkey

from ..core.errors import AccountNotFoundError, TransportError
from ..utils.logging import get_logger

_RPC_FAILURES = (SolanaRpcException, RPCException, SerdeJSONError)


class SolanaRpcClient:
    """Ledger reads and submission through solana-py's ``AsyncClient``.

    Transport failures, RPC error objects and unparseable bodies all surface
    as ``TransportError``; only an account the node reports as absent becomes
    ``AccountNotFoundError``.
    """

    def __init__(
        self,
        url: str,
        *,
        commitment: str = "finalized",
        timeout: float = 30.0,
        client: Optional[AsyncClient] = None,
    ) -> None:
        self.url = url
        self.commitment = Commitment(commitment)
        self._client = client or AsyncClient(url, commitment=self.commitment, timeout=timeout)
        self._logger = get_logger(__name__)

    def _failed(self, method: str, exc: Exception) -> TransportError:
        self._logger.warning("rpc_error", extra={"method": method, "error": str(exc)})
        return TransportError(f"{method} failed: {exc}")

    async def get_account_data(self, address: Pubkey) -> bytes:
        try:
            resp = await self._client.get_account_info(address, commitment=self.commitment, encoding="base64")
        except _RPC_FAILURES as exc:
            raise self._failed("getAccountInfo", exc) from exc
        account = resp.value
        if account is None:
            raise AccountNotFoundError(str(address))
        return bytes(account.data)

    async def get_latest_blockhash(self) -> Hash:
        try:
            resp = await self._client.get_latest_blockhash(commitment=self.commitment)
        except _RPC_FAILURES as exc:
            raise self._failed("getLatestBlockhash", exc) from exc
        return resp.value.blockhash

    async def send_transaction(self, raw: bytes) -> str:
        # preflight runs at the client commitment; confirmation is not awaited
        try:
            resp = await self._client.send_raw_transaction(raw)
        except _RPC_FAILURES as exc:
            raise self._failed("sendTransaction", exc) from exc
        return str(resp.value)

    async def close(self) -> None:
        await self._client.close()


__all__ = ["SolanaRpcClient"]
