from __future__ import annotations

from typing import Protocol

from solders.hash import Hash
from solders.pubkey import Pubkey


class LedgerRpc(Protocol):
    """Async ledger RPC contract required by the gateway."""

    async def get_account_data(self, address: Pubkey) -> bytes:
        """Return raw account bytes; raise AccountNotFoundError when absent."""

    async def get_latest_blockhash(self) -> Hash:
        """Return a recent blockhash to anchor a new transaction."""

    async def send_transaction(self, raw: bytes) -> str:
        """Submit a signed wire transaction and return its signature."""

    async def close(self) -> None:
        """Release pooled connections."""


__all__ = ["LedgerRpc"]
