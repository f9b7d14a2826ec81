# Connector package exports

from .interface import LedgerRpc
from .rpc import SolanaRpcClient

__all__ = [
    # Interface
    "LedgerRpc",

    # solana-py implementation
    "SolanaRpcClient",
]
