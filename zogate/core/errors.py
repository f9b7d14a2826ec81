from __future__ import annotations


class GatewayError(Exception):
    """Base class for failures surfaced to HTTP clients.

    ``status`` is the HTTP status the request handlers answer with. Lookup and
    input problems are caller errors (4xx); decoding and transport problems are
    upstream errors (5xx).
    """

    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class MarketNotFoundError(GatewayError):
    status = 404

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Could not find market {symbol}")
        self.symbol = symbol


class CollateralNotFoundError(GatewayError):
    status = 404

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Could not find collateral {symbol}")
        self.symbol = symbol


class OpenOrdersNotFoundError(GatewayError):
    """The trader has no open-orders account for the market yet."""

    status = 404

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Open orders account for {symbol} not created yet")
        self.symbol = symbol


class AccountNotFoundError(GatewayError):
    status = 404

    def __init__(self, address: str) -> None:
        super().__init__(f"Account {address} does not exist")
        self.address = address


class InvalidAddressError(GatewayError):
    status = 400

    def __init__(self, value: str) -> None:
        super().__init__(f"Invalid address {value}")
        self.value = value


class InvalidIntegerError(GatewayError):
    status = 400

    def __init__(self, value: str) -> None:
        super().__init__(f"Invalid integer {value}")
        self.value = value


class InvalidRequestError(GatewayError):
    status = 400


class QuantityOverflowError(GatewayError):
    status = 400

    def __init__(self, field: str, value: int) -> None:
        super().__init__(f"{field} {value} does not fit in an unsigned 64-bit quantity")
        self.field = field
        self.value = value


class CorruptAccountError(GatewayError):
    status = 502

    def __init__(self, kind: str, detail: str) -> None:
        super().__init__(f"Corrupt {kind} account: {detail}")
        self.kind = kind
        self.detail = detail


class TransportError(GatewayError):
    """Failure reported by, or while talking to, the ledger RPC node."""

    status = 502


class TransactionError(GatewayError):
    """A transaction could not be serialized or signed."""

    status = 500


__all__ = [
    "GatewayError",
    "MarketNotFoundError",
    "CollateralNotFoundError",
    "OpenOrdersNotFoundError",
    "AccountNotFoundError",
    "InvalidAddressError",
    "InvalidIntegerError",
    "InvalidRequestError",
    "QuantityOverflowError",
    "CorruptAccountError",
    "TransportError",
    "TransactionError",
]
